from datetime import timedelta

from conftest import auth
from sqlmodel import Session

from garden_grains import crud
from garden_grains.database import engine
from garden_grains.menu_data import DEFAULT_MENU_ITEMS
from garden_grains.models import User, utcnow


def test_menu_is_public_and_filterable(client, bowl, sold_out):
    everything = client.get("/menu").json()
    assert {item["name"] for item in everything} == {"Quinoa Bowl", "Ragi Brownie"}

    available = client.get("/menu?available_only=true").json()
    assert [item["name"] for item in available] == ["Quinoa Bowl"]

    desserts = client.get("/menu?category=desserts").json()
    assert [item["name"] for item in desserts] == ["Ragi Brownie"]

    detail = client.get(f"/menu/{bowl.id}").json()
    assert detail["customizationOptions"][0]["choices"][1] == {"name": "Paneer", "price": 60.0}
    assert client.get("/menu/999").status_code == 404


def test_admin_manages_menu(client, admin, customer):
    payload = {"name": "Millet Khichdi", "price": 220, "category": "specials", "preparationTime": 20}

    assert client.post("/menu", json=payload, headers=auth(customer)).status_code == 403
    created = client.post("/menu", json=payload, headers=auth(admin))
    assert created.status_code == 201
    item_id = created.json()["id"]

    updated = client.put(f"/menu/{item_id}", json={"isAvailable": False}, headers=auth(admin))
    assert updated.json()["isAvailable"] is False
    assert updated.json()["price"] == 220


def test_seed_runs_once():
    with Session(engine) as session:
        crud.ensure_default_menu_items(session)
        crud.ensure_default_menu_items(session)
        assert len(crud.list_menu_items(session)) == len(DEFAULT_MENU_ITEMS)


def test_rating_updates_average(client, customer, other_customer, bowl):
    first = client.post(f"/feedback/menu/{bowl.id}", json={"rating": 5, "comment": "Great"}, headers=auth(customer))
    assert first.status_code == 201
    assert first.json()["averageRating"] == 5

    second = client.post(f"/feedback/menu/{bowl.id}", json={"rating": 2}, headers=auth(other_customer))
    assert second.json()["averageRating"] == 3.5
    assert second.json()["totalRatings"] == 2

    ratings = client.get(f"/feedback/menu/{bowl.id}").json()
    assert len(ratings) == 2
    assert client.get(f"/menu/{bowl.id}").json()["ratingCount"] == 2


def test_one_rating_per_customer(client, customer, bowl):
    client.post(f"/feedback/menu/{bowl.id}", json={"rating": 4}, headers=auth(customer))

    again = client.post(f"/feedback/menu/{bowl.id}", json={"rating": 1}, headers=auth(customer))

    assert again.status_code == 400
    assert again.json()["code"] == "ALREADY_RATED"


def test_rating_unknown_item(client, customer):
    assert client.post("/feedback/menu/999", json={"rating": 4}, headers=auth(customer)).status_code == 404


def test_dashboard(client, customer, admin, bowl, sold_out):
    for order_type in ["dine-in", "takeaway"]:
        body = {"items": [{"menuItem": bowl.id, "quantity": 2}], "orderType": order_type}
        client.post("/orders", json=body, headers=auth(customer))
    client.put("/orders/1/status", json={"status": "served"}, headers=auth(admin))

    response = client.get("/admin/dashboard?period=1d", headers=auth(admin))

    assert response.status_code == 200
    data = response.json()
    assert data["period"] == "1d"
    assert data["totalOrders"] == 2
    assert data["totalRevenue"] == 1321.6
    assert data["completedOrders"] == 1
    assert data["pendingOrders"] == 1
    assert data["activeCustomers"] == 1
    assert data["availableMenuItems"] == 1
    assert {row["status"]: row["count"] for row in data["ordersByStatus"]} == {"pending": 1, "served": 1}
    assert sum(day["orders"] for day in data["revenueByDay"]) == 2


def test_dashboard_is_admin_only(client, customer, admin):
    assert client.get("/admin/dashboard", headers=auth(customer)).status_code == 403
    assert client.get("/admin/dashboard?period=1y", headers=auth(admin)).status_code == 400


def test_categories(client, bowl, sold_out):
    assert client.get("/menu/categories").json() == {"categories": ["desserts", "main-course"]}


def test_delete_menu_item_removes_its_ratings(client, customer, admin, bowl):
    client.post(f"/feedback/menu/{bowl.id}", json={"rating": 4}, headers=auth(customer))

    assert client.delete(f"/menu/{bowl.id}", headers=auth(customer)).status_code == 403
    assert client.delete(f"/menu/{bowl.id}", headers=auth(admin)).status_code == 200
    assert client.get(f"/menu/{bowl.id}").status_code == 404
    assert client.get(f"/feedback/menu/{bowl.id}").json() == []


def test_sales_analytics_counts_paid_orders_only(client, gateway, customer, admin, bowl):
    for quantity in (2, 1):
        body = {"items": [{"menuItem": bowl.id, "quantity": quantity}], "orderType": "dine-in"}
        client.post("/orders", json=body, headers=auth(customer))
    intent = client.post("/payments/create-payment-intent", json={"orderId": 1}, headers=auth(customer))
    intent_id = intent.json()["paymentIntentId"]
    gateway.succeed(intent_id)
    client.post("/payments/confirm", json={"orderId": 1, "paymentIntentId": intent_id}, headers=auth(customer))

    response = client.get("/admin/analytics/sales?groupBy=month", headers=auth(admin))

    assert response.status_code == 200
    data = response.json()
    assert len(data["salesData"]) == 1
    assert data["salesData"][0]["orders"] == 1
    assert data["salesData"][0]["revenue"] == 660.8
    assert data["salesData"][0]["averageOrderValue"] == 660.8
    assert data["topSellingItems"] == [
        {"menuItemId": bowl.id, "name": "Quinoa Bowl", "quantitySold": 2, "revenue": 560.0}
    ]


def test_admin_lists_and_deactivates_users(client, customer, other_customer, admin):
    page = client.get("/admin/users?role=customer&search=ASHA", headers=auth(admin)).json()
    assert [user["email"] for user in page["users"]] == ["asha@example.com"]
    assert page["pagination"]["totalItems"] == 1

    response = client.put(f"/admin/users/{other_customer.id}/status", json={"isActive": False}, headers=auth(admin))
    assert response.json()["user"]["isActive"] is False
    assert client.get("/users/me", headers=auth(other_customer)).status_code == 401

    own = client.put(f"/admin/users/{admin.id}/status", json={"isActive": False}, headers=auth(admin))
    assert own.status_code == 400
    assert client.put("/admin/users/999/status", json={"isActive": True}, headers=auth(admin)).status_code == 404


def test_customer_analytics(client, session, customer, other_customer, admin):
    other_customer.loyalty_points = 1200
    other_customer.is_active = False
    session.add(other_customer)
    session.add(
        User(name="Meera", email="meera@example.com", loyalty_points=150, created_at=utcnow() - timedelta(days=60))
    )
    session.commit()

    response = client.get("/admin/analytics/customers", headers=auth(admin))

    assert response.status_code == 200
    data = response.json()
    assert data["customerAnalytics"] == {"totalCustomers": 3, "activeCustomers": 2, "newCustomers": 2}
    assert {row["bucket"]: row["count"] for row in data["loyaltyDistribution"]} == {
        "0-99": 1,
        "100-499": 1,
        "500-999": 0,
        "1000-1999": 1,
        "2000+": 0,
    }

    recent = client.get(
        "/admin/analytics/customers",
        params={"startDate": (utcnow() - timedelta(days=10)).isoformat()},
        headers=auth(admin),
    ).json()
    assert recent["customerAnalytics"]["totalCustomers"] == 2
    assert client.get("/admin/analytics/customers", headers=auth(customer)).status_code == 403
