from __future__ import annotations

import json
import logging
import math
from datetime import date, datetime
from typing import Annotated, List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from . import crud, discounts, lifecycle, loyalty, ordering, payments, schemas
from .config import Settings, get_settings
from .database import engine, get_session, init_db
from .errors import ForbiddenError, OrderingError, UnavailableError, ValidationError
from .gateway import PaymentGateway, verify_signature
from .models import Order, Role, User, as_utc
from .notifier import Notifier

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Garden Grains Orders", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    if settings.seed_menu:
        with Session(engine) as session:
            crud.ensure_default_menu_items(session)
    app.state.payment_gateway = PaymentGateway.from_settings(settings)
    app.state.notifier = Notifier(settings)


@app.on_event("shutdown")
def on_shutdown() -> None:
    gateway = getattr(app.state, "payment_gateway", None)
    if gateway is not None:
        gateway.close()


@app.exception_handler(OrderingError)
async def handle_ordering_error(request: Request, exc: OrderingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part not in ("body", "query", "path", "header")),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Validation failed", "code": "VALIDATION_ERROR", "errors": errors},
    )


# -------------------------
# Dependencies
# -------------------------

def get_current_user(
    x_user_id: Annotated[Optional[int], Header(alias="X-User-Id")] = None,
    session: Session = Depends(get_session),
) -> User:
    user = crud.get_user(session, x_user_id) if x_user_id is not None else None
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user


def require_admin(user: Annotated[User, Depends(get_current_user)]) -> User:
    if user.role != Role.ADMIN.value:
        raise ForbiddenError("Admin access required")
    return user


def get_payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payment_gateway


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_app_settings() -> Settings:
    return get_settings()


CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(require_admin)]
Gateway = Annotated[PaymentGateway, Depends(get_payment_gateway)]
NotifierDep = Annotated[Notifier, Depends(get_notifier)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]


def _pagination(page: int, limit: int, total: int) -> schemas.Pagination:
    return schemas.Pagination(
        current_page=page,
        total_pages=math.ceil(total / limit) if total else 0,
        total_items=total,
    )


def _order_read(order: Order) -> schemas.OrderRead:
    feedback = None
    if order.feedback_submitted_at is not None:
        feedback = schemas.FeedbackRead(
            rating=order.feedback_rating,
            comment=order.feedback_comment,
            submitted_at=order.feedback_submitted_at,
        )
    data = order.model_dump()
    data["status_display"] = lifecycle.status_display(order.status)
    data["feedback"] = feedback
    return schemas.OrderRead.model_validate(data)


@app.get("/health")
def health_check() -> dict:
    return {"status": "ok"}


# -------------------------
# Users
# -------------------------

@app.get("/users/me", response_model=schemas.UserProfile)
def read_profile(user: CurrentUser):
    return user


@app.put("/users/profile", response_model=schemas.ProfileUpdateResponse)
def update_profile(
    payload: schemas.ProfileUpdate,
    user: CurrentUser,
    session: Session = Depends(get_session),
):
    user = crud.update_profile(session, user, payload.model_dump(exclude_unset=True))
    return schemas.ProfileUpdateResponse(
        message="Profile updated successfully",
        user=schemas.UserProfile.model_validate(user),
    )


@app.get("/users/loyalty-points", response_model=schemas.LoyaltyHistoryResponse)
def loyalty_points(user: CurrentUser, app_settings: AppSettings, session: Session = Depends(get_session)):
    return schemas.LoyaltyHistoryResponse(**loyalty.history(session, user, app_settings.loyalty_points_divisor))


# -------------------------
# Menu
# -------------------------

@app.get("/menu", response_model=List[schemas.MenuItemRead])
def list_menu_items(
    available_only: bool = False,
    category: Optional[str] = None,
    session: Session = Depends(get_session),
):
    return crud.list_menu_items(session, available_only=available_only, category=category)


@app.get("/menu/categories", response_model=schemas.MenuCategoriesResponse)
def list_menu_categories(session: Session = Depends(get_session)):
    return schemas.MenuCategoriesResponse(categories=crud.list_categories(session))


@app.get("/menu/{menu_item_id}", response_model=schemas.MenuItemRead)
def get_menu_item(menu_item_id: int, session: Session = Depends(get_session)):
    return crud.get_menu_item(session, menu_item_id)


@app.post("/menu", response_model=schemas.MenuItemRead, status_code=status.HTTP_201_CREATED)
def create_menu_item(
    payload: schemas.MenuItemCreate,
    _: AdminUser,
    session: Session = Depends(get_session),
):
    return crud.create_menu_item(session, payload.model_dump(mode="json"))


@app.put("/menu/{menu_item_id}", response_model=schemas.MenuItemRead)
def update_menu_item(
    menu_item_id: int,
    payload: schemas.MenuItemUpdate,
    _: AdminUser,
    session: Session = Depends(get_session),
):
    menu_item = crud.get_menu_item(session, menu_item_id)
    return crud.update_menu_item(session, menu_item, payload.model_dump(mode="json", exclude_unset=True))


@app.delete("/menu/{menu_item_id}")
def delete_menu_item(menu_item_id: int, _: AdminUser, session: Session = Depends(get_session)):
    menu_item = crud.get_menu_item(session, menu_item_id)
    crud.delete_menu_item(session, menu_item)
    return {"message": "Menu item deleted successfully"}


# -------------------------
# Orders
# -------------------------

@app.post("/orders", response_model=schemas.OrderCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: schemas.OrderCreate,
    user: CurrentUser,
    notifier: NotifierDep,
    app_settings: AppSettings,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
):
    order, notice = ordering.place_order(session, user, payload.model_dump(), app_settings)
    background_tasks.add_task(notifier.notify_order_placed, notice)
    background_tasks.add_task(notifier.notify_staff_new_order, notice, ordering.admin_emails(session))
    return schemas.OrderCreatedResponse(
        message="Order created successfully",
        order=schemas.OrderCreated.model_validate(order),
    )


@app.get("/orders", response_model=schemas.OrderPage)
def list_my_orders(
    user: CurrentUser,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    order_status: Optional[str] = Query(default=None, alias="status"),
    session: Session = Depends(get_session),
):
    orders, total = ordering.list_orders(session, customer_id=user.id, status=order_status, page=page, limit=limit)
    return schemas.OrderPage(orders=[_order_read(o) for o in orders], pagination=_pagination(page, limit, total))


@app.get("/orders/admin/all", response_model=schemas.OrderPage)
def list_all_orders(
    _: AdminUser,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    order_status: Optional[str] = Query(default=None, alias="status"),
    date_from: Optional[datetime] = Query(default=None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(default=None, alias="dateTo"),
    session: Session = Depends(get_session),
):
    orders, total = ordering.list_orders(
        session,
        status=order_status,
        date_from=as_utc(date_from) if date_from else None,
        date_to=as_utc(date_to) if date_to else None,
        page=page,
        limit=limit,
    )
    return schemas.OrderPage(orders=[_order_read(o) for o in orders], pagination=_pagination(page, limit, total))


@app.get("/orders/{order_id}", response_model=schemas.OrderRead)
def get_order(order_id: int, user: CurrentUser, session: Session = Depends(get_session)):
    return _order_read(ordering.get_order_for(session, order_id, user))


@app.put("/orders/{order_id}/status", response_model=schemas.OrderStatusResponse)
def update_order_status(
    order_id: int,
    payload: schemas.OrderStatusUpdate,
    _: AdminUser,
    notifier: NotifierDep,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
):
    order = ordering.get_order(session, order_id)
    order, notice = ordering.update_status(session, order, payload.status, payload.kitchen_notes)
    if notice is not None:
        background_tasks.add_task(notifier.notify_status_changed, notice)
    return schemas.OrderStatusResponse(
        message="Order status updated successfully",
        order=schemas.OrderStatusSummary(
            id=order.id,
            order_number=order.order_number,
            status=order.status,
            status_display=lifecycle.status_display(order.status),
        ),
    )


@app.post("/orders/{order_id}/feedback", response_model=schemas.FeedbackResponse)
def add_order_feedback(
    order_id: int,
    payload: schemas.FeedbackCreate,
    user: CurrentUser,
    session: Session = Depends(get_session),
):
    order = ordering.get_order_for(session, order_id, user, allow_admin=False)
    order = ordering.add_feedback(session, order, payload.rating, payload.comment)
    return schemas.FeedbackResponse(
        message="Feedback submitted successfully",
        feedback=schemas.FeedbackRead(
            rating=order.feedback_rating,
            comment=order.feedback_comment,
            submitted_at=order.feedback_submitted_at,
        ),
    )


# -------------------------
# Discounts
# -------------------------

@app.post("/discounts/validate", response_model=schemas.DiscountValidateResponse)
def validate_discount(
    payload: schemas.DiscountValidateRequest,
    _: CurrentUser,
    session: Session = Depends(get_session),
):
    offer = discounts.validate(session, payload.code, payload.order_total)
    return schemas.DiscountValidateResponse(
        valid=True,
        discount=schemas.DiscountApplied(
            code=offer.code,
            description=offer.description,
            discount_amount=float(offer.discount_amount),
            type=offer.discount_type,
        ),
    )


@app.get("/discounts", response_model=List[schemas.DiscountRead])
def list_discounts(_: CurrentUser, session: Session = Depends(get_session)):
    return discounts.list_usable(session)


@app.post("/discounts", response_model=schemas.DiscountRead, status_code=status.HTTP_201_CREATED)
def create_discount(
    payload: schemas.DiscountCreate,
    _: AdminUser,
    session: Session = Depends(get_session),
):
    data = payload.model_dump()
    data["discount_type"] = payload.discount_type.value
    return discounts.create_discount(session, data)


# -------------------------
# Payments
# -------------------------

@app.post("/payments/create-payment-intent", response_model=schemas.PaymentIntentResponse)
def create_payment_intent(
    payload: schemas.PaymentIntentRequest,
    user: CurrentUser,
    gateway: Gateway,
    app_settings: AppSettings,
    session: Session = Depends(get_session),
):
    return payments.create_payment_intent(session, gateway, payload.order_id, user, app_settings.currency)


@app.post("/payments/confirm", response_model=schemas.PaymentConfirmResponse)
def confirm_payment(
    payload: schemas.PaymentConfirmRequest,
    user: CurrentUser,
    gateway: Gateway,
    session: Session = Depends(get_session),
):
    order = payments.confirm_payment(session, gateway, payload.order_id, payload.payment_intent_id, user)
    return schemas.PaymentConfirmResponse(
        message="Payment confirmed successfully",
        order=schemas.PaymentOrderSummary.model_validate(order),
    )


@app.post("/payments/refund", response_model=schemas.RefundResponse)
def refund_payment(
    payload: schemas.RefundRequest,
    user: CurrentUser,
    gateway: Gateway,
    session: Session = Depends(get_session),
):
    refund = payments.refund_payment(session, gateway, payload.order_id, user, payload.amount)
    return schemas.RefundResponse(message="Refund processed successfully", refund=refund)


@app.post("/payments/webhook")
async def payment_webhook(
    request: Request,
    app_settings: AppSettings,
    stripe_signature: Annotated[Optional[str], Header(alias="Stripe-Signature")] = None,
    session: Session = Depends(get_session),
):
    body = await request.body()
    if not app_settings.payment_webhook_secret:
        raise UnavailableError("Payment webhooks are not configured", code="WEBHOOK_NOT_CONFIGURED")
    verify_signature(body, stripe_signature, app_settings.payment_webhook_secret)
    try:
        event = json.loads(body)
    except ValueError as exc:
        raise ValidationError("Webhook body is not valid JSON") from exc
    order = await run_in_threadpool(payments.apply_gateway_event, session, event)
    return {"received": True, "paymentStatus": order.payment_status if order else None}


# -------------------------
# Reservations
# -------------------------

@app.post("/reservations", status_code=status.HTTP_201_CREATED, response_model=schemas.ReservationRead)
def create_reservation(
    payload: schemas.ReservationCreate,
    user: CurrentUser,
    notifier: NotifierDep,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
):
    reservation, notice = crud.create_reservation(session, user, payload.model_dump())
    background_tasks.add_task(notifier.notify_reservation_created, notice)
    return reservation


@app.get("/reservations", response_model=schemas.ReservationPage)
def list_my_reservations(
    user: CurrentUser,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    reservation_status: Optional[str] = Query(default=None, alias="status"),
    session: Session = Depends(get_session),
):
    reservations, total = crud.list_reservations(
        session, customer_id=user.id, status=reservation_status, page=page, limit=limit
    )
    return schemas.ReservationPage(
        reservations=[schemas.ReservationRead.model_validate(r) for r in reservations],
        pagination=_pagination(page, limit, total),
    )


@app.get("/reservations/admin/all", response_model=schemas.ReservationPage)
def list_all_reservations(
    _: AdminUser,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    reservation_status: Optional[str] = Query(default=None, alias="status"),
    on_date: Optional[date] = Query(default=None, alias="date"),
    session: Session = Depends(get_session),
):
    reservations, total = crud.list_reservations(
        session, status=reservation_status, on_date=on_date, page=page, limit=limit
    )
    return schemas.ReservationPage(
        reservations=[schemas.ReservationRead.model_validate(r) for r in reservations],
        pagination=_pagination(page, limit, total),
    )


@app.put("/reservations/{reservation_id}/status", response_model=schemas.ReservationRead)
def update_reservation_status(
    reservation_id: int,
    payload: schemas.ReservationStatusUpdate,
    admin: AdminUser,
    session: Session = Depends(get_session),
):
    reservation = crud.get_reservation(session, reservation_id)
    return crud.update_reservation_status(session, reservation, payload.status, admin, payload.notes)


@app.delete("/reservations/{reservation_id}")
def cancel_reservation(reservation_id: int, user: CurrentUser, session: Session = Depends(get_session)):
    reservation = crud.get_reservation(session, reservation_id)
    crud.cancel_reservation(session, reservation, user)
    return {"message": "Reservation cancelled successfully"}


# -------------------------
# Menu ratings
# -------------------------

@app.post(
    "/feedback/menu/{menu_item_id}",
    response_model=schemas.MenuRatingResponse,
    status_code=status.HTTP_201_CREATED,
)
def rate_menu_item(
    menu_item_id: int,
    payload: schemas.MenuRatingCreate,
    user: CurrentUser,
    session: Session = Depends(get_session),
):
    menu_item = crud.get_menu_item(session, menu_item_id)
    menu_item = crud.rate_menu_item(session, menu_item, user, payload.rating, payload.comment)
    return schemas.MenuRatingResponse(
        message="Feedback submitted successfully",
        rating=payload.rating,
        comment=payload.comment,
        average_rating=menu_item.rating_average,
        total_ratings=menu_item.rating_count,
    )


@app.get("/feedback/menu/{menu_item_id}", response_model=List[schemas.MenuRatingRead])
def list_menu_ratings(menu_item_id: int, session: Session = Depends(get_session)):
    return crud.list_menu_ratings(session, menu_item_id)


# -------------------------
# Admin
# -------------------------

@app.get("/admin/dashboard", response_model=schemas.DashboardResponse)
def admin_dashboard(
    _: AdminUser,
    period: str = Query(default="7d", pattern="^(1d|7d|30d)$"),
    session: Session = Depends(get_session),
):
    return schemas.DashboardResponse(**crud.compute_dashboard(session, period))


@app.get("/admin/analytics/sales", response_model=schemas.SalesAnalyticsResponse)
def sales_analytics(
    _: AdminUser,
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    group_by: str = Query(default="day", alias="groupBy", pattern="^(hour|day|month)$"),
    session: Session = Depends(get_session),
):
    data = crud.sales_analytics(
        session,
        start=as_utc(start_date) if start_date else None,
        end=as_utc(end_date) if end_date else None,
        group_by=group_by,
    )
    return schemas.SalesAnalyticsResponse(**data)


@app.get("/admin/analytics/customers", response_model=schemas.CustomerAnalyticsResponse)
def customer_analytics(
    _: AdminUser,
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    session: Session = Depends(get_session),
):
    data = crud.customer_analytics(
        session,
        start=as_utc(start_date) if start_date else None,
        end=as_utc(end_date) if end_date else None,
    )
    return schemas.CustomerAnalyticsResponse(**data)


@app.get("/admin/users", response_model=schemas.UserPage)
def list_users(
    _: AdminUser,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    role: Optional[str] = None,
    search: Optional[str] = None,
    session: Session = Depends(get_session),
):
    users, total = crud.list_users(session, role=role, search=search, page=page, limit=limit)
    return schemas.UserPage(
        users=[schemas.UserAdminRead.model_validate(u) for u in users],
        pagination=_pagination(page, limit, total),
    )


@app.put("/admin/users/{user_id}/status", response_model=schemas.UserStatusResponse)
def update_user_status(
    user_id: int,
    payload: schemas.UserStatusUpdate,
    admin: AdminUser,
    session: Session = Depends(get_session),
):
    if user_id == admin.id and not payload.is_active:
        raise ValidationError("You cannot deactivate your own account")
    user = crud.set_user_active(session, user_id, payload.is_active)
    return schemas.UserStatusResponse(
        message="User status updated successfully",
        user=schemas.UserAdminRead.model_validate(user),
    )
