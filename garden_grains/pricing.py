from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable, List, Optional

from .errors import ValidationError
from .models import MenuItem, OrderType

CENT = Decimal("0.01")
ZERO = Decimal("0")

MenuLookup = Callable[[int], Optional[MenuItem]]


def to_money(value) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class PricedLine:
    menu_item_id: int
    name: str
    quantity: int
    unit_price: Decimal
    customization: List[dict] = field(default_factory=list)
    special_instructions: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_document(self) -> dict:
        return {
            "menu_item_id": self.menu_item_id,
            "name": self.name,
            "quantity": self.quantity,
            "price": float(self.unit_price),
            "customization": self.customization,
            "special_instructions": self.special_instructions,
        }


@dataclass
class Quote:
    lines: List[PricedLine]
    subtotal: Decimal
    tax: Decimal
    delivery_fee: Decimal
    discount: Decimal
    total: Decimal


def resolve_customization(menu_item: MenuItem, selections: Iterable[dict]) -> tuple[Decimal, List[dict]]:
    """Match the selected choices against the item's option groups.

    Returns the summed price delta and the normalized selections with the
    catalog prices filled in.
    """
    groups = {group.get("name"): group for group in (menu_item.customization_options or [])}
    delta = ZERO
    resolved = []
    for selection in selections or []:
        option_name = selection.get("option_name")
        chosen = selection.get("selected_choices") or []
        if not chosen:
            continue
        group = groups.get(option_name)
        if group is None:
            raise ValidationError(
                f"{menu_item.name} has no option '{option_name}'",
                code="INVALID_CUSTOMIZATION",
            )
        if group.get("type", "single") == "single" and len(chosen) > 1:
            raise ValidationError(
                f"Only one choice allowed for '{option_name}' on {menu_item.name}",
                code="INVALID_CUSTOMIZATION",
            )
        prices = {choice.get("name"): choice.get("price") or 0 for choice in group.get("choices", [])}
        picked = []
        for choice in chosen:
            name = choice.get("name") if isinstance(choice, dict) else choice
            if name not in prices:
                raise ValidationError(
                    f"'{name}' is not a choice of '{option_name}' on {menu_item.name}",
                    code="INVALID_CUSTOMIZATION",
                )
            price = to_money(prices[name])
            delta += price
            picked.append({"name": name, "price": float(price)})
        resolved.append({"option_name": option_name, "selected_choices": picked})
    return delta, resolved


def price_cart(
    lines: Iterable[dict],
    order_type: str,
    lookup: MenuLookup,
    *,
    discount=ZERO,
    tax_rate=Decimal("0.18"),
    delivery_fee=Decimal("50"),
    tax_on_discounted_subtotal: bool = False,
) -> Quote:
    priced: List[PricedLine] = []
    for line in lines:
        menu_item = lookup(line["menu_item"])
        if menu_item is None:
            raise ValidationError(f"Menu item {line['menu_item']} not found", code="ITEM_NOT_FOUND")
        if not menu_item.is_available:
            raise ValidationError(f"{menu_item.name} is currently unavailable", code="ITEM_UNAVAILABLE")

        delta, customization = resolve_customization(menu_item, line.get("customization") or [])
        priced.append(
            PricedLine(
                menu_item_id=menu_item.id,
                name=menu_item.name,
                quantity=line["quantity"],
                unit_price=to_money(menu_item.price) + delta,
                customization=customization,
                special_instructions=line.get("special_instructions"),
            )
        )

    subtotal = to_money(sum((line.line_total for line in priced), ZERO))
    applied_discount = min(to_money(discount), subtotal)
    taxable = subtotal - applied_discount if tax_on_discounted_subtotal else subtotal
    tax = to_money(taxable * Decimal(str(tax_rate)))
    fee = to_money(delivery_fee) if order_type == OrderType.DELIVERY.value else to_money(ZERO)
    total = subtotal - applied_discount + tax + fee
    return Quote(
        lines=priced,
        subtotal=subtotal,
        tax=tax,
        delivery_fee=fee,
        discount=applied_discount,
        total=total,
    )
