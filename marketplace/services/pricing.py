"""
Pricing engine.

``compute_total`` is a pure function: given order lines, the discount rules
linked to each menu item and the order-level rules, it returns the priced
breakdown. ``quote`` is the async adapter that loads those rules from the
discount store first.

Rules are applied to the running price in the order they were fetched, so a
rule sees the price already reduced by the rules before it. Prices are not
clamped at zero: misconfigured rules can produce a negative total.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import AbstractSet, Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import UUID

from marketplace.core.clock import utcnow, window_contains
from marketplace.models.catalog import MenuItem
from marketplace.models.discount import Discount, DiscountApplicability, DiscountType
from marketplace.models.user import CustomerType, User
from marketplace.services import discount_service

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class DiscountRule:
    """A discount as seen through one applicability row (or none)."""
    discount_id: UUID
    type: DiscountType
    value: Decimal
    is_active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    min_quantity: Optional[int] = None
    min_amount: Optional[Decimal] = None
    customer_type: Optional[CustomerType] = None
    user_id: Optional[UUID] = None
    menu_item_id: Optional[UUID] = None
    rule_start: Optional[datetime] = None
    rule_end: Optional[datetime] = None


@dataclass(frozen=True)
class PricingLine:
    menu_item_id: UUID
    unit_price: Decimal
    quantity: int


@dataclass(frozen=True)
class LinePrice:
    menu_item_id: UUID
    quantity: int
    base_unit_price: Decimal
    unit_price: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class PriceBreakdown:
    lines: List[LinePrice]
    subtotal: Decimal
    total: Decimal
    order_discount_ids: List[UUID]


def to_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def rule_from_applicability(row: DiscountApplicability) -> DiscountRule:
    """Builds a rule from an applicability row with its discount loaded."""
    discount = row.discount
    return DiscountRule(
        discount_id=discount.id,
        type=discount.type,
        value=Decimal(discount.value),
        is_active=discount.is_active,
        start_date=discount.start_date,
        end_date=discount.end_date,
        min_quantity=row.min_quantity,
        min_amount=row.min_amount,
        customer_type=row.customer_type,
        user_id=row.user_id,
        menu_item_id=row.menu_item_id,
        rule_start=row.start_date,
        rule_end=row.end_date,
    )


def rules_from_order_discount(discount: Discount) -> List[DiscountRule]:
    """
    An order-level discount with no applicability rows applies to everyone;
    otherwise each row is an alternative gate (e.g. one row per referred user).
    A row naming a menu item only opens when that item is in the order.
    """
    base = DiscountRule(
        discount_id=discount.id,
        type=discount.type,
        value=Decimal(discount.value),
        is_active=discount.is_active,
        start_date=discount.start_date,
        end_date=discount.end_date,
    )
    rows = list(discount.applicable_to)
    if not rows:
        return [base]
    return [
        DiscountRule(
            discount_id=base.discount_id,
            type=base.type,
            value=base.value,
            is_active=base.is_active,
            start_date=base.start_date,
            end_date=base.end_date,
            min_quantity=row.min_quantity,
            min_amount=row.min_amount,
            customer_type=row.customer_type,
            user_id=row.user_id,
            menu_item_id=row.menu_item_id,
            rule_start=row.start_date,
            rule_end=row.end_date,
        )
        for row in rows
    ]


def rule_in_effect(rule: DiscountRule, now: datetime) -> bool:
    return (
        rule.is_active
        and window_contains(rule.start_date, rule.end_date, now)
        and window_contains(rule.rule_start, rule.rule_end, now)
    )


def rule_matches(
    rule: DiscountRule,
    quantity: int,
    amount: Decimal,
    customer_type: Optional[CustomerType],
    user_id: Optional[UUID],
    menu_item_ids: Optional[AbstractSet[UUID]] = None,
) -> bool:
    if rule.min_quantity is not None and quantity < rule.min_quantity:
        return False
    if rule.min_amount is not None and amount < rule.min_amount:
        return False
    if rule.customer_type is not None and rule.customer_type != customer_type:
        return False
    if rule.user_id is not None and rule.user_id != user_id:
        return False
    if rule.menu_item_id is not None and menu_item_ids is not None and rule.menu_item_id not in menu_item_ids:
        return False
    return True


def apply_rule(price: Decimal, rule: DiscountRule) -> Decimal:
    if rule.type == DiscountType.PERCENTAGE:
        return price - price * rule.value / HUNDRED
    if rule.type == DiscountType.FIXED_AMOUNT:
        return price - rule.value
    raise ValueError(f"Unknown discount type: {rule.type}")


def _apply_matching(
    price: Decimal,
    rules: Iterable[DiscountRule],
    now: datetime,
    quantity: int,
    amount: Decimal,
    customer_type: Optional[CustomerType],
    user_id: Optional[UUID],
    menu_item_ids: Optional[AbstractSet[UUID]] = None,
) -> Tuple[Decimal, List[UUID]]:
    # A discount is applied at most once even if several of its rows match.
    applied: List[UUID] = []
    for rule in rules:
        if rule.discount_id in applied:
            continue
        if not rule_in_effect(rule, now):
            continue
        if not rule_matches(rule, quantity, amount, customer_type, user_id, menu_item_ids):
            continue
        price = apply_rule(price, rule)
        applied.append(rule.discount_id)
    return price, applied


def price_line(
    line: PricingLine,
    rules: Sequence[DiscountRule],
    now: datetime,
    customer_type: Optional[CustomerType] = None,
    user_id: Optional[UUID] = None,
) -> LinePrice:
    base = Decimal(line.unit_price)
    unit, _ = _apply_matching(
        base, rules, now,
        quantity=line.quantity,
        amount=base * line.quantity,
        customer_type=customer_type,
        user_id=user_id,
    )
    return LinePrice(
        menu_item_id=line.menu_item_id,
        quantity=line.quantity,
        base_unit_price=base,
        unit_price=unit,
        line_total=to_money(unit * line.quantity),
    )


def compute_total(
    lines: Sequence[PricingLine],
    item_rules: Mapping[UUID, Sequence[DiscountRule]],
    order_rules: Sequence[DiscountRule] = (),
    now: Optional[datetime] = None,
    customer_type: Optional[CustomerType] = None,
    user_id: Optional[UUID] = None,
) -> PriceBreakdown:
    """Prices every line with its item rules, then runs the order-level pass."""
    now = now or utcnow()
    priced = [
        price_line(line, item_rules.get(line.menu_item_id, ()), now, customer_type, user_id)
        for line in lines
    ]
    # line totals are already in cents, so the stored lines add up to the subtotal
    subtotal = sum((p.line_total for p in priced), Decimal("0"))
    quantity = sum(line.quantity for line in lines)
    total, applied = _apply_matching(
        subtotal, order_rules, now,
        quantity=quantity,
        amount=subtotal,
        customer_type=customer_type,
        user_id=user_id,
        menu_item_ids={line.menu_item_id for line in lines},
    )
    return PriceBreakdown(
        lines=priced,
        subtotal=to_money(subtotal),
        total=to_money(total),
        order_discount_ids=applied,
    )


async def quote(
    items: Sequence[Tuple[MenuItem, int]],
    restaurant_id: UUID,
    user: Optional[User] = None,
    now: Optional[datetime] = None,
    conn=None,
) -> PriceBreakdown:
    """
    Prices ``(menu_item, quantity)`` pairs against the rules currently stored
    for them. Read-only.
    """
    now = now or utcnow()
    lines = [PricingLine(menu_item_id=m.id, unit_price=m.price, quantity=q) for m, q in items]

    rows_by_item = await discount_service.list_applicability(
        [line.menu_item_id for line in lines], now, conn=conn
    )
    item_rules = {
        item_id: [rule_from_applicability(row) for row in rows]
        for item_id, rows in rows_by_item.items()
    }
    order_discounts = await discount_service.list_active_order_discounts(now, restaurant_id, conn=conn)
    order_rules = [rule for d in order_discounts for rule in rules_from_order_discount(d)]

    return compute_total(
        lines,
        item_rules,
        order_rules,
        now=now,
        customer_type=user.customer_type if user else None,
        user_id=user.id if user else None,
    )
