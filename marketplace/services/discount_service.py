import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from tortoise.expressions import Q
from tortoise.transactions import in_transaction

from marketplace.core.clock import as_utc, window_contains
from marketplace.core.exceptions import Forbidden, NotFound, ValidationError
from marketplace.models.catalog import MenuItem, Restaurant
from marketplace.models.discount import Discount, DiscountApplicability, DiscountScope, DiscountType
from marketplace.models.user import RoleCode, User

log = logging.getLogger(__name__)

DISCOUNT_FIELDS = (
    "name", "description", "type", "scope", "value",
    "start_date", "end_date", "is_active", "restaurant_id",
)


# --- Read interface used by the pricing engine ---

async def list_applicability(
    menu_item_ids: Sequence[UUID], now: datetime, conn: Any = None
) -> Dict[UUID, List[DiscountApplicability]]:
    """
    Applicability rows per menu item whose item-scoped discount is active and
    in its validity window, in fetch order. Items without rules map to [].
    """
    result: Dict[UUID, List[DiscountApplicability]] = {mid: [] for mid in menu_item_ids}
    if not menu_item_ids:
        return result

    rows = await DiscountApplicability.filter(
        menu_item_id__in=list(menu_item_ids),
        discount__is_active=True,
        discount__scope=DiscountScope.ITEM,
    ).using_db(conn).prefetch_related("discount").order_by("created_at", "id")

    for row in rows:
        discount = row.discount
        if not window_contains(discount.start_date, discount.end_date, now):
            continue
        if not window_contains(row.start_date, row.end_date, now):
            continue
        result.setdefault(row.menu_item_id, []).append(row)
    return result


async def list_active_order_discounts(
    now: datetime, restaurant_id: Optional[UUID] = None, conn: Any = None
) -> List[Discount]:
    """Active, in-window order-level discounts: global ones plus the restaurant's own."""
    owner = Q(restaurant_id__isnull=True)
    if restaurant_id is not None:
        owner = owner | Q(restaurant_id=restaurant_id)

    discounts = await Discount.filter(
        owner, is_active=True, scope=DiscountScope.ORDER
    ).using_db(conn).prefetch_related("applicable_to").order_by("created_at", "id")
    return [d for d in discounts if window_contains(d.start_date, d.end_date, now)]


# --- Validation ---

def validate_discount_fields(discount_type, value, start_date, end_date) -> None:
    if discount_type not in (DiscountType.PERCENTAGE, DiscountType.FIXED_AMOUNT):
        raise ValidationError("Invalid discount type")
    if value is None or Decimal(value) < 0:
        raise ValidationError("Discount value must be zero or positive")
    if discount_type == DiscountType.PERCENTAGE and Decimal(value) > 100:
        raise ValidationError("Percentage discount cannot exceed 100")
    if start_date and end_date and as_utc(start_date) >= as_utc(end_date):
        raise ValidationError("End date must be after start date")


def validate_applicability(rows: Sequence[Dict[str, Any]]) -> None:
    for row in rows:
        if not row.get("menu_item_id") and not row.get("user_id"):
            raise ValidationError("Applicability rule must reference a menu item or a user")
        if row.get("min_quantity") is not None and row["min_quantity"] < 0:
            raise ValidationError("min_quantity must be zero or positive")
        if row.get("min_amount") is not None and Decimal(row["min_amount"]) < 0:
            raise ValidationError("min_amount must be zero or positive")
        start, end = row.get("start_date"), row.get("end_date")
        if start and end and as_utc(start) >= as_utc(end):
            raise ValidationError("Rule end date must be after start date")


async def _ensure_can_manage(restaurant_id: Optional[UUID], caller: User, conn: Any = None) -> None:
    """Admins manage every discount; restaurateurs only their restaurant's."""
    if caller.role == RoleCode.ADMINISTRATOR:
        if restaurant_id is not None and not await Restaurant.filter(id=restaurant_id).using_db(conn).exists():
            raise NotFound("Restaurant not found")
        return
    if restaurant_id is None:
        raise Forbidden("Only administrators can manage global discounts")
    restaurant = await Restaurant.get_or_none(id=restaurant_id).using_db(conn)
    if not restaurant:
        raise NotFound("Restaurant not found")
    if restaurant.owner_id != caller.id:
        raise Forbidden("You do not have permission to manage discounts of this restaurant")


async def _replace_applicability(discount: Discount, rows: Sequence[Dict[str, Any]], conn: Any) -> None:
    validate_applicability(rows)
    if discount.scope == DiscountScope.ORDER and any(row.get("menu_item_id") for row in rows):
        raise ValidationError("Order-level discounts cannot be linked to menu items")

    item_ids = {row["menu_item_id"] for row in rows if row.get("menu_item_id")}
    if item_ids:
        items = await MenuItem.filter(id__in=list(item_ids)).using_db(conn)
        if len(items) != len(item_ids):
            raise NotFound("One or more menu items not found")
        if discount.restaurant_id and any(i.restaurant_id != discount.restaurant_id for i in items):
            raise ValidationError("Menu items must belong to the discount's restaurant")

    user_ids = {row["user_id"] for row in rows if row.get("user_id")}
    if user_ids and await User.filter(id__in=list(user_ids)).using_db(conn).count() != len(user_ids):
        raise NotFound("One or more users not found")

    await DiscountApplicability.filter(discount_id=discount.id).using_db(conn).delete()
    for row in rows:
        await DiscountApplicability.create(
            discount=discount,
            menu_item_id=row.get("menu_item_id"),
            user_id=row.get("user_id"),
            min_quantity=row.get("min_quantity"),
            min_amount=row.get("min_amount"),
            customer_type=row.get("customer_type"),
            start_date=row.get("start_date"),
            end_date=row.get("end_date"),
            using_db=conn,
        )


# --- Management ---

async def get_discount(discount_id: UUID) -> Discount:
    discount = await Discount.get_or_none(id=discount_id).prefetch_related("applicable_to")
    if not discount:
        raise NotFound("Discount not found")
    return discount


async def list_discounts(restaurant_id: Optional[UUID] = None) -> List[Discount]:
    query = Discount.all()
    if restaurant_id is not None:
        query = query.filter(restaurant_id=restaurant_id)
    return await query.prefetch_related("applicable_to").order_by("created_at")


async def create_discount(data: Dict[str, Any], caller: User) -> Discount:
    """
    Creates a discount and its applicability rows. ``data`` carries the
    discount fields plus an optional ``applicable_to`` list.
    """
    rows = data.get("applicable_to") or []
    validate_discount_fields(data.get("type"), data.get("value"), data.get("start_date"), data.get("end_date"))

    async with in_transaction() as conn:
        await _ensure_can_manage(data.get("restaurant_id"), caller, conn)
        discount = await Discount.create(
            **{k: data[k] for k in DISCOUNT_FIELDS if k in data},
            using_db=conn,
        )
        await _replace_applicability(discount, rows, conn)

    log.info("Discount %s (%s %s) created by %s", discount.id, discount.type, discount.value, caller.id)
    return await get_discount(discount.id)


async def update_discount(discount_id: UUID, changes: Dict[str, Any], caller: User) -> Discount:
    """Partial update; ``applicable_to``, when given, replaces every row."""
    async with in_transaction() as conn:
        discount = await Discount.get_or_none(id=discount_id).using_db(conn)
        if not discount:
            raise NotFound("Discount not found")
        await _ensure_can_manage(discount.restaurant_id, caller, conn)

        for key in DISCOUNT_FIELDS:
            if key in changes and key != "restaurant_id":
                setattr(discount, key, changes[key])
        validate_discount_fields(discount.type, discount.value, discount.start_date, discount.end_date)
        if (
            discount.scope == DiscountScope.ORDER
            and changes.get("applicable_to") is None
            and await DiscountApplicability.filter(
                discount_id=discount.id, menu_item_id__isnull=False
            ).using_db(conn).exists()
        ):
            raise ValidationError("Order-level discounts cannot be linked to menu items")
        await discount.save(using_db=conn)

        if changes.get("applicable_to") is not None:
            await _replace_applicability(discount, changes["applicable_to"], conn)

    return await get_discount(discount_id)


async def delete_discount(discount_id: UUID, caller: User) -> None:
    async with in_transaction() as conn:
        discount = await Discount.get_or_none(id=discount_id).using_db(conn)
        if not discount:
            raise NotFound("Discount not found")
        await _ensure_can_manage(discount.restaurant_id, caller, conn)
        await DiscountApplicability.filter(discount_id=discount_id).using_db(conn).delete()
        await discount.delete(using_db=conn)
    log.info("Discount %s deleted by %s", discount_id, caller.id)


async def set_applicability(discount_id: UUID, rows: Sequence[Dict[str, Any]], caller: User) -> Discount:
    async with in_transaction() as conn:
        discount = await Discount.get_or_none(id=discount_id).using_db(conn)
        if not discount:
            raise NotFound("Discount not found")
        await _ensure_can_manage(discount.restaurant_id, caller, conn)
        await _replace_applicability(discount, rows, conn)
    return await get_discount(discount_id)


async def apply_to_restaurant(discount_id: UUID, restaurant_id: UUID, caller: User) -> int:
    """
    Links the discount to every menu item of the restaurant, one row per item.
    Items already linked keep their existing row. Returns the number of rows created.
    """
    async with in_transaction() as conn:
        discount = await Discount.get_or_none(id=discount_id).using_db(conn)
        if not discount:
            raise NotFound("Discount not found")
        if discount.scope == DiscountScope.ORDER:
            raise ValidationError("Order-level discounts cannot be linked to menu items")
        if discount.restaurant_id and discount.restaurant_id != restaurant_id:
            raise ValidationError("Discount belongs to another restaurant")
        await _ensure_can_manage(restaurant_id, caller, conn)

        items = await MenuItem.filter(restaurant_id=restaurant_id).using_db(conn).order_by("created_at")
        linked = {
            str(item_id) for item_id in
            await DiscountApplicability.filter(
                discount_id=discount_id, menu_item_id__isnull=False
            ).using_db(conn).values_list("menu_item_id", flat=True)
        }
        created = 0
        for item in items:
            if str(item.id) in linked:
                continue
            await DiscountApplicability.create(discount=discount, menu_item=item, using_db=conn)
            created += 1

    log.info("Discount %s applied to %s new items of restaurant %s", discount_id, created, restaurant_id)
    return created
