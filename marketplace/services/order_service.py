import logging
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from tortoise.transactions import in_transaction

from marketplace.core.exceptions import Forbidden, InvalidState, NotFound, ValidationError
from marketplace.core.locks import order_lock
from marketplace.events.outbox_utility import create_outbox_event
from marketplace.models.catalog import MenuItem, Restaurant, RestaurantStatus
from marketplace.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from marketplace.models.user import RoleCode, User
from marketplace.services.pricing import PriceBreakdown, quote, to_money
from marketplace.services.user_service import get_user

log = logging.getLogger(__name__)

# Fields a caller may change on a PENDING order. The total is never one of them.
MUTABLE_FIELDS = (
    "delivery_address",
    "delivery_instructions",
    "delivery_method",
    "customer_notes",
    "payment_method",
    "discount_code",
    "estimated_delivery_date",
)


# --- Helpers ---

def _merge_lines(lines: Iterable[Dict[str, Any]]) -> Dict[UUID, int]:
    """Validates requested lines and folds repeated menu items into one quantity."""
    merged: Dict[UUID, int] = {}
    for line in lines or []:
        try:
            menu_item_id = UUID(str(line["menu_item_id"]))
            quantity = int(line["quantity"])
        except (KeyError, TypeError, ValueError):
            raise ValidationError("Each line needs a valid menu_item_id and quantity")
        if quantity < 1:
            raise ValidationError(f"Quantity for menu item {menu_item_id} must be at least 1")
        merged[menu_item_id] = merged.get(menu_item_id, 0) + quantity
    if not merged:
        raise ValidationError("Order must contain items.")
    return merged


def _coerce(enum_cls, value):
    """Accepts an enum member, its value or its name; anything else is rejected."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        pass
    try:
        return enum_cls[str(value).upper()]
    except KeyError:
        raise ValidationError(f"Unknown {enum_cls.__name__}: {value}")


def _mutable_fields(fields: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {k: v for k, v in (fields or {}).items() if k in MUTABLE_FIELDS}


def _ensure_pending(order: Order) -> None:
    if order.status != OrderStatus.PENDING:
        raise InvalidState(
            f"Cannot modify an order that is currently {OrderStatus(order.status).value.lower()}"
        )


def _ensure_owner(order: Order, caller: Optional[User]) -> None:
    """Only the customer who placed the order (or an administrator) may touch it."""
    if caller is None or caller.role == RoleCode.ADMINISTRATOR:
        return
    if order.user_id != caller.id:
        raise Forbidden("You do not have permission to access this order")


async def _ensure_open_restaurant(restaurant_id: UUID, conn: Any) -> Restaurant:
    restaurant = await Restaurant.get_or_none(id=restaurant_id).using_db(conn)
    if not restaurant:
        raise NotFound("Restaurant not found")
    if restaurant.status != RestaurantStatus.APPROVED:
        raise ValidationError("Restaurant is not accepting orders")
    return restaurant


async def _lock_order(order_id: UUID, conn: Any) -> Order:
    order = await Order.filter(id=order_id).using_db(conn).select_for_update().first()
    if not order:
        raise NotFound("Order not found")
    return order


async def _menu_items_of_restaurant(menu_item_ids: Iterable[UUID], restaurant_id: UUID, conn: Any) -> Dict[UUID, MenuItem]:
    ids = list(menu_item_ids)
    menu_items = await MenuItem.filter(id__in=ids, restaurant_id=restaurant_id, is_active=True).using_db(conn)
    if len(menu_items) != len(ids):
        raise ValidationError("One or more items not found in the restaurant's menu")
    return {m.id: m for m in menu_items}


async def _reprice(order: Order, conn: Any) -> PriceBreakdown:
    """Re-derives every line snapshot and the order total from the stored lines."""
    lines = await OrderItem.filter(order_id=order.id).using_db(conn).prefetch_related("menu_item").order_by("created_at", "id")
    user = await get_user(order.user_id, conn)
    breakdown = await quote([(line.menu_item, line.quantity) for line in lines], order.restaurant_id, user=user, conn=conn)

    priced = {p.menu_item_id: p for p in breakdown.lines}
    for line in lines:
        p = priced[line.menu_item_id]
        line.unit_price = to_money(p.unit_price)
        line.line_total = to_money(p.line_total)
        await line.save(update_fields=["unit_price", "line_total"], using_db=conn)

    order.total_price = breakdown.total
    return breakdown


def _items_payload(requested: Dict[UUID, int]) -> List[Dict[str, Any]]:
    return [{"menu_item_id": str(mid), "quantity": qty} for mid, qty in requested.items()]


async def _emit(order: Order, event_type: str, payload: Dict[str, Any], conn: Any) -> None:
    await create_outbox_event(
        aggregate_type="order",
        aggregate_id=order.id,
        event_type=event_type,
        payload={"order_id": str(order.id), "user_id": str(order.user_id), **payload},
        conn=conn,
    )


# --- Operations ---

async def get_order(order_id: UUID, caller: Optional[User] = None) -> Order:
    """
    Fetches an order with its lines and their menu items. With a ``caller``,
    the order is visible to its customer, to the restaurant owner and to
    administrators.
    """
    order = await Order.get_or_none(id=order_id).prefetch_related("items", "items__menu_item")
    if not order:
        raise NotFound("Order not found")
    if caller is not None and order.user_id != caller.id:
        if not await Restaurant.filter(id=order.restaurant_id, owner_id=caller.id).exists():
            _ensure_owner(order, caller)
    return order


async def create_order(
    user_id: UUID,
    restaurant_id: UUID,
    lines: List[Dict[str, Any]],
    delivery_details: Optional[Dict[str, Any]] = None,
) -> Order:
    """
    Creates a PENDING order from a cart. Every requested menu item must be an
    active item of ``restaurant_id``; the total comes from the pricing engine.
    Emits 'order.created.v1' in the same transaction.
    """
    requested = _merge_lines(lines)

    async with in_transaction() as conn:
        user = await get_user(user_id, conn)
        restaurant = await _ensure_open_restaurant(restaurant_id, conn)

        menu_map = await _menu_items_of_restaurant(requested.keys(), restaurant.id, conn)
        breakdown = await quote(
            [(menu_map[mid], qty) for mid, qty in requested.items()],
            restaurant.id,
            user=user,
            conn=conn,
        )

        order = await Order.create(
            user=user,
            restaurant=restaurant,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            total_price=breakdown.total,
            **_mutable_fields(delivery_details),
            using_db=conn,
        )
        for priced in breakdown.lines:
            await OrderItem.create(
                order=order,
                menu_item_id=priced.menu_item_id,
                quantity=priced.quantity,
                unit_price=to_money(priced.unit_price),
                line_total=to_money(priced.line_total),
                using_db=conn,
            )

        await _emit(order, "order.created.v1", {
            "restaurant_id": str(restaurant.id),
            "total_price": order.total_price,
            "items": _items_payload(requested),
        }, conn)

    log.info("Order %s created for user %s (total %s)", order.id, user_id, order.total_price)
    return await get_order(order.id)


async def add_items(order_id: UUID, lines: List[Dict[str, Any]], caller: Optional[User] = None) -> Order:
    """
    Adds quantities to a PENDING order. A menu item already in the order has
    its line incremented; new items get a new line. Not idempotent.
    """
    async with order_lock(order_id):
        async with in_transaction() as conn:
            order = await _lock_order(order_id, conn)
            _ensure_owner(order, caller)
            _ensure_pending(order)
            requested = _merge_lines(lines)
            await _ensure_open_restaurant(order.restaurant_id, conn)
            await _menu_items_of_restaurant(requested.keys(), order.restaurant_id, conn)

            existing = {line.menu_item_id: line for line in await OrderItem.filter(order_id=order.id).using_db(conn)}
            for menu_item_id, quantity in requested.items():
                line = existing.get(menu_item_id)
                if line:
                    line.quantity += quantity
                    await line.save(update_fields=["quantity"], using_db=conn)
                else:
                    await OrderItem.create(order=order, menu_item_id=menu_item_id, quantity=quantity, using_db=conn)

            await _reprice(order, conn)
            await order.save(update_fields=["total_price", "updated_at"], using_db=conn)
            await _emit(order, "order.items_added.v1", {
                "items": _items_payload(requested),
                "total_price": order.total_price,
            }, conn)

    log.info("Items added to order %s (total %s)", order_id, order.total_price)
    return await get_order(order_id)


async def remove_items(order_id: UUID, lines: List[Dict[str, Any]], caller: Optional[User] = None) -> Order:
    """
    Decrements lines of a PENDING order; a line whose quantity drops to zero
    or below is deleted. Every requested item must already be in the order.
    """
    async with order_lock(order_id):
        async with in_transaction() as conn:
            order = await _lock_order(order_id, conn)
            _ensure_owner(order, caller)
            _ensure_pending(order)
            requested = _merge_lines(lines)

            existing = {line.menu_item_id: line for line in await OrderItem.filter(order_id=order.id).using_db(conn)}
            for menu_item_id, quantity in requested.items():
                line = existing.get(menu_item_id)
                if not line:
                    raise ValidationError(f"Menu item {menu_item_id} is not part of this order")
                remaining = line.quantity - quantity
                if remaining <= 0:
                    await line.delete(using_db=conn)
                else:
                    line.quantity = remaining
                    await line.save(update_fields=["quantity"], using_db=conn)

            await _reprice(order, conn)
            await order.save(update_fields=["total_price", "updated_at"], using_db=conn)
            await _emit(order, "order.items_removed.v1", {
                "items": _items_payload(requested),
                "total_price": order.total_price,
            }, conn)

    log.info("Items removed from order %s (total %s)", order_id, order.total_price)
    return await get_order(order_id)


async def update_order(order_id: UUID, fields: Dict[str, Any], caller: Optional[User] = None) -> Order:
    """Merges delivery/payment-method/notes changes and re-derives the total."""
    async with order_lock(order_id):
        async with in_transaction() as conn:
            order = await _lock_order(order_id, conn)
            _ensure_owner(order, caller)
            _ensure_pending(order)

            changes = _mutable_fields(fields)
            for key, value in changes.items():
                setattr(order, key, value)
            await _reprice(order, conn)
            await order.save(using_db=conn)
            await _emit(order, "order.updated.v1", {
                "fields": sorted(changes),
                "total_price": order.total_price,
            }, conn)

    return await get_order(order_id)


async def update_status(order_id: UUID, new_status) -> Order:
    """
    Moves the order to any status; only existence is checked. Leaving PENDING
    freezes the lines. Emits 'order.status.<status>.v1', or 'order.cancelled.v1'
    with the lines for CANCELLED.
    """
    new_status = _coerce(OrderStatus, new_status)

    async with order_lock(order_id):
        async with in_transaction() as conn:
            order = await _lock_order(order_id, conn)
            old_status = OrderStatus(order.status)
            order.status = new_status
            await order.save(update_fields=["status", "updated_at"], using_db=conn)

            event_type = f"order.status.{new_status.value.lower()}.v1"
            payload = {"old_status": old_status.value, "new_status": new_status.value}

            if new_status == OrderStatus.CANCELLED:
                event_type = "order.cancelled.v1"
                items = await OrderItem.filter(order_id=order.id).using_db(conn)
                payload["items"] = [
                    {"menu_item_id": str(item.menu_item_id), "quantity": item.quantity}
                    for item in items
                ]

            await _emit(order, event_type, payload, conn)

    log.info("Order %s status %s -> %s", order_id, old_status.value, new_status.value)
    return await get_order(order_id)


async def update_payment_status(order_id: UUID, status) -> Order:
    status = _coerce(PaymentStatus, status)

    async with order_lock(order_id):
        async with in_transaction() as conn:
            order = await _lock_order(order_id, conn)
            order.payment_status = status
            await order.save(update_fields=["payment_status", "updated_at"], using_db=conn)
            await _emit(order, f"order.payment.{status.name.lower()}.v1", {"payment_status": status.value}, conn)

    return await get_order(order_id)


async def count_user_orders(user_id: UUID) -> int:
    return await Order.filter(user_id=user_id).count()
