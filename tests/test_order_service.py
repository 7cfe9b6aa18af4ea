import asyncio
import uuid
from decimal import Decimal

import pytest

from marketplace.core.exceptions import Forbidden, InvalidState, NotFound, ValidationError
from marketplace.models.catalog import MenuItem, Restaurant, RestaurantStatus
from marketplace.models.discount import DiscountApplicability, DiscountScope, DiscountType
from marketplace.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from marketplace.models.outbox import OutboxEvent
from marketplace.models.user import RoleCode
from marketplace.services import discount_service, order_service
from marketplace.services.pricing import quote

# --- SETUP FIXTURES ---

@pytest.fixture
async def setup(make_user, make_restaurant, make_menu_item):
    """A client, an approved restaurant and two of its menu items."""
    client = await make_user()
    restaurant = await make_restaurant()
    burger = await make_menu_item(restaurant, price="10.00", name="Burger")
    fries = await make_menu_item(restaurant, price="4.50", name="Fries")
    return client, restaurant, burger, fries


def line(item, quantity):
    return {"menu_item_id": item.id, "quantity": quantity}


async def quantities(order_id):
    return {i.menu_item_id: i.quantity for i in await OrderItem.filter(order_id=order_id)}


async def assert_total_is_derived(order_id):
    """The stored total always equals a fresh pricing pass over the stored lines."""
    order = await Order.get(id=order_id).prefetch_related("user")
    lines = await OrderItem.filter(order_id=order_id).prefetch_related("menu_item")
    breakdown = await quote([(l.menu_item, l.quantity) for l in lines], order.restaurant_id, user=order.user)
    assert order.total_price == breakdown.total


# --- TEST CASES ---

@pytest.mark.asyncio
async def test_create_order_success(setup):
    client, restaurant, burger, fries = setup

    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 2), line(fries, 1)])

    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.PENDING
    assert order.total_price == Decimal("24.50")
    assert await quantities(order.id) == {burger.id: 2, fries.id: 1}

    event = await OutboxEvent.get(aggregate_id=order.id, event_type="order.created.v1")
    assert event.payload["total_price"] == "24.50"
    assert event.payload["restaurant_id"] == str(restaurant.id)


@pytest.mark.asyncio
async def test_create_order_merges_repeated_items(setup):
    client, restaurant, burger, _ = setup

    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 1), line(burger, 2)])

    assert await quantities(order.id) == {burger.id: 3}
    assert order.total_price == Decimal("30.00")


@pytest.mark.asyncio
async def test_create_order_applies_item_discount(setup, make_discount):
    client, restaurant, burger, _ = setup
    await make_discount(DiscountType.PERCENTAGE, "20", items=[burger])

    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 3)])

    assert order.total_price == Decimal("24.00")
    item = await OrderItem.get(order_id=order.id)
    assert item.unit_price == Decimal("8.00")
    assert item.line_total == Decimal("24.00")


@pytest.mark.asyncio
async def test_create_order_applies_order_level_discount(setup, make_discount):
    client, restaurant, burger, _ = setup
    await make_discount(DiscountType.FIXED_AMOUNT, "5", scope=DiscountScope.ORDER, restaurant=restaurant)

    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 2)])

    assert order.total_price == Decimal("15.00")


@pytest.mark.asyncio
async def test_create_order_rejects_item_from_other_restaurant(setup, make_restaurant, make_menu_item):
    client, restaurant, burger, _ = setup
    foreign = await make_menu_item(await make_restaurant(name="Elsewhere"))

    with pytest.raises(ValidationError):
        await order_service.create_order(client.id, restaurant.id, [line(burger, 1), line(foreign, 1)])

    assert await Order.all().count() == 0
    assert await OutboxEvent.all().count() == 0


@pytest.mark.asyncio
async def test_create_order_rejects_inactive_item(setup, make_menu_item):
    client, restaurant, _, _ = setup
    retired = await make_menu_item(restaurant, is_active=False)

    with pytest.raises(ValidationError):
        await order_service.create_order(client.id, restaurant.id, [line(retired, 1)])


@pytest.mark.asyncio
@pytest.mark.parametrize("lines", [[], [{"menu_item_id": "not-a-uuid", "quantity": 1}]])
async def test_create_order_rejects_bad_lines(setup, lines):
    client, restaurant, _, _ = setup

    with pytest.raises(ValidationError):
        await order_service.create_order(client.id, restaurant.id, lines)


@pytest.mark.asyncio
async def test_create_order_rejects_zero_quantity(setup):
    client, restaurant, burger, _ = setup

    with pytest.raises(ValidationError):
        await order_service.create_order(client.id, restaurant.id, [line(burger, 0)])


@pytest.mark.asyncio
async def test_create_order_unknown_user_or_restaurant(setup):
    client, restaurant, burger, _ = setup

    with pytest.raises(NotFound):
        await order_service.create_order(uuid.uuid4(), restaurant.id, [line(burger, 1)])
    with pytest.raises(NotFound):
        await order_service.create_order(client.id, uuid.uuid4(), [line(burger, 1)])


@pytest.mark.asyncio
async def test_add_items_accumulates_existing_line(setup):
    client, restaurant, burger, fries = setup
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 2)])

    order = await order_service.add_items(order.id, [line(burger, 3), line(fries, 2)])

    assert await quantities(order.id) == {burger.id: 5, fries.id: 2}
    assert order.total_price == Decimal("59.00")
    await assert_total_is_derived(order.id)
    assert await OutboxEvent.filter(aggregate_id=order.id, event_type="order.items_added.v1").count() == 1


@pytest.mark.asyncio
async def test_add_items_is_not_idempotent(setup):
    client, restaurant, burger, _ = setup
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 1)])

    await order_service.add_items(order.id, [line(burger, 1)])
    await order_service.add_items(order.id, [line(burger, 1)])

    assert await quantities(order.id) == {burger.id: 3}


@pytest.mark.asyncio
async def test_add_items_picks_up_quantity_gated_discount(setup, make_discount):
    client, restaurant, burger, _ = setup
    await make_discount(DiscountType.PERCENTAGE, "50", items=[burger], min_quantity=3)
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 2)])
    assert order.total_price == Decimal("20.00")

    order = await order_service.add_items(order.id, [line(burger, 1)])

    assert order.total_price == Decimal("15.00")
    await assert_total_is_derived(order.id)


@pytest.mark.asyncio
async def test_remove_items_decrements_and_deletes(setup):
    client, restaurant, burger, fries = setup
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 3), line(fries, 1)])

    order = await order_service.remove_items(order.id, [line(burger, 1), line(fries, 5)])

    assert await quantities(order.id) == {burger.id: 2}
    assert order.total_price == Decimal("20.00")
    await assert_total_is_derived(order.id)


@pytest.mark.asyncio
async def test_remove_every_line_leaves_zero_total(setup):
    client, restaurant, burger, _ = setup
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 1)])

    order = await order_service.remove_items(order.id, [line(burger, 1)])

    assert await quantities(order.id) == {}
    assert order.total_price == Decimal("0.00")


@pytest.mark.asyncio
async def test_remove_item_not_in_order(setup):
    client, restaurant, burger, fries = setup
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 1)])

    with pytest.raises(ValidationError):
        await order_service.remove_items(order.id, [line(fries, 1)])

    assert await quantities(order.id) == {burger.id: 1}


@pytest.mark.asyncio
async def test_mutations_of_unknown_order_raise_not_found(setup):
    _, _, burger, _ = setup
    missing = uuid.uuid4()

    with pytest.raises(NotFound):
        await order_service.add_items(missing, [line(burger, 1)])
    with pytest.raises(NotFound):
        await order_service.remove_items(missing, [line(burger, 1)])
    with pytest.raises(NotFound):
        await order_service.update_order(missing, {"customer_notes": "x"})
    with pytest.raises(NotFound):
        await order_service.update_status(missing, OrderStatus.CONFIRMED)
    with pytest.raises(NotFound):
        await order_service.get_order(missing)


@pytest.mark.asyncio
async def test_non_pending_order_is_frozen(setup):
    client, restaurant, burger, _ = setup
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 2)])
    await order_service.update_status(order.id, OrderStatus.CONFIRMED)

    with pytest.raises(InvalidState):
        await order_service.add_items(order.id, [line(burger, 1)])
    with pytest.raises(InvalidState):
        await order_service.remove_items(order.id, [line(burger, 1)])
    with pytest.raises(InvalidState):
        await order_service.update_order(order.id, {"customer_notes": "late"})
    # state is checked before the lines themselves
    with pytest.raises(InvalidState):
        await order_service.add_items(order.id, [])

    assert await quantities(order.id) == {burger.id: 2}


@pytest.mark.asyncio
async def test_update_order_rederives_total(setup, make_discount):
    client, restaurant, burger, _ = setup
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 1)])
    await make_discount(DiscountType.FIXED_AMOUNT, "2", items=[burger])

    order = await order_service.update_order(order.id, {
        "delivery_address": "2 Rue de Test",
        "total_price": "0.01",
        "status": "DELIVERED",
    })

    assert order.delivery_address == "2 Rue de Test"
    assert order.status == OrderStatus.PENDING
    assert order.total_price == Decimal("8.00")
    event = await OutboxEvent.get(aggregate_id=order.id, event_type="order.updated.v1")
    assert event.payload["fields"] == ["delivery_address"]


@pytest.mark.asyncio
async def test_update_status_emits_status_event(setup):
    client, restaurant, burger, _ = setup
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 1)])

    order = await order_service.update_status(order.id, "preparing")

    assert order.status == OrderStatus.PREPARING
    event = await OutboxEvent.get(aggregate_id=order.id, event_type="order.status.preparing.v1")
    assert event.payload["old_status"] == "PENDING"
    assert event.payload["new_status"] == "PREPARING"


@pytest.mark.asyncio
async def test_update_status_cancel_carries_items(setup):
    client, restaurant, burger, fries = setup
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 2), line(fries, 5)])

    await order_service.update_status(order.id, OrderStatus.CANCELLED)

    event = await OutboxEvent.get(aggregate_id=order.id, event_type="order.cancelled.v1")
    items = {i["menu_item_id"]: i["quantity"] for i in event.payload["items"]}
    assert items == {str(burger.id): 2, str(fries.id): 5}


@pytest.mark.asyncio
async def test_update_status_rejects_unknown_status(setup):
    client, restaurant, burger, _ = setup
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 1)])

    with pytest.raises(ValidationError):
        await order_service.update_status(order.id, "TELEPORTED")


@pytest.mark.asyncio
async def test_update_payment_status(setup):
    client, restaurant, burger, _ = setup
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 1)])

    order = await order_service.update_payment_status(order.id, "Paid")

    assert order.payment_status == PaymentStatus.PAID
    assert await OutboxEvent.filter(aggregate_id=order.id, event_type="order.payment.paid.v1").exists()


@pytest.mark.asyncio
async def test_count_user_orders(setup, make_user):
    client, restaurant, burger, _ = setup
    await order_service.create_order(client.id, restaurant.id, [line(burger, 1)])
    await order_service.create_order(client.id, restaurant.id, [line(burger, 2)])

    assert await order_service.count_user_orders(client.id) == 2
    assert await order_service.count_user_orders((await make_user()).id) == 0


@pytest.mark.asyncio
async def test_concurrent_add_items_lose_no_update(setup):
    client, restaurant, burger, _ = setup
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 1)])

    await asyncio.gather(*[order_service.add_items(order.id, [line(burger, 1)]) for _ in range(5)])

    assert await quantities(order.id) == {burger.id: 6}
    await assert_total_is_derived(order.id)


@pytest.mark.asyncio
async def test_price_change_applies_on_next_mutation(setup):
    client, restaurant, burger, _ = setup
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 2)])
    await MenuItem.filter(id=burger.id).update(price=Decimal("12.00"))

    order = await order_service.update_order(order.id, {"customer_notes": "extra napkins"})

    assert order.total_price == Decimal("24.00")


@pytest.mark.asyncio
async def test_order_discount_linked_to_another_menu_leaves_total_alone(setup, make_user, make_discount, make_restaurant, make_menu_item):
    client, restaurant, burger, _ = setup
    other = await make_restaurant(name="Elsewhere")
    await make_menu_item(other)
    promo = await make_discount(DiscountType.PERCENTAGE, "50", scope=DiscountScope.ORDER)
    admin = await make_user(role=RoleCode.ADMINISTRATOR)

    with pytest.raises(ValidationError):
        await discount_service.apply_to_restaurant(promo.id, other.id, admin)

    # rows written around the service still only open for orders holding that item
    await DiscountApplicability.create(discount=promo, menu_item=await make_menu_item(other, name="Soup"))
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 1)])

    assert order.total_price == Decimal("10.00")


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [
    RestaurantStatus.DRAFT, RestaurantStatus.PENDING, RestaurantStatus.REJECTED, RestaurantStatus.BLOCKED,
])
async def test_create_order_requires_approved_restaurant(make_user, make_restaurant, make_menu_item, status):
    client = await make_user()
    restaurant = await make_restaurant(status=status)
    item = await make_menu_item(restaurant)

    with pytest.raises(ValidationError):
        await order_service.create_order(client.id, restaurant.id, [line(item, 1)])

    assert await Order.all().count() == 0


@pytest.mark.asyncio
async def test_blocked_restaurant_stops_add_items(setup):
    client, restaurant, burger, _ = setup
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 1)])
    await Restaurant.filter(id=restaurant.id).update(status=RestaurantStatus.BLOCKED)

    with pytest.raises(ValidationError):
        await order_service.add_items(order.id, [line(burger, 1)])

    assert await quantities(order.id) == {burger.id: 1}


@pytest.mark.asyncio
async def test_only_the_customer_or_an_admin_may_change_an_order(setup, make_user):
    client, restaurant, burger, _ = setup
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 2)])
    stranger = await make_user()
    admin = await make_user(role=RoleCode.ADMINISTRATOR)

    with pytest.raises(Forbidden):
        await order_service.add_items(order.id, [line(burger, 1)], caller=stranger)
    with pytest.raises(Forbidden):
        await order_service.remove_items(order.id, [line(burger, 1)], caller=stranger)
    with pytest.raises(Forbidden):
        await order_service.update_order(order.id, {"customer_notes": "mine now"}, caller=stranger)
    with pytest.raises(Forbidden):
        await order_service.get_order(order.id, caller=stranger)
    assert await quantities(order.id) == {burger.id: 2}

    await order_service.add_items(order.id, [line(burger, 1)], caller=client)
    await order_service.remove_items(order.id, [line(burger, 1)], caller=admin)
    assert await quantities(order.id) == {burger.id: 2}


@pytest.mark.asyncio
async def test_restaurant_owner_can_view_its_orders(setup):
    client, restaurant, burger, _ = setup
    order = await order_service.create_order(client.id, restaurant.id, [line(burger, 1)])

    fetched = await order_service.get_order(order.id, caller=await restaurant.owner)

    assert fetched.id == order.id


@pytest.mark.asyncio
async def test_stored_lines_add_up_to_total(setup, make_menu_item, make_discount):
    client, restaurant, _, _ = setup
    soup = await make_menu_item(restaurant, price="0.10", name="Soup")
    bread = await make_menu_item(restaurant, price="0.10", name="Bread")
    await make_discount(DiscountType.PERCENTAGE, "15", items=[soup, bread])

    order = await order_service.create_order(client.id, restaurant.id, [line(soup, 1), line(bread, 1)])

    lines = await OrderItem.filter(order_id=order.id)
    assert sum(l.line_total for l in lines) == order.total_price == Decimal("0.18")
