import uuid
from decimal import Decimal

import pytest

from marketplace.core.exceptions import Forbidden, NotFound, ValidationError
from marketplace.models.catalog import RestaurantStatus
from marketplace.services import catalog_service

ITEM = {"name": "Chicken Biryani", "price": Decimal("12.50")}


@pytest.mark.asyncio
async def test_owner_adds_menu_item(make_restaurant):
    restaurant = await make_restaurant()
    owner = await restaurant.owner

    item = await catalog_service.create_menu_item(restaurant.id, owner, ITEM)

    assert item.restaurant_id == restaurant.id
    assert item.is_active is True
    assert (await catalog_service.get_menu_item(item.id)).price == Decimal("12.50")
    assert [m.id for m in await catalog_service.list_menu_items(restaurant.id)] == [item.id]


@pytest.mark.asyncio
async def test_create_menu_item_guards(make_restaurant, make_user):
    restaurant = await make_restaurant()
    draft = await make_restaurant(status=RestaurantStatus.DRAFT)

    with pytest.raises(NotFound):
        await catalog_service.create_menu_item(uuid.uuid4(), await make_user(), ITEM)
    with pytest.raises(Forbidden):
        await catalog_service.create_menu_item(restaurant.id, await make_user(), ITEM)
    with pytest.raises(ValidationError):
        await catalog_service.create_menu_item(draft.id, await draft.owner, ITEM)


@pytest.mark.asyncio
async def test_get_unknown_menu_item(db):
    with pytest.raises(NotFound):
        await catalog_service.get_menu_item(uuid.uuid4())
