import logging
from typing import Any, Dict, List
from uuid import UUID

from marketplace.core.exceptions import Forbidden, NotFound, ValidationError
from marketplace.models.catalog import MenuItem, Restaurant, RestaurantStatus
from marketplace.models.user import User

log = logging.getLogger(__name__)


async def get_menu_item(menu_item_id: UUID, conn: Any = None) -> MenuItem:
    item = await MenuItem.get_or_none(id=menu_item_id).using_db(conn)
    if not item:
        raise NotFound("Menu item not found")
    return item


async def list_menu_items(restaurant_id: UUID, conn: Any = None) -> List[MenuItem]:
    return await MenuItem.filter(restaurant_id=restaurant_id).using_db(conn).order_by("created_at")


async def create_menu_item(restaurant_id: UUID, caller: User, data: Dict[str, Any]) -> MenuItem:
    """Adds a menu item to an approved restaurant owned by the caller."""
    restaurant = await Restaurant.get_or_none(id=restaurant_id)
    if not restaurant:
        raise NotFound("Restaurant not found")
    if restaurant.owner_id != caller.id:
        raise Forbidden("You do not have permission to add an item to this restaurant")
    if restaurant.status != RestaurantStatus.APPROVED:
        raise ValidationError("Restaurant must be approved by admin")

    item = await MenuItem.create(
        restaurant=restaurant,
        name=data["name"],
        description=data.get("description"),
        price=data["price"],
        is_active=data.get("is_active", True),
    )
    log.info("Menu item %s added to restaurant %s", item.id, restaurant.id)
    return item
