# marketplace/scripts/seed_data.py
import asyncio
import logging
from decimal import Decimal

from marketplace.core.config import LOG_FORMAT
from marketplace.core.db import close_db, init_db
from marketplace.models.catalog import MenuItem, Restaurant, RestaurantRequest, RestaurantStatus
from marketplace.models.discount import Discount, DiscountApplicability, DiscountType
from marketplace.models.user import RoleCode, User

log = logging.getLogger(__name__)


async def seed():
    admin, _ = await User.get_or_create(
        email="admin@example.com", defaults={"username": "admin", "role": RoleCode.ADMINISTRATOR}
    )
    owner, _ = await User.get_or_create(
        email="owner@example.com", defaults={"username": "owner", "role": RoleCode.RESTAURATEUR}
    )
    client, _ = await User.get_or_create(
        email="client@example.com", defaults={"username": "client", "role": RoleCode.CLIENT}
    )
    log.info("Users: admin=%s owner=%s client=%s", admin.id, owner.id, client.id)

    # An approved restaurant mirrors its latest request
    rest, created = await Restaurant.get_or_create(
        name="Demo Restaurant",
        owner=owner,
        defaults={
            "address": "1 Demo Street",
            "email": "demo@example.com",
            "phone_number": "+33100000000",
            "opening_hours": "11:00-23:00",
            "cuisine_type": "Indian",
            "status": RestaurantStatus.APPROVED,
        },
    )
    if created:
        await RestaurantRequest.create(restaurant=rest, status=RestaurantStatus.APPROVED)
    log.info("Restaurant: %s", rest.id)

    m1, _ = await MenuItem.get_or_create(restaurant=rest, name="Paneer Wrap", defaults={"price": Decimal("149.00")})
    m2, _ = await MenuItem.get_or_create(restaurant=rest, name="Chili Paneer Rice", defaults={"price": Decimal("199.00")})
    m3, _ = await MenuItem.get_or_create(restaurant=rest, name="Cold Drink", defaults={"price": Decimal("49.00")})
    log.info("Menu items: %s %s %s", m1.id, m2.id, m3.id)

    promo, created = await Discount.get_or_create(
        name="Wrap Week",
        restaurant=rest,
        defaults={"type": DiscountType.PERCENTAGE, "value": Decimal("10.00")},
    )
    if created:
        await DiscountApplicability.create(discount=promo, menu_item=m1)
    log.info("Discount seeded: %s", promo.id)


async def main():
    await init_db()
    await seed()
    await close_db()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    asyncio.run(main())
