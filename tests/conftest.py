import uuid
from decimal import Decimal

import pytest
from tortoise import Tortoise

from marketplace.core.db import MODELS_MODULES
from marketplace.models.catalog import MenuItem, Restaurant, RestaurantStatus
from marketplace.models.discount import Discount, DiscountApplicability, DiscountScope, DiscountType
from marketplace.models.user import CustomerType, RoleCode, User


@pytest.fixture
async def db():
    """Fresh in-memory SQLite schema for every test."""
    await Tortoise.init(db_url="sqlite://:memory:", modules={"models": MODELS_MODULES})
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest.fixture
def make_user(db):
    async def _make(role=RoleCode.CLIENT, customer_type=CustomerType.NEW):
        tag = uuid.uuid4().hex[:8]
        return await User.create(
            username=f"user-{tag}", email=f"{tag}@example.com", role=role, customer_type=customer_type
        )
    return _make


@pytest.fixture
def make_restaurant(db, make_user):
    async def _make(owner=None, status=RestaurantStatus.APPROVED, name="Chez Test"):
        owner = owner or await make_user(role=RoleCode.RESTAURATEUR)
        return await Restaurant.create(
            owner=owner,
            name=name,
            address="1 Test Street",
            email="resto@example.com",
            phone_number="+33100000000",
            opening_hours="11:00-23:00",
            cuisine_type="French",
            status=status,
        )
    return _make


@pytest.fixture
def make_menu_item(db):
    async def _make(restaurant, price="10.00", name="Croque", is_active=True):
        return await MenuItem.create(restaurant=restaurant, name=name, price=Decimal(price), is_active=is_active)
    return _make


@pytest.fixture
def make_discount(db):
    async def _make(
        discount_type=DiscountType.PERCENTAGE,
        value="20.00",
        items=(),
        scope=DiscountScope.ITEM,
        is_active=True,
        start_date=None,
        end_date=None,
        restaurant=None,
        **rule,
    ):
        discount = await Discount.create(
            name=f"{discount_type.value} {value}",
            type=discount_type,
            scope=scope,
            value=Decimal(value),
            is_active=is_active,
            start_date=start_date,
            end_date=end_date,
            restaurant=restaurant,
        )
        for item in items:
            await DiscountApplicability.create(discount=discount, menu_item=item, **rule)
        return discount
    return _make
