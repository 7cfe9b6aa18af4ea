from enum import Enum
from tortoise import fields, models
import uuid

from .user import CustomerType


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"      # value is 0-100
    FIXED_AMOUNT = "FIXED_AMOUNT"


class DiscountScope(str, Enum):
    ITEM = "ITEM"    # Applies per unit to menu items linked through applicability rows
    ORDER = "ORDER"  # Applies to the order subtotal (global/referral promotions)


class Discount(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    name = fields.CharField(max_length=255)
    description = fields.TextField(null=True)
    type = fields.CharEnumField(DiscountType)
    scope = fields.CharEnumField(DiscountScope, default=DiscountScope.ITEM)
    value = fields.DecimalField(max_digits=10, decimal_places=2)
    start_date = fields.DatetimeField(null=True)
    end_date = fields.DatetimeField(null=True)
    is_active = fields.BooleanField(default=True)
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="discounts", null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "discounts"
        indexes = [
            ("is_active", "scope"),
        ]


class DiscountApplicability(models.Model):
    """
    Bridge between a discount and a menu item (or, for referral rewards,
    a user). Optional gates narrow when the rule takes effect.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    discount = fields.ForeignKeyField("models.Discount", related_name="applicable_to")
    menu_item = fields.ForeignKeyField("models.MenuItem", related_name="discount_rules", null=True)
    user = fields.ForeignKeyField("models.User", related_name="discount_rules", null=True)
    min_quantity = fields.IntField(null=True)
    min_amount = fields.DecimalField(max_digits=12, decimal_places=2, null=True)
    customer_type = fields.CharEnumField(CustomerType, null=True)
    start_date = fields.DatetimeField(null=True)
    end_date = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "discount_applicable_to"
        indexes = [
            ("menu_item_id",),
            ("user_id",),
        ]
