from enum import Enum
from tortoise import fields, models
import uuid


class RestaurantStatus(str, Enum):
    DRAFT = "DRAFT"        # Registered, no approval request submitted yet
    PENDING = "PENDING"    # Waiting for an administrator decision
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    BLOCKED = "BLOCKED"


class Restaurant(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    owner = fields.ForeignKeyField("models.User", related_name="restaurants")
    name = fields.CharField(max_length=255)
    address = fields.CharField(max_length=512)
    email = fields.CharField(max_length=255)
    phone_number = fields.CharField(max_length=32)
    opening_hours = fields.CharField(max_length=255)
    cuisine_type = fields.CharField(max_length=128)
    status = fields.CharEnumField(RestaurantStatus, default=RestaurantStatus.DRAFT)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "restaurants"
        indexes = [
            ("status",),            # Approved-only listings
            ("owner_id", "status"),  # Composite: owner's approved restaurants
        ]


class RestaurantRequest(models.Model):
    """One approval request; the latest one mirrors its restaurant's status."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="requests")
    status = fields.CharEnumField(RestaurantStatus, default=RestaurantStatus.PENDING)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "restaurant_requests"
        indexes = [
            ("status",),
            ("restaurant_id", "created_at"),
        ]


class MenuItem(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="menu_items")
    name = fields.CharField(max_length=255)
    description = fields.TextField(null=True)
    price = fields.DecimalField(max_digits=12, decimal_places=2)
    is_active = fields.BooleanField(default=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "menu_items"
        indexes = [
            ("restaurant_id",),  # Fast restaurant menu queries
            ("restaurant_id", "is_active"),  # Composite: restaurant's active items
        ]
