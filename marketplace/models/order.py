from enum import Enum
from tortoise import fields, models
import uuid


class OrderStatus(str, Enum):
    PENDING = "PENDING"  # Initial state, the only one where items may change
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"
    REFUNDED = "Refunded"


class Order(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    user = fields.ForeignKeyField("models.User", related_name="orders")
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="orders")
    status = fields.CharEnumField(OrderStatus, default=OrderStatus.PENDING)
    # Always derived by the pricing engine, never taken from the caller
    total_price = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    delivery_address = fields.CharField(max_length=512, null=True)
    delivery_instructions = fields.TextField(null=True)
    delivery_method = fields.CharField(max_length=64, null=True)
    customer_notes = fields.TextField(null=True)
    payment_status = fields.CharEnumField(PaymentStatus, default=PaymentStatus.PENDING)
    payment_method = fields.CharField(max_length=64, null=True)
    discount_code = fields.CharField(max_length=64, null=True)
    estimated_delivery_date = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "orders"
        indexes = [
            ("restaurant_id",),          # Restaurant order queries
            ("status",),                 # Status-based filtering
            ("user_id",),                # User order history
            ("status", "created_at"),    # Composite: status with time
        ]


class OrderItem(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    order = fields.ForeignKeyField("models.Order", related_name="items")
    menu_item = fields.ForeignKeyField("models.MenuItem", related_name="order_items")
    quantity = fields.IntField()
    # Snapshot of the last pricing pass (discounted unit price and line total)
    unit_price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    line_total = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "order_items"
        unique_together = (("order", "menu_item"),)
        indexes = [
            ("menu_item_id",),          # Menu item popularity
        ]
