# marketplace/models/__init__.py
from .catalog import MenuItem, Restaurant, RestaurantRequest, RestaurantStatus
from .discount import Discount, DiscountApplicability, DiscountScope, DiscountType
from .order import Order, OrderItem, OrderStatus, PaymentStatus
from .outbox import OutboxEvent
from .processed_event import ProcessedEvent
from .user import CustomerType, RoleCode, User

# Export all models
__all__ = [
    "CustomerType",
    "Discount",
    "DiscountApplicability",
    "DiscountScope",
    "DiscountType",
    "MenuItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OutboxEvent",
    "PaymentStatus",
    "ProcessedEvent",
    "Restaurant",
    "RestaurantRequest",
    "RestaurantStatus",
    "RoleCode",
    "User",
]
