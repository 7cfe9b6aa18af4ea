from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
import uuid

from marketplace.models.order import OrderStatus, PaymentStatus


class OrderItemRequest(BaseModel):
    """Schema for a single line in an order request."""
    menu_item_id: uuid.UUID
    quantity: int = Field(..., ge=1)


class DeliveryDetails(BaseModel):
    delivery_address: Optional[str] = None
    delivery_instructions: Optional[str] = None
    delivery_method: Optional[str] = None
    customer_notes: Optional[str] = None
    payment_method: Optional[str] = None
    discount_code: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None


class OrderRequest(DeliveryDetails):
    """Schema for the full order placement request body."""
    restaurant_id: uuid.UUID
    items: List[OrderItemRequest]


class OrderItemsRequest(BaseModel):
    """Lines to add to or remove from a pending order."""
    items: List[OrderItemRequest]


class OrderUpdateRequest(DeliveryDetails):
    """Partial update; only the fields sent are changed."""


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus


class OrderItemResponse(BaseModel):
    """Schema for an item inside the detailed order response."""
    menu_item_id: uuid.UUID
    name: str
    quantity: int
    base_price: str  # Use string for Decimal type serialization
    unit_price: str
    line_total: str


class OrderDetailResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    restaurant_id: uuid.UUID
    status: OrderStatus
    payment_status: PaymentStatus
    total_price: Decimal
    items: List[OrderItemResponse]
    delivery_address: Optional[str] = None
    delivery_instructions: Optional[str] = None
    delivery_method: Optional[str] = None
    customer_notes: Optional[str] = None
    payment_method: Optional[str] = None
    discount_code: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    created_at: str

    @classmethod
    def from_order(cls, order) -> "OrderDetailResponse":
        """Builds the response from an order with items and menu items prefetched."""
        items = [
            OrderItemResponse(
                menu_item_id=i.menu_item_id,
                name=i.menu_item.name,
                quantity=i.quantity,
                base_price=str(i.menu_item.price),
                unit_price=str(i.unit_price),
                line_total=str(i.line_total),
            )
            for i in order.items
        ]
        return cls(
            id=order.id,
            user_id=order.user_id,
            restaurant_id=order.restaurant_id,
            status=order.status,
            payment_status=order.payment_status,
            total_price=order.total_price,
            items=items,
            delivery_address=order.delivery_address,
            delivery_instructions=order.delivery_instructions,
            delivery_method=order.delivery_method,
            customer_notes=order.customer_notes,
            payment_method=order.payment_method,
            discount_code=order.discount_code,
            estimated_delivery_date=order.estimated_delivery_date,
            created_at=str(order.created_at),
        )


class OrderCountResponse(BaseModel):
    user_id: uuid.UUID
    count: int
