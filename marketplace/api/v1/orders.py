import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status

from marketplace.api.deps import get_caller, require_role
from marketplace.core.exceptions import Forbidden
from marketplace.models.user import RoleCode, User
from marketplace.schemas.order import (
    OrderCountResponse,
    OrderDetailResponse,
    OrderItemsRequest,
    OrderRequest,
    OrderStatusUpdate,
    OrderUpdateRequest,
    PaymentStatusUpdate,
)
from marketplace.schemas.response import SuccessResponse
from marketplace.services import order_service
from marketplace.services.user_service import has_min_role

router = APIRouter()
log = logging.getLogger(__name__)


def _order_data(order):
    return OrderDetailResponse.from_order(order).model_dump(mode="json")


def _lines(items):
    return [{"menu_item_id": item.menu_item_id, "quantity": item.quantity} for item in items]


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_order_endpoint(request_data: OrderRequest, caller: User = Depends(get_caller)):
    """Places a new PENDING order for the caller."""
    details = request_data.model_dump(exclude={"restaurant_id", "items"}, exclude_none=True)
    order = await order_service.create_order(
        user_id=caller.id,
        restaurant_id=request_data.restaurant_id,
        lines=_lines(request_data.items),
        delivery_details=details,
    )
    log.info(f"Order {order.id} placed successfully for user {caller.id}.")
    return SuccessResponse(data=_order_data(order))


@router.get("/users/{user_id}/count", response_model=SuccessResponse)
async def count_user_orders_endpoint(user_id: UUID, caller: User = Depends(get_caller)):
    if user_id != caller.id and not has_min_role(caller, RoleCode.ADMINISTRATOR):
        raise Forbidden("You can only count your own orders")
    count = await order_service.count_user_orders(user_id)
    return SuccessResponse(data=OrderCountResponse(user_id=user_id, count=count).model_dump(mode="json"))


@router.get("/{order_id}", response_model=SuccessResponse)
async def get_order_endpoint(order_id: UUID, caller: User = Depends(get_caller)):
    """Fetches details for a specific order."""
    order = await order_service.get_order(order_id, caller=caller)
    return SuccessResponse(data=_order_data(order))


@router.patch("/{order_id}", response_model=SuccessResponse)
async def update_order_endpoint(order_id: UUID, payload: OrderUpdateRequest, caller: User = Depends(get_caller)):
    """Updates delivery/payment details of a pending order; the total is recomputed."""
    order = await order_service.update_order(order_id, payload.model_dump(exclude_unset=True), caller=caller)
    return SuccessResponse(data=_order_data(order))


@router.post("/{order_id}/items/add", response_model=SuccessResponse)
async def add_items_endpoint(order_id: UUID, payload: OrderItemsRequest, caller: User = Depends(get_caller)):
    order = await order_service.add_items(order_id, _lines(payload.items), caller=caller)
    return SuccessResponse(data=_order_data(order))


@router.post("/{order_id}/items/remove", response_model=SuccessResponse)
async def remove_items_endpoint(order_id: UUID, payload: OrderItemsRequest, caller: User = Depends(get_caller)):
    order = await order_service.remove_items(order_id, _lines(payload.items), caller=caller)
    return SuccessResponse(data=_order_data(order))


@router.patch("/{order_id}/status", response_model=SuccessResponse)
async def update_status_endpoint(
    order_id: UUID,
    payload: OrderStatusUpdate,
    caller: User = Depends(require_role(RoleCode.RESTAURATEUR)),
):
    """
    Updates status (e.g. 'CONFIRMED', 'PREPARING', 'DELIVERED').
    """
    # Pydantic ensures payload.status is a valid OrderStatus Enum value
    order = await order_service.update_status(order_id, payload.status)
    log.info(f"Order {order_id} moved to {order.status} by {caller.id}")
    return SuccessResponse(data=_order_data(order))


@router.patch("/{order_id}/payment-status", response_model=SuccessResponse)
async def update_payment_status_endpoint(
    order_id: UUID,
    payload: PaymentStatusUpdate,
    caller: User = Depends(require_role(RoleCode.ADMINISTRATOR)),
):
    """Records the payment outcome reported by the payment provider."""
    order = await order_service.update_payment_status(order_id, payload.status)
    return SuccessResponse(data=_order_data(order))
