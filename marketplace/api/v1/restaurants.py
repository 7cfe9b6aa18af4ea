import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status

from marketplace.api.deps import get_caller, require_role
from marketplace.models.user import RoleCode, User
from marketplace.schemas.response import SuccessResponse
from marketplace.schemas.restaurant import (
    MenuItemRequest,
    MenuItemResponse,
    RegisterRestaurantRequest,
    RestaurantRequestResponse,
    RestaurantResponse,
    RestaurantStatusUpdate,
    SubmitRestaurantRequest,
    SwitchRestaurantRequest,
)
from marketplace.services import catalog_service, restaurant_service

router = APIRouter()
log = logging.getLogger(__name__)


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def register_endpoint(payload: RegisterRestaurantRequest, caller: User = Depends(get_caller)):
    """Registers a restaurant (DRAFT) owned by the caller."""
    restaurant = await restaurant_service.register(caller.id, payload.model_dump())
    return SuccessResponse(data=RestaurantResponse.from_restaurant(restaurant).model_dump(mode="json"))


@router.get("/mine", response_model=SuccessResponse)
async def my_restaurants_endpoint(caller: User = Depends(get_caller)):
    restaurants = await restaurant_service.list_user_restaurants(caller.id)
    return SuccessResponse(data=[RestaurantResponse.from_restaurant(r).model_dump(mode="json") for r in restaurants])


@router.post("/request", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def submit_request_endpoint(
    payload: SubmitRestaurantRequest,
    caller: User = Depends(require_role(RoleCode.RESTAURATEUR)),
):
    request = await restaurant_service.submit_request(payload.restaurant_id, caller.id)
    return SuccessResponse(data=RestaurantRequestResponse.from_request(request).model_dump(mode="json"))


@router.get("/request/pending", response_model=SuccessResponse)
async def pending_requests_endpoint(caller: User = Depends(require_role(RoleCode.ADMINISTRATOR))):
    requests = await restaurant_service.list_pending_requests()
    return SuccessResponse(data=[RestaurantRequestResponse.from_request(r).model_dump(mode="json") for r in requests])


@router.patch("/request/{request_id}/status", response_model=SuccessResponse)
async def update_request_status_endpoint(
    request_id: UUID,
    payload: RestaurantStatusUpdate,
    caller: User = Depends(require_role(RoleCode.ADMINISTRATOR)),
):
    """Approves, rejects or blocks a restaurant through its latest request."""
    request = await restaurant_service.update_status(request_id, payload.status)
    log.info(f"Restaurant request {request_id} set to {payload.status.value} by {caller.id}")
    return SuccessResponse(data=RestaurantRequestResponse.from_request(request).model_dump(mode="json"))


@router.patch("/switch", response_model=SuccessResponse)
async def switch_restaurant_endpoint(
    payload: SwitchRestaurantRequest,
    caller: User = Depends(require_role(RoleCode.RESTAURATEUR)),
):
    restaurant = await restaurant_service.switch_restaurant(caller.id, payload.restaurant_id)
    return SuccessResponse(data=RestaurantResponse.from_restaurant(restaurant).model_dump(mode="json"))


@router.get("/{restaurant_id}/menu-items", response_model=SuccessResponse)
async def list_menu_items_endpoint(restaurant_id: UUID):
    items = await catalog_service.list_menu_items(restaurant_id)
    return SuccessResponse(data=[MenuItemResponse.from_item(m).model_dump(mode="json") for m in items])


@router.post("/{restaurant_id}/menu-items", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def add_menu_item_endpoint(
    restaurant_id: UUID,
    item_data: MenuItemRequest,
    caller: User = Depends(require_role(RoleCode.RESTAURATEUR)),
):
    """Adds a menu item to one of the caller's approved restaurants."""
    item = await catalog_service.create_menu_item(restaurant_id, caller, item_data.model_dump())
    return SuccessResponse(data=MenuItemResponse.from_item(item).model_dump(mode="json"))
