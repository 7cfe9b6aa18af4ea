import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status

from marketplace.api.deps import require_role
from marketplace.models.user import RoleCode, User
from marketplace.schemas.discount import (
    CreateDiscountRequest,
    DiscountApplicabilityRequest,
    DiscountResponse,
    UpdateDiscountRequest,
)
from marketplace.schemas.response import SuccessResponse
from marketplace.services import discount_service

router = APIRouter()
log = logging.getLogger(__name__)

manager = require_role(RoleCode.RESTAURATEUR)


def _discount_data(discount):
    return DiscountResponse.from_discount(discount).model_dump(mode="json")


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_discount_endpoint(payload: CreateDiscountRequest, caller: User = Depends(manager)):
    data = payload.model_dump()
    discount = await discount_service.create_discount(data, caller)
    return SuccessResponse(data=_discount_data(discount))


@router.get("/", response_model=SuccessResponse)
async def list_discounts_endpoint(restaurant_id: Optional[UUID] = None, caller: User = Depends(manager)):
    discounts = await discount_service.list_discounts(restaurant_id)
    return SuccessResponse(data=[_discount_data(d) for d in discounts])


@router.get("/{discount_id}", response_model=SuccessResponse)
async def get_discount_endpoint(discount_id: UUID, caller: User = Depends(manager)):
    discount = await discount_service.get_discount(discount_id)
    return SuccessResponse(data=_discount_data(discount))


@router.put("/{discount_id}", response_model=SuccessResponse)
async def update_discount_endpoint(discount_id: UUID, payload: UpdateDiscountRequest, caller: User = Depends(manager)):
    discount = await discount_service.update_discount(discount_id, payload.model_dump(exclude_unset=True), caller)
    return SuccessResponse(data=_discount_data(discount))


@router.delete("/{discount_id}", response_model=SuccessResponse)
async def delete_discount_endpoint(discount_id: UUID, caller: User = Depends(manager)):
    await discount_service.delete_discount(discount_id, caller)
    return SuccessResponse(data={"deleted": str(discount_id)})


@router.put("/{discount_id}/applicable-to", response_model=SuccessResponse)
async def set_applicability_endpoint(
    discount_id: UUID,
    payload: List[DiscountApplicabilityRequest],
    caller: User = Depends(manager),
):
    """Replaces every applicability rule of the discount."""
    discount = await discount_service.set_applicability(discount_id, [r.model_dump() for r in payload], caller)
    return SuccessResponse(data=_discount_data(discount))


@router.post("/{discount_id}/apply-to-restaurant/{restaurant_id}", response_model=SuccessResponse)
async def apply_to_restaurant_endpoint(discount_id: UUID, restaurant_id: UUID, caller: User = Depends(manager)):
    created = await discount_service.apply_to_restaurant(discount_id, restaurant_id, caller)
    log.info(f"Discount {discount_id} linked to {created} items of restaurant {restaurant_id}")
    return SuccessResponse(data={"discount_id": str(discount_id), "rules_created": created})
