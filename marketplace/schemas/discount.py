from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
import uuid

from marketplace.models.discount import DiscountScope, DiscountType
from marketplace.models.user import CustomerType


class DiscountApplicabilityRequest(BaseModel):
    """Links a discount to a menu item, or to a user for referral rewards."""
    menu_item_id: Optional[uuid.UUID] = None
    user_id: Optional[uuid.UUID] = None
    min_quantity: Optional[int] = Field(None, ge=0)
    min_amount: Optional[Decimal] = Field(None, ge=0)
    customer_type: Optional[CustomerType] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class CreateDiscountRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    type: DiscountType
    scope: DiscountScope = DiscountScope.ITEM
    value: Decimal = Field(..., ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool = True
    restaurant_id: Optional[uuid.UUID] = None
    applicable_to: List[DiscountApplicabilityRequest] = Field(default_factory=list)


class UpdateDiscountRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[DiscountType] = None
    scope: Optional[DiscountScope] = None
    value: Optional[Decimal] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    applicable_to: Optional[List[DiscountApplicabilityRequest]] = None


class ApplicabilityResponse(BaseModel):
    id: uuid.UUID
    menu_item_id: Optional[uuid.UUID] = None
    user_id: Optional[uuid.UUID] = None
    min_quantity: Optional[int] = None
    min_amount: Optional[str] = None
    customer_type: Optional[CustomerType] = None


class DiscountResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    type: DiscountType
    scope: DiscountScope
    value: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool
    restaurant_id: Optional[uuid.UUID] = None
    applicable_to: List[ApplicabilityResponse] = Field(default_factory=list)

    @classmethod
    def from_discount(cls, d) -> "DiscountResponse":
        """Expects ``applicable_to`` to be prefetched."""
        return cls(
            id=d.id,
            name=d.name,
            description=d.description,
            type=d.type,
            scope=d.scope,
            value=str(d.value),
            start_date=d.start_date,
            end_date=d.end_date,
            is_active=d.is_active,
            restaurant_id=d.restaurant_id,
            applicable_to=[
                ApplicabilityResponse(
                    id=a.id,
                    menu_item_id=a.menu_item_id,
                    user_id=a.user_id,
                    min_quantity=a.min_quantity,
                    min_amount=str(a.min_amount) if a.min_amount is not None else None,
                    customer_type=a.customer_type,
                )
                for a in d.applicable_to
            ],
        )
