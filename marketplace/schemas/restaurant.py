from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal
import uuid

from marketplace.models.catalog import RestaurantStatus


class RegisterRestaurantRequest(BaseModel):
    name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone_number: str = Field(..., min_length=3)
    opening_hours: str = Field(..., min_length=1)
    cuisine_type: str = Field(..., min_length=1)


class SubmitRestaurantRequest(BaseModel):
    restaurant_id: uuid.UUID


class RestaurantStatusUpdate(BaseModel):
    status: RestaurantStatus


class SwitchRestaurantRequest(BaseModel):
    restaurant_id: uuid.UUID


class RestaurantResponse(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    name: str
    address: str
    email: str
    phone_number: str
    opening_hours: str
    cuisine_type: str
    status: RestaurantStatus

    @classmethod
    def from_restaurant(cls, r) -> "RestaurantResponse":
        return cls(
            id=r.id,
            owner_id=r.owner_id,
            name=r.name,
            address=r.address,
            email=r.email,
            phone_number=r.phone_number,
            opening_hours=r.opening_hours,
            cuisine_type=r.cuisine_type,
            status=r.status,
        )


class RestaurantRequestResponse(BaseModel):
    id: uuid.UUID
    restaurant_id: uuid.UUID
    status: RestaurantStatus
    created_at: str
    updated_at: str

    @classmethod
    def from_request(cls, req) -> "RestaurantRequestResponse":
        return cls(
            id=req.id,
            restaurant_id=req.restaurant_id,
            status=req.status,
            created_at=str(req.created_at),
            updated_at=str(req.updated_at),
        )


class MenuItemRequest(BaseModel):
    name: str = Field(..., description="Name of the menu item (e.g., Chicken Biryani).")
    description: Optional[str] = None
    price: Decimal = Field(..., gt=0, description="Selling price of the item.")
    is_active: bool = Field(True, description="Whether the menu item is active.")


class MenuItemResponse(BaseModel):
    id: uuid.UUID
    restaurant_id: uuid.UUID
    name: str
    description: Optional[str] = None
    price: str
    is_active: bool

    @classmethod
    def from_item(cls, m) -> "MenuItemResponse":
        return cls(
            id=m.id,
            restaurant_id=m.restaurant_id,
            name=m.name,
            description=m.description,
            price=str(m.price),
            is_active=m.is_active,
        )
