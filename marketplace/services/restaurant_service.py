"""
Restaurant approval workflow.

A restaurant is registered in DRAFT, enters PENDING when its owner submits a
request, and is then decided by an administrator through the request:

    PENDING  -> APPROVED | REJECTED
    REJECTED -> APPROVED
    APPROVED -> BLOCKED

Every decision writes the request and its restaurant in one transaction.
"""
import logging
from typing import Any, Dict, List
from uuid import UUID

from tortoise.transactions import in_transaction

from marketplace.core.exceptions import Forbidden, InvalidTransition, NotFound, ValidationError
from marketplace.events.outbox_utility import create_outbox_event
from marketplace.models.catalog import Restaurant, RestaurantRequest, RestaurantStatus
from marketplace.models.user import RoleCode
from marketplace.services.user_service import get_user, set_user_role

log = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "address", "email", "phone_number", "opening_hours", "cuisine_type")

# current request status -> statuses an administrator may move it to
TRANSITIONS = {
    RestaurantStatus.DRAFT: frozenset(),
    RestaurantStatus.PENDING: frozenset({RestaurantStatus.APPROVED, RestaurantStatus.REJECTED}),
    RestaurantStatus.REJECTED: frozenset({RestaurantStatus.APPROVED}),
    RestaurantStatus.APPROVED: frozenset({RestaurantStatus.BLOCKED}),
    RestaurantStatus.BLOCKED: frozenset(),
}

# Statuses from which an owner may (re)submit an approval request
SUBMITTABLE = frozenset({RestaurantStatus.DRAFT, RestaurantStatus.REJECTED})


def parse_status(value) -> RestaurantStatus:
    if isinstance(value, RestaurantStatus):
        return value
    try:
        return RestaurantStatus(str(value).upper())
    except ValueError:
        raise ValidationError(f"Unknown restaurant status: {value}")


def check_transition(current: RestaurantStatus, requested: RestaurantStatus) -> None:
    """Raises InvalidTransition unless ``current -> requested`` is in the table."""
    if requested not in TRANSITIONS[RestaurantStatus(current)]:
        raise InvalidTransition(
            f"Cannot move a {RestaurantStatus(current).value} request to {requested.value}"
        )


async def _emit(restaurant_id: UUID, event_type: str, payload: Dict[str, Any], conn: Any) -> None:
    await create_outbox_event(
        aggregate_type="restaurant",
        aggregate_id=restaurant_id,
        event_type=event_type,
        payload={"restaurant_id": str(restaurant_id), **payload},
        conn=conn,
    )


async def register(owner_id: UUID, profile: Dict[str, Any]) -> Restaurant:
    """
    Creates the restaurant in DRAFT and promotes the owner to RESTAURATEUR
    (administrators keep their role).
    """
    missing = [f for f in PROFILE_FIELDS if not profile.get(f)]
    if missing:
        raise ValidationError(f"Missing restaurant fields: {', '.join(missing)}")

    async with in_transaction() as conn:
        owner = await get_user(owner_id, conn)
        restaurant = await Restaurant.create(
            owner=owner,
            status=RestaurantStatus.DRAFT,
            **{f: profile[f] for f in PROFILE_FIELDS},
            using_db=conn,
        )
        if owner.role != RoleCode.ADMINISTRATOR:
            await set_user_role(owner, RoleCode.RESTAURATEUR, conn)
        await _emit(restaurant.id, "restaurant.registered.v1", {"owner_id": str(owner.id)}, conn)

    log.info("Restaurant %s registered by %s", restaurant.id, owner_id)
    return restaurant


async def submit_request(restaurant_id: UUID, caller_id: UUID) -> RestaurantRequest:
    """Opens a PENDING approval request; only the owner may submit."""
    async with in_transaction() as conn:
        restaurant = await Restaurant.filter(id=restaurant_id).using_db(conn).select_for_update().first()
        if not restaurant:
            raise NotFound("Restaurant not found")
        if restaurant.owner_id != caller_id:
            raise Forbidden("You do not have permission to submit a request for this restaurant")
        if restaurant.status not in SUBMITTABLE:
            raise InvalidTransition(
                f"Cannot submit a request for a restaurant that is {RestaurantStatus(restaurant.status).value}"
            )

        request = await RestaurantRequest.create(
            restaurant=restaurant, status=RestaurantStatus.PENDING, using_db=conn
        )
        restaurant.status = RestaurantStatus.PENDING
        await restaurant.save(update_fields=["status", "updated_at"], using_db=conn)
        await _emit(restaurant.id, "restaurant.request.submitted.v1", {"request_id": str(request.id)}, conn)

    log.info("Approval request %s submitted for restaurant %s", request.id, restaurant_id)
    return request


async def update_status(request_id: UUID, new_status) -> RestaurantRequest:
    """
    Applies an administrator decision to a request and mirrors it onto the
    restaurant. Only the restaurant's latest request can be decided.
    """
    new_status = parse_status(new_status)

    async with in_transaction() as conn:
        request = await RestaurantRequest.filter(id=request_id).using_db(conn).select_for_update().first()
        if not request:
            raise NotFound("Restaurant request not found")

        latest = await RestaurantRequest.filter(
            restaurant_id=request.restaurant_id
        ).using_db(conn).order_by("-created_at", "-id").first()
        if latest.id != request.id:
            raise InvalidTransition("Request has been superseded by a newer request")

        old_status = RestaurantStatus(request.status)
        check_transition(old_status, new_status)

        request.status = new_status
        await request.save(update_fields=["status", "updated_at"], using_db=conn)
        restaurant = await Restaurant.filter(id=request.restaurant_id).using_db(conn).select_for_update().first()
        if not restaurant:
            raise NotFound("Restaurant not found")
        restaurant.status = new_status
        await restaurant.save(update_fields=["status", "updated_at"], using_db=conn)

        await _emit(request.restaurant_id, f"restaurant.status.{new_status.value.lower()}.v1", {
            "request_id": str(request.id),
            "old_status": old_status.value,
            "new_status": new_status.value,
        }, conn)

    log.info("Restaurant request %s: %s -> %s", request_id, old_status.value, new_status.value)
    return await RestaurantRequest.get(id=request_id).prefetch_related("restaurant")


async def switch_restaurant(owner_id: UUID, restaurant_id: UUID) -> Restaurant:
    """Returns the caller's APPROVED restaurant to use as working context."""
    restaurant = await Restaurant.get_or_none(
        id=restaurant_id, owner_id=owner_id, status=RestaurantStatus.APPROVED
    )
    if not restaurant:
        raise NotFound("Approved restaurant not found for this owner")
    return restaurant


async def list_pending_requests() -> List[RestaurantRequest]:
    return await RestaurantRequest.filter(
        status=RestaurantStatus.PENDING
    ).prefetch_related("restaurant").order_by("created_at")


async def list_user_restaurants(user_id: UUID) -> List[Restaurant]:
    """Approved restaurants visible to a user: all for admins, own for restaurateurs."""
    user = await get_user(user_id)
    approved = Restaurant.filter(status=RestaurantStatus.APPROVED)
    if user.role == RoleCode.ADMINISTRATOR:
        return await approved.order_by("name")
    if user.role == RoleCode.RESTAURATEUR:
        return await approved.filter(owner_id=user.id).order_by("name")
    raise Forbidden("User does not have permission to access restaurants")
