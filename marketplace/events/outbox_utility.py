from decimal import Decimal
from typing import Any, Dict
from uuid import UUID

from fastapi.encoders import jsonable_encoder

from marketplace.models.outbox import OutboxEvent


async def create_outbox_event(
    aggregate_type: str,
    aggregate_id: UUID,
    event_type: str,
    payload: Dict[str, Any],
    conn: Any = None
) -> OutboxEvent:
    """
    Creates a new Outbox event record using the provided database connection (transaction).

    CRITICAL: Passing 'conn' ensures the event is created atomically with the business data.
    UUIDs, Decimals and datetimes in the payload are stored as strings.
    """
    return await OutboxEvent.create(
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        event_type=event_type,
        payload=jsonable_encoder(payload, custom_encoder={Decimal: str}),
        published=False,
        attempts=0,
        using_db=conn
    )
