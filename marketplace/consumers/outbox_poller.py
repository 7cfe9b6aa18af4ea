import asyncio
import fnmatch
import logging
from typing import Awaitable, Callable, Dict, List, Tuple

from tortoise.transactions import in_transaction

from marketplace.core.config import BATCH_SIZE, LOG_FORMAT, LOG_LEVEL, MAX_ATTEMPTS, POLLING_INTERVAL
from marketplace.core.db import init_db
from marketplace.models.outbox import OutboxEvent
from marketplace.models.processed_event import ProcessedEvent

log = logging.getLogger(__name__)

Handler = Callable[[OutboxEvent], Awaitable[None]]

# (event type pattern, subscriber name, handler); patterns use shell wildcards
_subscribers: List[Tuple[str, str, Handler]] = []


def subscribe(pattern: str, handler: Handler, name: str = None) -> None:
    """
    Registers an out-of-process subscriber (mail, referral crediting,
    analytics...) for events whose type matches ``pattern``, e.g. 'order.*'.
    """
    _subscribers.append((pattern, name or handler.__qualname__, handler))


def clear_subscribers() -> None:
    _subscribers.clear()


def subscribers_for(event_type: str) -> List[Tuple[str, Handler]]:
    return [(name, h) for pattern, name, h in _subscribers if fnmatch.fnmatchcase(event_type, pattern)]


async def dispatch_event(event: OutboxEvent) -> int:
    """
    Hands an OutboxEvent to every matching subscriber exactly once.
    Raises if any subscriber fails so the event is retried; subscribers that
    already succeeded are skipped on the retry. Returns the number of
    subscribers called.
    """
    event_id = str(event.id)
    delivered = 0
    for name, handler in subscribers_for(event.event_type):
        if await ProcessedEvent.filter(event_id=event_id, subscriber=name).exists():
            continue
        async with in_transaction() as conn:
            await handler(event)
            await ProcessedEvent.create(event_id=event_id, subscriber=name, using_db=conn)
        delivered += 1

    if delivered == 0:
        log.debug("No pending subscriber for event type %s", event.event_type)
    return delivered


async def poll_outbox_for_new_events() -> int:
    """
    Queries the Outbox table for unpublished events and attempts to dispatch them.
    Returns how many events were published.
    """
    # Select events that haven't been published and haven't exceeded max attempts
    events = await OutboxEvent.filter(published=False, attempts__lt=MAX_ATTEMPTS).order_by('created_at').limit(BATCH_SIZE)

    published = 0
    for event in events:
        try:
            await dispatch_event(event)

            event.published = True
            await event.save(update_fields=['published'])
            published += 1
        except Exception:
            event.attempts += 1
            await event.save(update_fields=['attempts'])
            log.exception("Delivery of %s (%s) failed, attempt %s", event.event_type, event.id, event.attempts)
    return published


async def log_event(event: OutboxEvent) -> None:
    log.info("EVENT %s for %s %s: %s", event.event_type, event.aggregate_type, event.aggregate_id, event.payload)


async def start_outbox_poller():
    """Main loop for the poller service."""
    await init_db(generate_schemas=False)
    subscribe("*", log_event, name="event_log")
    log.info("--- Outbox Poller Service Started ---")

    while True:
        try:
            await poll_outbox_for_new_events()
        except Exception:
            log.exception("Poller encountered a critical DB error.")

        await asyncio.sleep(POLLING_INTERVAL)

if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    try:
        asyncio.run(start_outbox_poller())
    except KeyboardInterrupt:
        log.info("Poller service stopped.")
