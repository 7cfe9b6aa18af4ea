from tortoise import fields, models
import uuid


class ProcessedEvent(models.Model):
    """
    Delivery log keyed by (outbox event, subscriber) so a redelivered event
    is handed to each subscriber at most once.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    event_id = fields.CharField(max_length=128)
    subscriber = fields.CharField(max_length=128)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "processed_events"
        unique_together = (("event_id", "subscriber"),)
