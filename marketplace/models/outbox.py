from tortoise import fields, models
import uuid


class OutboxEvent(models.Model):
    """
    Domain events recorded in the same transaction as the mutation that
    produced them. The outbox poller later delivers them to subscribers
    (mail, referral crediting, analytics), so no side effect ever runs
    inside an order or restaurant transaction.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    aggregate_type = fields.CharField(max_length=64) # 'order' or 'restaurant'
    aggregate_id = fields.UUIDField(null=True)
    event_type = fields.CharField(max_length=128) # e.g., 'order.created.v1'
    payload = fields.JSONField()
    published = fields.BooleanField(default=False)
    attempts = fields.IntField(default=0)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "outbox_events"
        indexes = [
            ("published", "attempts"),
        ]
