from enum import Enum
from tortoise import fields, models
import uuid


class RoleCode(str, Enum):
    CLIENT = "CLIENT"
    RESTAURATEUR = "RESTAURATEUR"
    DELIVERY_PERSON = "DELIVERY_PERSON"
    ADMINISTRATOR = "ADMINISTRATOR"

    @property
    def weight(self) -> int:
        return ROLE_WEIGHTS[self]


# Minimum-role gating compares weights, not names.
ROLE_WEIGHTS = {
    RoleCode.CLIENT: 100,
    RoleCode.RESTAURATEUR: 200,
    RoleCode.DELIVERY_PERSON: 300,
    RoleCode.ADMINISTRATOR: 1000,
}


class CustomerType(str, Enum):
    NEW = "NEW"
    REGULAR = "REGULAR"
    VIP = "VIP"


class User(models.Model):
    """
    Identity record owned by the (external) registration service.
    The core only reads it and promotes roles.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    username = fields.CharField(max_length=150)
    email = fields.CharField(max_length=255, unique=True)
    role = fields.CharEnumField(RoleCode, default=RoleCode.CLIENT)
    customer_type = fields.CharEnumField(CustomerType, default=CustomerType.NEW)
    referral_code = fields.CharField(max_length=32, null=True, unique=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "users"
        indexes = [
            ("role",),
        ]
