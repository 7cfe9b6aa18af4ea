from typing import Any
from uuid import UUID

from marketplace.core.exceptions import NotFound
from marketplace.models.user import RoleCode, User


async def get_user(user_id: UUID, conn: Any = None) -> User:
    user = await User.get_or_none(id=user_id).using_db(conn)
    if not user:
        raise NotFound("User not found")
    return user


async def set_user_role(user: User, role: RoleCode, conn: Any = None) -> User:
    user.role = role
    await user.save(update_fields=["role", "updated_at"], using_db=conn)
    return user


def has_min_role(user: User, role: RoleCode) -> bool:
    return RoleCode(user.role).weight >= role.weight
