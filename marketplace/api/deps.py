from uuid import UUID

from fastapi import Depends, Header

from marketplace.core.exceptions import Forbidden
from marketplace.models.user import RoleCode, User
from marketplace.services.user_service import get_user, has_min_role


async def get_caller(x_user_id: UUID = Header(..., description="Caller id set by the upstream auth gateway.")) -> User:
    """Resolves the explicit caller identity carried on every request."""
    return await get_user(x_user_id)


def require_role(role: RoleCode):
    """Dependency factory gating an endpoint on a minimum role weight."""
    async def _check(caller: User = Depends(get_caller)) -> User:
        if not has_min_role(caller, role):
            raise Forbidden(f"This action requires the {role.value} role or higher")
        return caller
    return _check
