"""
FastAPI dependencies for route protection.

The process-wide ``AuthorizationContext`` lives on ``app.state.authorization``;
routes reach it through ``get_authorization`` so tests can swap it.
"""
from typing import Annotated, Any
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.database.engine import get_db
from backoffice.features.permissions.authorization import (
    ACCESS_SUPERADMIN,
    AuthorizationContext,
)
from backoffice.features.permissions.cache import PermissionCache
from backoffice.features.users.dependencies import get_current_user
from backoffice.features.users.models import User


def get_authorization(request: Request) -> AuthorizationContext:
    return request.app.state.authorization


def get_permission_cache(
    authorization: Annotated[AuthorizationContext, Depends(get_authorization)],
) -> PermissionCache:
    return authorization.cache


def require_ability(action: str, resource: Any = None):
    """
    FastAPI dependency to require an ability.

    Usage:
        @router.get("/activity-logs")
        async def list_logs(
            user: User = Depends(require_ability("viewAny", ActivityLog))
        ):
            pass

    Returns:
        Dependency function that returns the current user if allowed

    Raises:
        ForbiddenError: the user may not perform ``action``
    """
    async def ability_dependency(
        db: Annotated[AsyncSession, Depends(get_db)],
        current_user: Annotated[User, Depends(get_current_user)],
        authorization: Annotated[AuthorizationContext, Depends(get_authorization)],
    ) -> User:
        await authorization.authorize(db, current_user, action, resource)
        return current_user

    return ability_dependency


# Role and permission management
require_superadmin = require_ability(ACCESS_SUPERADMIN)
