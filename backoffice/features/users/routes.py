"""
User feature routes.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core import config
from backoffice.core.database.engine import get_db
from backoffice.core.exceptions import ForbiddenError, NotFoundError
from backoffice.core.pagination import Page, PageParams, apply_search, page_params, paginate
from backoffice.core.rate_limit import limiter
from backoffice.features.activity_logs.service import AuditContext
from backoffice.features.mail.dependencies import get_mail_outbox
from backoffice.features.mail.outbox import MailOutbox
from backoffice.features.permissions.authorization import AuthorizationContext
from backoffice.features.permissions.cache import PermissionCache
from backoffice.features.permissions.dependencies import (
    get_authorization,
    get_permission_cache,
    require_ability,
)
from backoffice.features.permissions.models import Role
from backoffice.features.settings.service import load_system_settings
from backoffice.features.users import service
from backoffice.features.users.auth import create_access_token
from backoffice.features.users.dependencies import get_audit_context, get_current_user
from backoffice.features.users.models import User
from backoffice.features.users.schemas import (
    ProfileUpdate,
    TokenRequest,
    TokenResponse,
    UserCreate,
    UserRegister,
    UserResponse,
    UserUpdate,
)
from backoffice.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["users"])

USER_SORTS = {"name": User.name, "email": User.email, "created_at": User.created_at}


async def get_user_or_404(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User")
    return user


# ============================================================================
# Authentication
# ============================================================================

@router.post("/token", response_model=TokenResponse)
@limiter.limit(config.LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    credentials: TokenRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Exchange email and password for a bearer token."""
    user = await service.authenticate(db, credentials.email, credentials.password)
    if user is None:
        log.info(f"Failed login for {credentials.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="These credentials do not match our records.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    await service.record_login(db, user)
    return TokenResponse(access_token=create_access_token(user.id))


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: UserRegister,
    db: Annotated[AsyncSession, Depends(get_db)],
    cache: Annotated[PermissionCache, Depends(get_permission_cache)],
):
    """Self-service sign-up, available while registration is enabled."""
    settings = await load_system_settings(db)
    if not settings.registration_enabled:
        raise ForbiddenError("Registration is currently disabled.")
    return await service.register_user(db, cache, payload.name, payload.email, payload.password)


# ============================================================================
# Own profile
# ============================================================================

@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)]
):
    """Get current authenticated user's profile."""
    return user


@router.patch("/me", response_model=UserResponse)
async def update_current_user_profile(
    update_data: ProfileUpdate,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditContext, Depends(get_audit_context)],
):
    """Update current user's profile. Only provided fields change."""
    return await service.update_profile(
        db, user, update_data.name, update_data.email, update_data.password, audit=audit
    )


# ============================================================================
# User management
# ============================================================================

@router.get("", response_model=Page[UserResponse])
async def list_users(
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[User, Depends(require_ability("viewAny", User))],
    params: Annotated[PageParams, Depends(page_params)],
    search: Optional[str] = Query(None, alias="filter[search]"),
    role: Optional[str] = Query(None, alias="filter[role]"),
):
    """List users with their roles."""
    stmt = apply_search(select(User), search, [User.name, User.email])
    if role:
        stmt = stmt.where(User.roles.any(Role.name == role))
    users, meta = await paginate(db, stmt, params, USER_SORTS, tiebreaker=User.id)
    return {"data": users, "meta": meta}


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[User, Depends(require_ability("create", User))],
    cache: Annotated[PermissionCache, Depends(get_permission_cache)],
    outbox: Annotated[MailOutbox, Depends(get_mail_outbox)],
    audit: Annotated[AuditContext, Depends(get_audit_context)],
):
    """Create a user; the generated password is mailed to them."""
    return await service.create_user(
        db, cache, outbox, payload.name, payload.email, payload.role, audit=audit
    )


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    authorization: Annotated[AuthorizationContext, Depends(get_authorization)],
):
    user = await get_user_or_404(db, user_id)
    await authorization.authorize(db, current_user, "view", user)
    return user


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    payload: UserUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    authorization: Annotated[AuthorizationContext, Depends(get_authorization)],
    audit: Annotated[AuditContext, Depends(get_audit_context)],
):
    """Update a user and replace their role."""
    user = await get_user_or_404(db, user_id)
    await authorization.authorize(db, current_user, "update", user)
    return await service.update_user(
        db, authorization.cache, user, payload.name, payload.email, payload.role,
        password=payload.password, audit=audit,
    )


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    authorization: Annotated[AuthorizationContext, Depends(get_authorization)],
    audit: Annotated[AuditContext, Depends(get_audit_context)],
):
    """Delete a user. Deleting your own account is never allowed."""
    user = await get_user_or_404(db, user_id)
    await authorization.authorize(db, current_user, "delete", user)
    await service.delete_user(db, authorization.cache, user, audit=audit)
