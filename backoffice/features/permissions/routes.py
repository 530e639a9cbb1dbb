"""
Permission management API routes.

Role and permission management is restricted to the superadmin role; the
check and grants endpoints answer for the calling user.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.database.engine import get_db
from backoffice.core.pagination import Page, PageParams, apply_search, page_params, paginate
from backoffice.features.activity_logs.service import AuditContext
from backoffice.features.permissions import generator, service
from backoffice.features.permissions.authorization import AuthorizationContext
from backoffice.features.permissions.cache import PermissionCache
from backoffice.features.permissions.dependencies import (
    get_authorization,
    get_permission_cache,
    require_superadmin,
)
from backoffice.features.permissions.models import Permission, Role
from backoffice.features.permissions.schemas import (
    GeneratePermissionsRequest,
    GeneratePermissionsResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionCreate,
    PermissionResponse,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    RoleWithPermissions,
    UserGrantsResponse,
)
from backoffice.features.users.dependencies import get_audit_context, get_current_user
from backoffice.features.users.models import User
from backoffice.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["permissions"])

ROLE_SORTS = {"name": Role.name, "created_at": Role.created_at}
PERMISSION_SORTS = {"name": Permission.name, "created_at": Permission.created_at}


# ============================================================================
# Role Routes
# ============================================================================

@router.get("/roles", response_model=Page[RoleResponse])
async def list_roles(
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[User, Depends(require_superadmin)],
    params: Annotated[PageParams, Depends(page_params)],
    search: Optional[str] = Query(None, alias="filter[search]"),
):
    """List roles with their permission counts."""
    stmt = apply_search(select(Role), search, [Role.name])
    roles, meta = await paginate(db, stmt, params, ROLE_SORTS, tiebreaker=Role.id)
    return {"data": roles, "meta": meta}


@router.post("/roles", response_model=RoleWithPermissions, status_code=status.HTTP_201_CREATED)
async def create_role(
    payload: RoleCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[User, Depends(require_superadmin)],
    cache: Annotated[PermissionCache, Depends(get_permission_cache)],
    audit: Annotated[AuditContext, Depends(get_audit_context)],
):
    """Create a role with exactly the given permissions (unknown ids are ignored)."""
    return await service.create_role(
        db, cache, payload.name, payload.guard_name, payload.permissions, audit=audit
    )


@router.get("/roles/{role_id}", response_model=RoleWithPermissions)
async def get_role(
    role_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[User, Depends(require_superadmin)],
):
    return await service.get_role_or_404(db, role_id)


@router.put("/roles/{role_id}", response_model=RoleWithPermissions)
async def update_role(
    role_id: int,
    payload: RoleUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[User, Depends(require_superadmin)],
    cache: Annotated[PermissionCache, Depends(get_permission_cache)],
    audit: Annotated[AuditContext, Depends(get_audit_context)],
):
    """Rename a role and replace its permission set."""
    role = await service.get_role_or_404(db, role_id)
    return await service.update_role(
        db, cache, role, payload.name, payload.guard_name, payload.permissions, audit=audit
    )


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[User, Depends(require_superadmin)],
    cache: Annotated[PermissionCache, Depends(get_permission_cache)],
    audit: Annotated[AuditContext, Depends(get_audit_context)],
):
    role = await service.get_role_or_404(db, role_id)
    await service.delete_role(db, cache, role, audit=audit)


# ============================================================================
# Permission Routes
# ============================================================================

@router.get("/permissions", response_model=Page[PermissionResponse])
async def list_permissions(
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[User, Depends(require_superadmin)],
    params: Annotated[PageParams, Depends(page_params)],
    search: Optional[str] = Query(None, alias="filter[search]"),
    guard_name: Optional[str] = Query(None, alias="filter[guard_name]"),
):
    """List permissions, e.g. to build the role form."""
    stmt = apply_search(select(Permission), search, [Permission.name])
    if guard_name:
        stmt = stmt.where(Permission.guard_name == guard_name)
    permissions, meta = await paginate(
        db, stmt, params, PERMISSION_SORTS, default_sort="name", tiebreaker=Permission.id
    )
    return {"data": permissions, "meta": meta}


@router.post("/permissions", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    payload: PermissionCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[User, Depends(require_superadmin)],
    cache: Annotated[PermissionCache, Depends(get_permission_cache)],
    audit: Annotated[AuditContext, Depends(get_audit_context)],
):
    return await service.create_permission(db, cache, payload.name, payload.guard_name, audit=audit)


@router.get("/permissions/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[User, Depends(require_superadmin)],
):
    return await service.get_permission_or_404(db, permission_id)


@router.delete("/permissions/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    permission_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[User, Depends(require_superadmin)],
    cache: Annotated[PermissionCache, Depends(get_permission_cache)],
    audit: Annotated[AuditContext, Depends(get_audit_context)],
):
    """Delete a permission; roles holding it lose it."""
    permission = await service.get_permission_or_404(db, permission_id)
    await service.delete_permission(db, cache, permission, audit=audit)


@router.post("/generate", response_model=GeneratePermissionsResponse)
async def generate_permissions(
    payload: GeneratePermissionsRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[User, Depends(require_superadmin)],
    cache: Annotated[PermissionCache, Depends(get_permission_cache)],
):
    """Generate "{action} {resources}" permissions for the given models."""
    created = await generator.generate_for_models(
        db, cache, payload.models, payload.actions, payload.guard_name, payload.force
    )
    return GeneratePermissionsResponse(
        created=created,
        total_created=sum(len(names) for names in created.values()),
    )


# ============================================================================
# Permission Checking Routes
# ============================================================================

@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    payload: PermissionCheckRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    authorization: Annotated[AuthorizationContext, Depends(get_authorization)],
):
    """Check whether the current user may perform an action."""
    resource = payload.resource_type
    if payload.resource_type == User.__tablename__ and payload.resource_id is not None:
        target = await db.get(User, payload.resource_id)
        if target is not None:
            resource = target

    allowed = await authorization.can(db, user, payload.action, resource)
    target_name = payload.resource_type or "application"
    return PermissionCheckResponse(
        has_permission=allowed,
        reason=f"{'Allowed' if allowed else 'Denied'} {payload.action} on {target_name}",
    )


@router.get("/me/grants", response_model=UserGrantsResponse)
async def get_my_grants(
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    authorization: Annotated[AuthorizationContext, Depends(get_authorization)],
):
    """Roles and effective permissions of the current user."""
    grants = await authorization.grants(db, user)
    return UserGrantsResponse(
        user_id=user.id,
        guard_name=authorization.guard,
        roles=list(grants.roles),
        permissions=sorted(grants.permissions),
    )
