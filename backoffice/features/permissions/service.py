"""
Permission and role store operations.

Every mutation follows the same order: write, record activity, commit, then
invalidate the permission cache for each affected guard before returning.
"""
from typing import Any, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core import config
from backoffice.core.exceptions import DuplicateError, NotFoundError, ValidationError
from backoffice.features.activity_logs.service import (
    AuditContext,
    dirty_attributes,
    model_attributes,
    record_activity,
)
from backoffice.features.permissions.cache import PermissionCache
from backoffice.features.permissions.models import Permission, Role, user_roles
from backoffice.features.users.models import User
from backoffice.utils import get_logger


log = get_logger(__name__)


def coerce_ids(values: Optional[Iterable[Any]]) -> List[int]:
    """
    Coerce ids coming from a form to integers.

    Values that are not integers can never match a row and are dropped, as
    are duplicates.
    """
    ids: List[int] = []
    for value in values or ():
        try:
            candidate = int(value)
        except (TypeError, ValueError):
            log.debug(f"Dropping non-integer id {value!r}")
            continue
        if candidate not in ids:
            ids.append(candidate)
    return ids


# ============================================================================
# Permissions
# ============================================================================

async def find_permission(db: AsyncSession, name: str, guard: str) -> Optional[Permission]:
    stmt = select(Permission).where(Permission.name == name, Permission.guard_name == guard)
    result = await db.execute(stmt)
    return result.scalars().first()


async def find_permissions_by_ids(
    db: AsyncSession, ids: Iterable[Any], guard: Optional[str] = None
) -> List[Permission]:
    """
    Return the permissions matching ``ids``; ids without a row are silently dropped.

    With ``guard`` set, permissions of other guards are dropped the same way.
    """
    wanted = coerce_ids(ids)
    if not wanted:
        return []
    stmt = select(Permission).where(Permission.id.in_(wanted))
    if guard is not None:
        stmt = stmt.where(Permission.guard_name == guard)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_permission_or_404(db: AsyncSession, permission_id: int) -> Permission:
    permission = await db.get(Permission, permission_id)
    if permission is None:
        raise NotFoundError("Permission")
    return permission


async def create_permission(
    db: AsyncSession,
    cache: PermissionCache,
    name: str,
    guard: Optional[str] = None,
    audit: Optional[AuditContext] = None,
) -> Permission:
    """
    Create a permission.

    Raises:
        DuplicateError: (name, guard) already exists
    """
    guard = guard or config.DEFAULT_GUARD
    if await find_permission(db, name, guard) is not None:
        raise DuplicateError("name")

    permission = Permission(name=name, guard_name=guard, roles=[])
    db.add(permission)
    await db.flush()

    record_activity(db, "created", permission, audit, {"attributes": model_attributes(permission)})
    await db.commit()

    cache.forget(guard)
    log.info(f"Created permission {name!r} for guard {guard!r}")
    return permission


async def delete_permission(
    db: AsyncSession,
    cache: PermissionCache,
    permission: Permission,
    audit: Optional[AuditContext] = None,
) -> None:
    """Delete a permission along with its membership in every role."""
    guard = permission.guard_name
    guards = {guard} | {role.guard_name for role in permission.roles}
    record_activity(db, "deleted", permission, audit, {"attributes": model_attributes(permission)})

    await db.delete(permission)
    await db.commit()

    for affected in guards:
        cache.forget(affected)
    log.info(f"Deleted permission {permission.name!r} for guard {guard!r}")


# ============================================================================
# Roles
# ============================================================================

async def get_role_or_404(db: AsyncSession, role_id: int) -> Role:
    role = await db.get(Role, role_id)
    if role is None:
        raise NotFoundError("Role")
    return role


async def find_role(db: AsyncSession, name: str, guard: str) -> Optional[Role]:
    stmt = select(Role).where(Role.name == name, Role.guard_name == guard)
    result = await db.execute(stmt)
    return result.scalars().first()


async def _ensure_unique_role_name(
    db: AsyncSession, name: str, guard: str, ignore_id: Optional[int] = None
) -> None:
    stmt = select(Role.id).where(Role.name == name, Role.guard_name == guard)
    if ignore_id is not None:
        stmt = stmt.where(Role.id != ignore_id)
    if (await db.execute(stmt)).first() is not None:
        raise ValidationError({"name": "The name has already been taken."})


def _permission_names(role: Role) -> List[str]:
    return sorted(permission.name for permission in role.permissions)


async def create_role(
    db: AsyncSession,
    cache: PermissionCache,
    name: str,
    guard: Optional[str] = None,
    permission_ids: Optional[Iterable[Any]] = None,
    audit: Optional[AuditContext] = None,
) -> Role:
    """
    Create a role and give it exactly the permissions in ``permission_ids``.

    Unknown permission ids are ignored.

    Raises:
        ValidationError: the name is taken within the guard
    """
    guard = guard or config.DEFAULT_GUARD
    await _ensure_unique_role_name(db, name, guard)

    role = Role(name=name, guard_name=guard, permissions=[])
    db.add(role)

    role.permissions = await find_permissions_by_ids(db, permission_ids, guard)
    await db.flush()

    record_activity(
        db, "created", role, audit,
        {"attributes": {**model_attributes(role), "permissions": _permission_names(role)}},
    )
    await db.commit()

    cache.forget(guard)
    log.info(f"Created role {name!r} for guard {guard!r} with {len(role.permissions)} permissions")
    return role


async def update_role(
    db: AsyncSession,
    cache: PermissionCache,
    role: Role,
    name: str,
    guard: Optional[str] = None,
    permission_ids: Optional[Iterable[Any]] = None,
    audit: Optional[AuditContext] = None,
) -> Role:
    """
    Rename a role and replace its permission set.

    The new set is exactly the resolved ``permission_ids``: anything attached
    before and missing now is detached. The guard defaults to the role's
    current guard.

    Raises:
        ValidationError: the name is taken by another role within the guard
    """
    old_guard = role.guard_name
    guard = guard or old_guard
    await _ensure_unique_role_name(db, name, guard, ignore_id=role.id)

    before = {**model_attributes(role), "permissions": _permission_names(role)}

    role.name = name
    role.guard_name = guard
    role.permissions = await find_permissions_by_ids(db, permission_ids, guard)
    await db.flush()

    after = {**model_attributes(role), "permissions": _permission_names(role)}
    old, new = dirty_attributes(before, after)
    record_activity(db, "updated", role, audit, {"attributes": new, "old": old})
    await db.commit()

    cache.forget(guard)
    if old_guard != guard:
        cache.forget(old_guard)
    log.info(f"Updated role {role.id} ({name!r}) with {len(role.permissions)} permissions")
    return role


async def delete_role(
    db: AsyncSession,
    cache: PermissionCache,
    role: Role,
    audit: Optional[AuditContext] = None,
) -> None:
    """Delete a role. Users holding it simply lose it."""
    guard = role.guard_name
    record_activity(
        db, "deleted", role, audit,
        {"attributes": {**model_attributes(role), "permissions": _permission_names(role)}},
    )

    await db.execute(delete(user_roles).where(user_roles.c.role_id == role.id))
    await db.delete(role)
    await db.commit()

    cache.forget(guard)
    log.info(f"Deleted role {role.name!r} for guard {guard!r}")


# ============================================================================
# User role assignment
# ============================================================================

async def find_roles_by_ids(db: AsyncSession, ids: Iterable[Any]) -> List[Role]:
    """Return the roles matching ``ids`` in the order given; unknown ids are dropped."""
    wanted = coerce_ids(ids)
    if not wanted:
        return []
    result = await db.execute(select(Role).where(Role.id.in_(wanted)))
    by_id = {role.id: role for role in result.scalars().all()}
    return [by_id[role_id] for role_id in wanted if role_id in by_id]


async def sync_user_roles(
    db: AsyncSession,
    cache: PermissionCache,
    user: User,
    role_ids: Iterable[Any],
    commit: bool = True,
) -> List[Role]:
    """
    Replace the roles held by ``user`` with the resolved ``role_ids``.

    Roles the user keeps retain their assignment position. With
    ``commit=False`` the caller owns the transaction and must call
    ``cache.forget`` for the returned roles' guards after committing.
    """
    roles = await find_roles_by_ids(db, role_ids)
    touched = {role.guard_name for role in user.roles} | {role.guard_name for role in roles}

    kept = [role for role in user.roles if role in roles]
    added = [role for role in roles if role not in kept]
    user.roles = kept + added
    await db.flush()

    if commit:
        await db.commit()
        for guard in touched:
            cache.forget(guard)
    return roles


async def first_or_create_role(
    db: AsyncSession,
    name: str,
    guard: Optional[str] = None,
) -> Role:
    """Return the role called ``name``, creating it without permissions if missing."""
    guard = guard or config.DEFAULT_GUARD
    role = await find_role(db, name, guard)
    if role is None:
        role = Role(name=name, guard_name=guard, permissions=[])
        db.add(role)
        await db.flush()
    return role
