"""
Seed script to populate default permissions and roles.

Run this script after database initialization to create:
- Default permissions (user management, activity log, settings, tooling)
- Default roles (superadmin, admin, user)
- Initial role-permission assignments
- Optionally a superadmin account (SUPERADMIN_EMAIL / SUPERADMIN_PASSWORD)

Re-running is safe: existing rows are kept and missing grants are added.

Usage:
    python -m scripts.seed_permissions
"""
import asyncio
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core import config
from backoffice.core.database.base import utcnow
from backoffice.core.database.engine import init_db, session_scope
from backoffice.features.permissions.authorization import MANAGE_SYSTEM_SETTINGS, SUPERADMIN_ROLE
from backoffice.features.permissions.cache import PermissionCache
from backoffice.features.permissions.models import Permission, Role
from backoffice.features.permissions.service import find_permission, first_or_create_role
from backoffice.features.users.auth import hash_password
from backoffice.features.users.models import User
from backoffice.features.users.service import find_user_by_email
from backoffice.utils import get_logger


log = get_logger(__name__)


DEFAULT_PERMISSIONS = [
    # User management
    "view_users",
    "create_users",
    "edit_users",
    "delete_users",

    # Audit trail
    "view_activity_logs",

    MANAGE_SYSTEM_SETTINGS,

    # Operator tooling
    "view telescope",
    "view horizon",
]

# Superadmin bypasses every check and needs no grants
DEFAULT_ROLES = {
    SUPERADMIN_ROLE: [],
    "admin": [
        "view_users",
        "create_users",
        "edit_users",
        "delete_users",
        "view_activity_logs",
        "view telescope",
        "view horizon",
    ],
    "user": [],
}


async def seed_permissions(db: AsyncSession, guard: Optional[str] = None) -> dict[str, Permission]:
    """
    Create default permissions.

    Returns:
        Dictionary mapping permission names to Permission objects
    """
    guard = guard or config.DEFAULT_GUARD
    log.info("Creating default permissions...")
    permissions_map = {}

    for name in DEFAULT_PERMISSIONS:
        existing = await find_permission(db, name, guard)
        if existing:
            log.debug(f"Permission '{name}' already exists, skipping")
            permissions_map[name] = existing
            continue

        permission = Permission(name=name, guard_name=guard, roles=[])
        db.add(permission)
        permissions_map[name] = permission
        log.info(f"Created permission: {name}")

    await db.flush()
    return permissions_map


async def seed_roles(
    db: AsyncSession,
    permissions_map: dict[str, Permission],
    guard: Optional[str] = None,
) -> dict[str, Role]:
    """Create default roles and give them any default permission they lack."""
    log.info("Creating default roles...")
    roles_map = {}

    for role_name, permission_names in DEFAULT_ROLES.items():
        role = await first_or_create_role(db, role_name, guard)
        for perm_name in permission_names:
            permission = permissions_map.get(perm_name)
            if permission is None:
                log.warning(f"Permission '{perm_name}' not found for role '{role_name}'")
            elif permission not in role.permissions:
                role.permissions.append(permission)
        roles_map[role_name] = role
        log.info(f"Role '{role_name}' has {len(role.permissions)} permissions")

    await db.flush()
    return roles_map


async def seed_superadmin(db: AsyncSession, roles_map: dict[str, Role], email: str, password: str) -> User:
    """Create the superadmin account, or give an existing account the role."""
    superadmin = roles_map[SUPERADMIN_ROLE]
    user = await find_user_by_email(db, email)
    if user is None:
        user = User(
            name="Super Admin",
            email=email,
            password=hash_password(password),
            email_verified_at=utcnow(),
            roles=[],
        )
        db.add(user)
        log.info(f"Created superadmin account {email}")
    if superadmin not in user.roles:
        user.roles.append(superadmin)
    await db.flush()
    return user


async def seed(db: AsyncSession, cache: Optional[PermissionCache] = None) -> dict[str, Role]:
    permissions_map = await seed_permissions(db)
    roles_map = await seed_roles(db, permissions_map)
    if config.SUPERADMIN_EMAIL and config.SUPERADMIN_PASSWORD:
        await seed_superadmin(db, roles_map, config.SUPERADMIN_EMAIL, config.SUPERADMIN_PASSWORD)
    await db.commit()

    if cache is not None:
        cache.forget(config.DEFAULT_GUARD)
    return roles_map


async def main():
    """Main function to seed permissions and roles."""
    log.info("Starting permission seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    try:
        async with session_scope() as db:
            roles_map = await seed(db)
    except Exception as e:
        log.error(f"Error seeding permissions: {e}", exc_info=True)
        raise

    log.info("Permission seeding completed successfully!")
    for role_name, role in roles_map.items():
        log.info(f"  - {role_name}: {len(role.permissions)} permissions")


if __name__ == "__main__":
    asyncio.run(main())
