"""
User account operations.

Role changes go through ``sync_user_roles`` inside the same transaction as
the account change; the permission cache is invalidated for every touched
guard once that transaction has committed.
"""
from typing import Any, Iterable, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.database.base import utcnow
from backoffice.core.exceptions import DuplicateError, ValidationError
from backoffice.features.activity_logs.service import (
    AuditContext,
    dirty_attributes,
    model_attributes,
    record_activity,
)
from backoffice.features.mail.messages import WelcomeMessage
from backoffice.features.mail.outbox import MailOutbox
from backoffice.features.permissions.cache import PermissionCache
from backoffice.features.permissions.service import find_roles_by_ids, first_or_create_role, sync_user_roles
from backoffice.features.users.auth import generate_password, hash_password, verify_password
from backoffice.features.users.models import User
from backoffice.utils import get_logger


log = get_logger(__name__)

DEFAULT_ROLE = "user"


def _guards(user: User) -> Set[str]:
    return {role.guard_name for role in user.roles}


def _snapshot(user: User) -> dict:
    return {**model_attributes(user), "roles": [role.name for role in user.roles]}


def _forget(cache: PermissionCache, guards: Iterable[str]) -> None:
    for guard in guards:
        cache.forget(guard)


async def find_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalars().first()


async def _ensure_unique_email(db: AsyncSession, email: str, ignore_id: Optional[int] = None) -> None:
    stmt = select(User.id).where(User.email == email)
    if ignore_id is not None:
        stmt = stmt.where(User.id != ignore_id)
    if (await db.execute(stmt)).first() is not None:
        raise DuplicateError("email")


async def _ensure_role_exists(db: AsyncSession, role_id: Any) -> None:
    if not await find_roles_by_ids(db, [role_id]):
        raise ValidationError({"role": "The selected role is invalid."})


async def _assign_roles(
    db: AsyncSession,
    cache: PermissionCache,
    user: User,
    role_ids: Iterable[Any],
) -> None:
    """Sync roles without committing; users left without a role get the default one."""
    await sync_user_roles(db, cache, user, role_ids, commit=False)
    if not user.roles:
        user.roles = [await first_or_create_role(db, DEFAULT_ROLE)]
        await db.flush()


async def authenticate(db: AsyncSession, email: str, password: str) -> Optional[User]:
    """Return the active user matching the credentials, or None."""
    user = await find_user_by_email(db, email)
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password):
        return None
    return user


async def record_login(db: AsyncSession, user: User) -> None:
    user.last_login_at = utcnow()
    await db.commit()


async def create_user(
    db: AsyncSession,
    cache: PermissionCache,
    outbox: MailOutbox,
    name: str,
    email: str,
    role_id: Any = None,
    audit: Optional[AuditContext] = None,
) -> User:
    """
    Create an account with a generated password and mail it to the user.

    The welcome mail is queued only after the account has been committed, so
    a mail failure can never undo the creation.

    Without ``role_id`` the user gets the default role.

    Raises:
        DuplicateError: the email is taken
        ValidationError: ``role_id`` does not name a role
    """
    await _ensure_unique_email(db, email)
    if role_id is not None:
        await _ensure_role_exists(db, role_id)

    password = generate_password()
    user = User(name=name, email=email, password=hash_password(password), roles=[])
    db.add(user)
    await db.flush()

    await _assign_roles(db, cache, user, [] if role_id is None else [role_id])

    record_activity(db, "created", user, audit, {"attributes": _snapshot(user)})
    await db.commit()

    _forget(cache, _guards(user))
    log.info(f"Created user {user.id} ({email}) with roles {[role.name for role in user.roles]}")

    outbox.enqueue(WelcomeMessage(to=email, name=name, password=password))
    return user


async def register_user(
    db: AsyncSession,
    cache: PermissionCache,
    name: str,
    email: str,
    password: str,
) -> User:
    """Self-service sign-up with the default role."""
    await _ensure_unique_email(db, email)

    user = User(name=name, email=email, password=hash_password(password), roles=[])
    db.add(user)
    await db.flush()
    await _assign_roles(db, cache, user, [])

    record_activity(
        db, "created", user, AuditContext(user_id=user.id),
        {"attributes": _snapshot(user)}, description="Registered User",
    )
    await db.commit()

    _forget(cache, _guards(user))
    log.info(f"Registered user {user.id} ({email})")
    return user


async def update_user(
    db: AsyncSession,
    cache: PermissionCache,
    user: User,
    name: str,
    email: str,
    role_id: Any,
    password: Optional[str] = None,
    audit: Optional[AuditContext] = None,
) -> User:
    """
    Update an account and replace its role.

    Raises:
        DuplicateError: the email is taken by another user
        ValidationError: ``role_id`` does not name a role
    """
    await _ensure_unique_email(db, email, ignore_id=user.id)
    await _ensure_role_exists(db, role_id)

    before = _snapshot(user)
    touched = _guards(user)

    user.name = name
    user.email = email
    if password:
        user.password = hash_password(password)
    await _assign_roles(db, cache, user, [role_id])
    touched |= _guards(user)

    old, new = dirty_attributes(before, _snapshot(user))
    record_activity(db, "updated", user, audit, {"attributes": new, "old": old})
    await db.commit()

    _forget(cache, touched)
    log.info(f"Updated user {user.id} ({email})")
    return user


async def update_profile(
    db: AsyncSession,
    user: User,
    name: Optional[str] = None,
    email: Optional[str] = None,
    password: Optional[str] = None,
    audit: Optional[AuditContext] = None,
) -> User:
    """Let a user change their own name, email or password. Roles are untouched."""
    if email is not None and email != user.email:
        await _ensure_unique_email(db, email, ignore_id=user.id)

    before = model_attributes(user)
    if name is not None:
        user.name = name
    if email is not None:
        user.email = email
    if password:
        user.password = hash_password(password)
    await db.flush()

    old, new = dirty_attributes(before, model_attributes(user))
    record_activity(db, "updated", user, audit, {"attributes": new, "old": old})
    await db.commit()
    return user


async def delete_user(
    db: AsyncSession,
    cache: PermissionCache,
    user: User,
    audit: Optional[AuditContext] = None,
) -> None:
    """Delete an account along with its role assignments."""
    guards = _guards(user)
    record_activity(db, "deleted", user, audit, {"attributes": _snapshot(user)})

    await db.delete(user)
    await db.commit()

    _forget(cache, guards)
    log.info(f"Deleted user {user.id} ({user.email})")
