"""
Process-wide permission cache.

Holds, per guard, a snapshot of role -> permission names and lazily filled
user -> grants entries. Every mutation of roles, permissions, role
permission sets or user role assignments must call ``forget(guard)`` after
its transaction commits and before it returns.

A generation counter per guard guards against a read that started before an
invalidation storing what it loaded after the invalidation completed.
"""
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.features.permissions.models import Permission, Role, role_permissions, user_roles
from backoffice.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class UserGrants:
    """Roles (assignment order) and effective permission names of one user in one guard."""
    user_id: int
    roles: Tuple[str, ...] = ()
    permissions: FrozenSet[str] = frozenset()

    def has_role(self, *names: str) -> bool:
        return any(name in self.roles for name in names)

    def has_permission(self, name: str) -> bool:
        return name in self.permissions


@dataclass
class GuardSnapshot:
    guard: str
    generation: int
    role_permissions: Dict[str, FrozenSet[str]] = field(default_factory=dict)
    users: Dict[int, UserGrants] = field(default_factory=dict)


class PermissionCache:
    """
    Lazily populated cache keyed by guard.

    Shared by every request in the process, so reads and invalidations go
    through a lock.
    """

    def __init__(self):
        self._entries: Dict[str, GuardSnapshot] = {}
        self._generations: Dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def forget(self, guard: Optional[str] = None) -> None:
        """Drop the snapshot for ``guard``, or for every guard when omitted."""
        with self._lock:
            if guard is None:
                for name in list(self._generations) + list(self._entries):
                    self._generations[name] += 1
                self._entries.clear()
                log.info("Permission cache cleared for all guards")
                return
            self._generations[guard] += 1
            self._entries.pop(guard, None)
        log.info(f"Permission cache cleared for guard {guard!r}")

    def is_cached(self, guard: str) -> bool:
        with self._lock:
            return guard in self._entries

    async def snapshot(self, db: AsyncSession, guard: str) -> GuardSnapshot:
        """Return the snapshot for ``guard``, loading it from the store on a miss."""
        with self._lock:
            cached = self._entries.get(guard)
            generation = self._generations[guard]
        if cached is not None:
            return cached

        log.debug(f"Permission cache miss for guard {guard!r}")
        stmt = (
            select(Role.name, Permission.name)
            .select_from(Role)
            .outerjoin(role_permissions, role_permissions.c.role_id == Role.id)
            .outerjoin(Permission, Permission.id == role_permissions.c.permission_id)
            .where(Role.guard_name == guard)
        )
        result = await db.execute(stmt)
        mapping: Dict[str, set] = defaultdict(set)
        for role_name, permission_name in result.all():
            perms = mapping[role_name]
            if permission_name is not None:
                perms.add(permission_name)

        loaded = GuardSnapshot(
            guard=guard,
            generation=generation,
            role_permissions={name: frozenset(perms) for name, perms in mapping.items()},
        )
        with self._lock:
            # Only publish if nothing invalidated the guard while we were loading
            if self._generations[guard] == generation:
                self._entries.setdefault(guard, loaded)
                return self._entries[guard]
        return loaded

    async def role_permissions(self, db: AsyncSession, guard: str, role: str) -> FrozenSet[str]:
        snapshot = await self.snapshot(db, guard)
        return snapshot.role_permissions.get(role, frozenset())

    async def grants_for(self, db: AsyncSession, user_id: int, guard: str) -> UserGrants:
        """Return the roles and effective permissions of a user within ``guard``."""
        snapshot = await self.snapshot(db, guard)
        grants = snapshot.users.get(user_id)
        if grants is not None:
            return grants

        stmt = (
            select(Role.name)
            .join(user_roles, user_roles.c.role_id == Role.id)
            .where(user_roles.c.user_id == user_id, Role.guard_name == guard)
            .order_by(user_roles.c.id)
        )
        result = await db.execute(stmt)
        role_names = tuple(result.scalars().all())

        permissions: set = set()
        for name in role_names:
            permissions |= snapshot.role_permissions.get(name, frozenset())

        grants = UserGrants(user_id=user_id, roles=role_names, permissions=frozenset(permissions))
        with self._lock:
            if self._generations[guard] == snapshot.generation:
                snapshot.users[user_id] = grants
        return grants
