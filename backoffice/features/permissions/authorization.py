"""
Authorization engine.

Decisions are made against the cached grants of the principal and an
explicit gate table built at start-up:

1. ``delete`` on your own User record is always denied
2. holders of the ``superadmin`` role are allowed everything else
3. a gate registered for (action, resource type) decides
4. without a gate, the action is checked as a permission name
5. otherwise deny
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core import config
from backoffice.core.exceptions import ForbiddenError, SelfActionError
from backoffice.features.activity_logs.models import ActivityLog
from backoffice.features.permissions.cache import PermissionCache, UserGrants
from backoffice.features.users.models import User
from backoffice.utils import get_logger


log = get_logger(__name__)


SUPERADMIN_ROLE = "superadmin"

# Ability names used by the routes
ACCESS_SUPERADMIN = "access-superadmin"
MANAGE_SYSTEM_SETTINGS = "can-manage-system-settings"

GateRule = Callable[[UserGrants, Any], bool]


def permission_rule(permission: str) -> GateRule:
    """Allow principals holding ``permission`` through any of their roles."""
    def rule(grants: UserGrants, _resource: Any) -> bool:
        return grants.has_permission(permission)
    rule.__name__ = f"permission:{permission}"
    return rule


def role_rule(*roles: str) -> GateRule:
    """Allow principals holding any of ``roles``."""
    def rule(grants: UserGrants, _resource: Any) -> bool:
        return grants.has_role(*roles)
    rule.__name__ = f"role:{'|'.join(roles)}"
    return rule


def resource_type(resource: Any) -> Optional[str]:
    """
    Name a resource for gate lookup.

    Accepts None, a string, a mapped class or an instance of one; mapped
    classes are named after their table.
    """
    if resource is None or isinstance(resource, str):
        return resource
    cls = resource if isinstance(resource, type) else type(resource)
    return getattr(cls, "__tablename__", cls.__name__.lower())


class GateTable:
    """Explicit (action, resource type) -> rule mapping."""

    def __init__(self):
        self._rules: Dict[Tuple[str, Optional[str]], GateRule] = {}

    def define(self, action: str, rule: GateRule, resource: Any = None) -> "GateTable":
        self._rules[(action, resource_type(resource))] = rule
        return self

    def resolve(self, action: str, resource: Any = None) -> Optional[GateRule]:
        return self._rules.get((action, resource_type(resource)))

    def __contains__(self, key: Tuple[str, Optional[str]]) -> bool:
        return key in self._rules

    def __len__(self) -> int:
        return len(self._rules)


def build_default_gates() -> GateTable:
    """Gate table used by the application."""
    gates = GateTable()

    gates.define("viewAny", permission_rule("view_users"), User)
    gates.define("view", permission_rule("view_users"), User)
    gates.define("create", permission_rule("create_users"), User)
    gates.define("update", permission_rule("edit_users"), User)
    gates.define("delete", permission_rule("delete_users"), User)

    gates.define("viewAny", permission_rule("view_activity_logs"), ActivityLog)
    gates.define("view", permission_rule("view_activity_logs"), ActivityLog)

    gates.define(MANAGE_SYSTEM_SETTINGS, permission_rule(MANAGE_SYSTEM_SETTINGS))

    # Role and permission management can grant anything, so only the
    # superadmin role qualifies.
    gates.define(ACCESS_SUPERADMIN, role_rule(SUPERADMIN_ROLE))

    return gates


def is_self_delete(user: User, action: str, resource: Any) -> bool:
    return action == "delete" and isinstance(resource, User) and resource.id == user.id


@dataclass
class AuthorizationContext:
    """
    Everything an authorization decision needs, passed explicitly.

    One instance lives on ``app.state.authorization`` for the lifetime of the
    process, so its cache is shared by every request.
    """
    gates: GateTable = field(default_factory=build_default_gates)
    cache: PermissionCache = field(default_factory=PermissionCache)
    guard: str = config.DEFAULT_GUARD

    async def grants(self, db: AsyncSession, user: User) -> UserGrants:
        return await self.cache.grants_for(db, user.id, self.guard)

    async def can(self, db: AsyncSession, user: User, action: str, resource: Any = None) -> bool:
        """Return whether ``user`` may perform ``action`` on ``resource``."""
        if is_self_delete(user, action, resource):
            log.debug(f"User {user.id} denied {action} on own account")
            return False

        grants = await self.grants(db, user)

        if grants.has_role(SUPERADMIN_ROLE):
            log.debug(f"User {user.id} is superadmin - granted {action} on {resource_type(resource)}")
            return True

        rule = self.gates.resolve(action, resource)
        if rule is not None:
            allowed = rule(grants, resource)
        else:
            allowed = grants.has_permission(action)

        log.debug(
            f"User {user.id} {'granted' if allowed else 'denied'} {action} "
            f"on {resource_type(resource)} via {getattr(rule, '__name__', 'permission name')}"
        )
        return allowed

    async def authorize(self, db: AsyncSession, user: User, action: str, resource: Any = None) -> None:
        """
        Raise unless ``user`` may perform ``action``.

        Raises:
            SelfActionError: deleting your own account
            ForbiddenError: any other denial
        """
        if is_self_delete(user, action, resource):
            raise SelfActionError()
        if not await self.can(db, user, action, resource):
            raise ForbiddenError()


def build_authorization_context() -> AuthorizationContext:
    return AuthorizationContext(gates=build_default_gates(), cache=PermissionCache())
