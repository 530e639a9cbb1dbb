"""
Permission and Role models for guard-scoped RBAC.

This module implements the permission data model:
- Permissions identified by (name, guard)
- Roles identified by (name, guard), each owning a set of permissions
- User role assignments, kept in assignment order
"""
from sqlalchemy import String, ForeignKey, Table, Column, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.core.database.base import Base, TimestampMixin


# ============================================================================
# Association Tables for Many-to-Many Relationships
# ============================================================================

# Role-Permission relationship
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)

# User-Role relationship. The surrogate id records assignment order, which
# is what primary_role() reads.
user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True),
    UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),
    sqlite_autoincrement=True,
)


# ============================================================================
# Core Models
# ============================================================================

class Permission(Base, TimestampMixin):
    """
    A named capability, e.g. "view_users" or "publish posts".

    The guard identifies the class of principal the permission applies to
    ("web" for session users). Ids are never reused, so recreating a
    permission always yields a new row identity.
    """
    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("name", "guard_name", name="uq_permissions_name_guard"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    guard_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Relationships
    roles: Mapped[list["Role"]] = relationship(
        "Role",
        secondary=role_permissions,
        back_populates="permissions",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, name={self.name!r}, guard={self.guard_name})>"


class Role(Base, TimestampMixin):
    """
    Role model for grouping permissions.

    Examples: superadmin, admin, user, content-manager
    """
    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("name", "guard_name", name="uq_roles_name_guard"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    guard_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Relationships
    permissions: Mapped[list["Permission"]] = relationship(
        "Permission",
        secondary=role_permissions,
        back_populates="roles",
        lazy="selectin",
        order_by="Permission.name",
    )

    @property
    def permissions_count(self) -> int:
        return len(self.permissions)

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r}, guard={self.guard_name})>"
