"""
User model.
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.core.database.base import Base, TimestampMixin
from backoffice.features.permissions.models import Role, user_roles


class User(Base, TimestampMixin):
    """
    User model representing back office accounts.

    Roles are kept in assignment order; the UI assigns a single role per
    user but the model allows more.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # User information
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Argon2 hash, never the plain password
    password: Mapped[str] = mapped_column(String(255), nullable=False)

    # Status flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    email_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Track last login
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    roles: Mapped[list["Role"]] = relationship(
        "Role",
        secondary=user_roles,
        order_by=user_roles.c.id,
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r})>"


def primary_role(user: User) -> Optional[Role]:
    """First role in assignment order, read fresh from the loaded collection."""
    return user.roles[0] if user.roles else None
