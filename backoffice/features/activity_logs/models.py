"""
Activity log model.

Tracks who changed which record, when, and from where.
"""
from typing import TYPE_CHECKING, Any, Dict, Optional
from sqlalchemy import String, ForeignKey, JSON, Text, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.core.database.base import Base, TimestampMixin

if TYPE_CHECKING:
    from backoffice.features.users.models import User


class ActivityLog(Base, TimestampMixin):
    """
    One recorded change.

    subject_type is the table name of the changed record ("users", "roles",
    "permissions", "settings").
    """
    __tablename__ = "activity_log"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    log_name: Mapped[str] = mapped_column(String(255), nullable=False, default="default")

    # What happened
    description: Mapped[str] = mapped_column(Text, nullable=False)
    event: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)

    subject_type: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    subject_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    # Actor
    causer_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    causer: Mapped[Optional["User"]] = relationship("User", lazy="selectin")

    # {"attributes": {...}, "old": {...}}
    properties: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Request context
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<ActivityLog(id={self.id}, event={self.event}, subject={self.subject_type}:{self.subject_id})>"
