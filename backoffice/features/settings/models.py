"""
Setting model: one row per (group, name) holding a JSON payload.
"""
from typing import Any
from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.database.base import Base, TimestampMixin


class Setting(Base, TimestampMixin):
    __tablename__ = "settings"
    __table_args__ = (
        UniqueConstraint("group", "name", name="uq_settings_group_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    group: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[Any] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Setting({self.group}.{self.name}={self.payload!r})>"
