"""
Activity logging helpers.

Mutating services call ``record_activity`` before committing so the log row
is written in the same transaction as the change it describes.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.features.activity_logs.models import ActivityLog
from backoffice.utils import get_logger


log = get_logger(__name__)

# Never written to the log
IGNORED_ATTRIBUTES = frozenset({
    "password",
    "remember_token",
    "created_at",
    "updated_at",
    "last_login_at",
})

DESCRIPTIONS = {
    "created": "Created {model}",
    "updated": "Updated {model}",
    "deleted": "Deleted {model}",
}


@dataclass(frozen=True)
class AuditContext:
    """Who is acting and from where."""
    user_id: Optional[int] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def _serialize(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def model_attributes(instance: Any, ignore: Iterable[str] = IGNORED_ATTRIBUTES) -> Dict[str, Any]:
    """Column values of a mapped instance, minus ignored attributes."""
    ignored = set(ignore)
    mapper = inspect(type(instance))
    return {
        column.key: _serialize(getattr(instance, column.key))
        for column in mapper.column_attrs
        if column.key not in ignored
    }


def dirty_attributes(old: Dict[str, Any], new: Dict[str, Any]) -> tuple[Dict[str, Any], Dict[str, Any]]:
    """Return (old, new) restricted to the keys whose values changed."""
    changed = [key for key in new if old.get(key) != new.get(key)]
    return {key: old.get(key) for key in changed}, {key: new[key] for key in changed}


def describe(event: str, subject: Any) -> str:
    model = type(subject).__name__
    return DESCRIPTIONS.get(event, "{event} {model}").format(event=event, model=model)


def record_activity(
    db: AsyncSession,
    event: str,
    subject: Any,
    audit: Optional[AuditContext] = None,
    properties: Optional[Dict[str, Any]] = None,
    description: Optional[str] = None,
) -> Optional[ActivityLog]:
    """
    Add an activity row for ``subject`` to the session.

    Update events without any change in ``properties["attributes"]`` are not
    recorded.
    """
    if event == "updated" and properties is not None and not properties.get("attributes"):
        return None

    audit = audit or AuditContext()
    entry = ActivityLog(
        description=description or describe(event, subject),
        event=event,
        subject_type=getattr(subject, "__tablename__", None),
        subject_id=getattr(subject, "id", None),
        causer_id=audit.user_id,
        properties=properties or {},
        ip_address=audit.ip_address,
        user_agent=audit.user_agent,
    )
    db.add(entry)

    log.info(
        f"Activity: user={audit.user_id} event={event} "
        f"subject={entry.subject_type}:{entry.subject_id}"
    )
    return entry
