"""
Settings store.

Settings are grouped key/value pairs. Each group is described by a pydantic
model whose field defaults apply until a value has been saved. Saves are
last-write-wins.
"""
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.features.activity_logs.service import AuditContext, record_activity
from backoffice.features.settings.models import Setting
from backoffice.utils import get_logger


log = get_logger(__name__)

S = TypeVar("S", bound=BaseModel)


class SystemSettings(BaseModel):
    """Settings of the ``system`` group."""
    registration_enabled: bool = True


class SettingsStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _rows(self, group: str) -> Dict[str, Setting]:
        result = await self.db.execute(select(Setting).where(Setting.group == group))
        return {row.name: row for row in result.scalars().all()}

    async def get(self, group: str, defaults: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Stored values of ``group`` layered over ``defaults``."""
        values = dict(defaults or {})
        for name, row in (await self._rows(group)).items():
            values[name] = row.payload
        return values

    async def save(self, group: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Write ``values`` into ``group`` and return the previous values of the
        keys that changed. Does not commit.
        """
        rows = await self._rows(group)
        changed: Dict[str, Any] = {}
        for name, value in values.items():
            row = rows.get(name)
            if row is None:
                self.db.add(Setting(group=group, name=name, payload=value))
                changed[name] = None
            elif row.payload != value:
                changed[name] = row.payload
                row.payload = value
        await self.db.flush()
        return changed

    async def load(self, group: str, model: Type[S]) -> S:
        defaults = model().model_dump()
        return model.model_validate(await self.get(group, defaults))


async def load_system_settings(db: AsyncSession) -> SystemSettings:
    return await SettingsStore(db).load("system", SystemSettings)


async def save_system_settings(
    db: AsyncSession,
    settings: SystemSettings,
    audit: Optional[AuditContext] = None,
) -> SystemSettings:
    """Persist the system settings, logging the change as an activity."""
    values = settings.model_dump()
    old = await SettingsStore(db).save("system", values)

    if old:
        subject = Setting(group="system", name="system")
        record_activity(
            db, "updated", subject, audit,
            {"attributes": {name: values[name] for name in old}, "old": old},
            description="Updated system settings",
        )
    await db.commit()

    log.info(f"System settings saved: {values}")
    return settings
