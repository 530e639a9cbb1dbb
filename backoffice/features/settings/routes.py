"""
System settings routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.database.engine import get_db
from backoffice.features.activity_logs.service import AuditContext
from backoffice.features.permissions.authorization import MANAGE_SYSTEM_SETTINGS
from backoffice.features.permissions.dependencies import require_ability
from backoffice.features.settings.schemas import SystemSettingsUpdate
from backoffice.features.settings.service import (
    SystemSettings,
    load_system_settings,
    save_system_settings,
)
from backoffice.features.users.dependencies import get_audit_context
from backoffice.features.users.models import User


router = APIRouter(tags=["settings"])


@router.get("/system", response_model=SystemSettings)
async def get_system_settings(
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[User, Depends(require_ability(MANAGE_SYSTEM_SETTINGS))],
):
    return await load_system_settings(db)


@router.put("/system", response_model=SystemSettings)
async def update_system_settings(
    payload: SystemSettingsUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[User, Depends(require_ability(MANAGE_SYSTEM_SETTINGS))],
    audit: Annotated[AuditContext, Depends(get_audit_context)],
):
    """Update system settings. Last write wins."""
    current = await load_system_settings(db)
    updated = current.model_copy(update=payload.model_dump(exclude_none=True))
    return await save_system_settings(db, updated, audit=audit)
