"""
Activity log API routes (read only).
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.database.engine import get_db
from backoffice.core.exceptions import NotFoundError
from backoffice.core.pagination import Page, PageParams, apply_search, page_params, paginate
from backoffice.features.activity_logs.models import ActivityLog
from backoffice.features.activity_logs.schemas import ActivityLogResponse
from backoffice.features.permissions.dependencies import require_ability
from backoffice.features.users.models import User


router = APIRouter(tags=["activity-logs"])

ACTIVITY_SORTS = {
    "created_at": ActivityLog.created_at,
    "event": ActivityLog.event,
    "subject_type": ActivityLog.subject_type,
}


@router.get("", response_model=Page[ActivityLogResponse])
async def list_activity_logs(
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[User, Depends(require_ability("viewAny", ActivityLog))],
    params: Annotated[PageParams, Depends(page_params)],
    event: Optional[str] = Query(None, alias="filter[event]"),
    subject_type: Optional[str] = Query(None, alias="filter[subject_type]"),
    causer_id: Optional[int] = Query(None, alias="filter[causer_id]"),
    search: Optional[str] = Query(None, alias="filter[search]"),
):
    """List activity, newest first unless another sort is requested."""
    stmt = select(ActivityLog)

    # Exact-match filters
    if event:
        stmt = stmt.where(ActivityLog.event == event)
    if subject_type:
        stmt = stmt.where(ActivityLog.subject_type == subject_type)
    if causer_id is not None:
        stmt = stmt.where(ActivityLog.causer_id == causer_id)

    stmt = apply_search(stmt, search, [ActivityLog.description, ActivityLog.subject_type])

    logs, meta = await paginate(db, stmt, params, ACTIVITY_SORTS, tiebreaker=ActivityLog.id.desc())
    return {"data": logs, "meta": meta}


@router.get("/{log_id}", response_model=ActivityLogResponse)
async def get_activity_log(
    log_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[User, Depends(require_ability("view", ActivityLog))],
):
    entry = await db.get(ActivityLog, log_id)
    if entry is None:
        raise NotFoundError("Activity log")
    return entry
