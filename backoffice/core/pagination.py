"""
Paginated listing helpers shared by the list endpoints.

Query string conventions:
    ?page=2&per_page=25&sort=-created_at,name&filter[search]=jane
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Sequence, TypeVar

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.exceptions import ValidationError


PER_PAGE_OPTIONS = (10, 25, 50, 100)
DEFAULT_PER_PAGE = 10
DEFAULT_SORT = "-created_at"

T = TypeVar("T")


def clamp_per_page(value: Any) -> int:
    """Snap a requested page size to one of PER_PAGE_OPTIONS (default 10)."""
    try:
        per_page = int(value)
    except (TypeError, ValueError):
        return DEFAULT_PER_PAGE
    return per_page if per_page in PER_PAGE_OPTIONS else DEFAULT_PER_PAGE


@dataclass
class PageParams:
    page: int = 1
    per_page: int = DEFAULT_PER_PAGE
    sort: Optional[str] = None


def page_params(
    page: int = Query(1, ge=1),
    per_page: Optional[str] = Query(None),
    sort: Optional[str] = Query(None),
) -> PageParams:
    """FastAPI dependency reading page/per_page/sort from the query string."""
    return PageParams(page=page, per_page=clamp_per_page(per_page), sort=sort)


class PageMeta(BaseModel):
    current_page: int
    last_page: int
    per_page: int
    total: int


class Page(BaseModel, Generic[T]):
    data: List[T]
    meta: PageMeta


def apply_sort(
    stmt: Select,
    sort: Optional[str],
    allowed: Dict[str, Any],
    default: str = DEFAULT_SORT,
) -> Select:
    """
    Order a statement by a comma separated sort spec.

    Each entry must be a key of ``allowed`` (mapping sort names to columns),
    optionally prefixed with ``-`` for descending order.
    """
    spec = sort or default
    clauses = []
    for part in (p.strip() for p in spec.split(",")):
        if not part:
            continue
        descending = part.startswith("-")
        key = part.lstrip("-")
        if key not in allowed:
            raise ValidationError(
                {"sort": f"Requested sort '{key}' is not allowed. Allowed sorts are {', '.join(allowed)}."}
            )
        column = allowed[key]
        clauses.append(column.desc() if descending else column.asc())
    return stmt.order_by(*clauses)


def apply_search(stmt: Select, term: Optional[str], columns: Sequence[Any]) -> Select:
    """Restrict a statement to rows where any column contains ``term``."""
    if not term:
        return stmt
    pattern = f"%{term}%"
    return stmt.where(or_(*(column.ilike(pattern) for column in columns)))


async def paginate(
    db: AsyncSession,
    stmt: Select,
    params: PageParams,
    allowed_sorts: Dict[str, Any],
    default_sort: str = DEFAULT_SORT,
    tiebreaker: Any = None,
) -> tuple[list, PageMeta]:
    """
    Run ``stmt`` for one page.

    Returns the ORM rows of the page and the pagination metadata. A page past
    the end returns no rows rather than an error.
    """
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = (await db.execute(count_stmt)).scalar_one()

    per_page = clamp_per_page(params.per_page)
    last_page = max(1, math.ceil(total / per_page))

    ordered = apply_sort(stmt, params.sort, allowed_sorts, default_sort)
    if tiebreaker is not None:
        ordered = ordered.order_by(tiebreaker)
    ordered = ordered.offset((params.page - 1) * per_page).limit(per_page)

    result = await db.execute(ordered)
    rows = list(result.scalars().unique().all())

    meta = PageMeta(current_page=params.page, last_page=last_page, per_page=per_page, total=total)
    return rows, meta
