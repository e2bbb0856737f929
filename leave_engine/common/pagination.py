"""Pagination helpers for leave request listings."""

import math
from typing import Any, Generic, Optional, Sequence, TypeVar

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.common.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

T = TypeVar("T")


# ── FastAPI dependency ──────────────────────────────────────────────

class PaginationParams:
    """Inject via ``Depends(PaginationParams)`` on any list endpoint."""

    def __init__(
        self,
        page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
        page_size: int = Query(
            default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE,
            description="Items per page",
        ),
        sort: Optional[str] = Query(
            default=None,
            description='Sort field; prefix "-" for DESC (e.g. "-start_date")',
        ),
    ) -> None:
        self.page = page
        self.page_size = page_size
        self.sort = sort

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


# ── Pydantic response models ───────────────────────────────────────

class PaginationMeta(BaseModel):
    """Metadata block embedded in every paginated response."""

    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PaginatedResponse(BaseModel, Generic[T]):
    """Standard envelope: ``{"data": [...], "meta": {...}}``."""

    data: Sequence[T]
    meta: PaginationMeta


# ── SQLAlchemy helper ───────────────────────────────────────────────

async def paginate(
    session: AsyncSession,
    query: Select,
    params: PaginationParams,
    *,
    model: Any,
) -> tuple[Sequence[Any], PaginationMeta]:
    """
    Execute *query* with LIMIT/OFFSET derived from *params*.

    Sort fields are resolved as attributes of *model*; unknown names are
    ignored so the caller's default ordering applies.
    """
    if params.sort:
        descending = params.sort.startswith("-")
        col_name = params.sort.lstrip("-")
        if hasattr(model, col_name):
            col = getattr(model, col_name)
            query = query.order_by(None).order_by(
                col.desc() if descending else col.asc()
            )

    count_q = select(func.count()).select_from(query.order_by(None).subquery())
    total: int = (await session.execute(count_q)).scalar_one()

    rows = (
        await session.execute(
            query.offset(params.offset).limit(params.page_size)
        )
    ).scalars().all()

    total_pages = math.ceil(total / params.page_size) if total else 0

    return rows, PaginationMeta(
        page=params.page,
        page_size=params.page_size,
        total=total,
        total_pages=total_pages,
        has_next=params.page < total_pages,
        has_prev=params.page > 1,
    )
