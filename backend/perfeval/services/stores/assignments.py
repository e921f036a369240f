"""Assignment store - WBS assignment rows scoped by (employee, project, period, wbs item)."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from perfeval.config import get_settings
from perfeval.models import WbsAssignment
from perfeval.services.types import (
    AssignmentFilter,
    AssignmentPage,
    AssignmentRequest,
    ConflictError,
)

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = {
    "display_order": WbsAssignment.display_order,
    "assigned_date": WbsAssignment.assigned_date,
    "created_at": WbsAssignment.created_at,
    "weight": WbsAssignment.weight,
    "id": WbsAssignment.id,
}

ScopeKey = Tuple[int, int, int]  # (employee_id, project_id, period_id)


def _apply_filter(query, flt: AssignmentFilter):
    query = query.where(WbsAssignment.deleted_at.is_(None))
    if flt.period_id is not None:
        query = query.where(WbsAssignment.period_id == flt.period_id)
    if flt.employee_id is not None:
        query = query.where(WbsAssignment.employee_id == flt.employee_id)
    if flt.project_id is not None:
        query = query.where(WbsAssignment.project_id == flt.project_id)
    if flt.wbs_item_id is not None:
        query = query.where(WbsAssignment.wbs_item_id == flt.wbs_item_id)
    return query


class AssignmentStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._settings = get_settings()

    async def get(self, assignment_id: int) -> Optional[WbsAssignment]:
        """Active assignment by id, or None (soft-deleted rows are invisible)."""
        result = await self.db.execute(
            select(WbsAssignment).where(
                WbsAssignment.id == assignment_id,
                WbsAssignment.deleted_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def find_by_key(
        self,
        employee_id: int,
        wbs_item_id: int,
        project_id: int,
        period_id: int,
    ) -> Optional[WbsAssignment]:
        result = await self.db.execute(
            select(WbsAssignment).where(
                WbsAssignment.employee_id == employee_id,
                WbsAssignment.wbs_item_id == wbs_item_id,
                WbsAssignment.project_id == project_id,
                WbsAssignment.period_id == period_id,
                WbsAssignment.deleted_at.is_(None),
            )
        )
        return result.scalars().first()

    async def list(
        self,
        flt: AssignmentFilter,
        page: int = 1,
        limit: Optional[int] = None,
        order_by: str = "display_order",
        order_direction: str = "asc",
    ) -> AssignmentPage:
        page = max(1, int(page or 1))
        limit = max(1, int(limit or self._settings.default_page_limit))
        column = SORTABLE_COLUMNS.get(order_by, WbsAssignment.display_order)
        ordering = column.desc() if str(order_direction).lower() == "desc" else column.asc()

        total_result = await self.db.execute(
            _apply_filter(select(func.count(WbsAssignment.id)), flt)
        )
        total = total_result.scalar() or 0

        result = await self.db.execute(
            _apply_filter(select(WbsAssignment), flt)
            .order_by(ordering, WbsAssignment.assigned_date.asc(), WbsAssignment.id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return AssignmentPage(
            assignments=list(result.scalars().all()),
            total=total,
            page=page,
            limit=limit,
        )

    async def list_scope(self, employee_id: int, project_id: int, period_id: int) -> List[WbsAssignment]:
        """Fresh read of every active row in an ordering scope."""
        result = await self.db.execute(
            select(WbsAssignment)
            .where(
                WbsAssignment.employee_id == employee_id,
                WbsAssignment.project_id == project_id,
                WbsAssignment.period_id == period_id,
                WbsAssignment.deleted_at.is_(None),
            )
            .order_by(WbsAssignment.display_order.asc(), WbsAssignment.assigned_date.asc(), WbsAssignment.id.asc())
            .limit(self._settings.assignment_scope_fetch_limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_for_wbs_item(self, wbs_item_id: int, period_id: int) -> List[WbsAssignment]:
        result = await self.db.execute(
            select(WbsAssignment)
            .where(
                WbsAssignment.wbs_item_id == wbs_item_id,
                WbsAssignment.period_id == period_id,
                WbsAssignment.deleted_at.is_(None),
            )
            .order_by(WbsAssignment.employee_id.asc())
        )
        return list(result.scalars().all())

    async def count_active_for_wbs_item(self, wbs_item_id: int, exclude_id: Optional[int] = None) -> int:
        """Active assignments of a WBS item in any period, optionally ignoring one row.

        Not scoped to a period on purpose: criteria rows belong to the WBS item
        itself, so they stay while any period still assigns it.
        """
        query = select(func.count(WbsAssignment.id)).where(
            WbsAssignment.wbs_item_id == wbs_item_id,
            WbsAssignment.deleted_at.is_(None),
        )
        if exclude_id is not None:
            query = query.where(WbsAssignment.id != exclude_id)
        result = await self.db.execute(query)
        return result.scalar() or 0

    async def wbs_item_ids_where(self, flt: AssignmentFilter) -> List[int]:
        """Distinct WBS items of every active row matching the filter, unpaginated."""
        result = await self.db.execute(
            _apply_filter(select(WbsAssignment.wbs_item_id), flt)
            .group_by(WbsAssignment.wbs_item_id)
            .order_by(func.min(WbsAssignment.id))
        )
        return [row[0] for row in result.all()]

    async def assigned_wbs_item_ids(
        self,
        project_id: int,
        period_id: int,
        employee_id: Optional[int] = None,
    ) -> List[int]:
        query = select(WbsAssignment.wbs_item_id).where(
            WbsAssignment.project_id == project_id,
            WbsAssignment.period_id == period_id,
            WbsAssignment.deleted_at.is_(None),
        )
        if employee_id is not None:
            query = query.where(WbsAssignment.employee_id == employee_id)
        result = await self.db.execute(query.distinct())
        return [row[0] for row in result.all()]

    async def _next_order(self, scope: ScopeKey) -> int:
        """Position after the last active row of the scope, gaps included."""
        employee_id, project_id, period_id = scope
        result = await self.db.execute(
            select(func.coalesce(func.max(WbsAssignment.display_order), -1) + 1).where(
                WbsAssignment.employee_id == employee_id,
                WbsAssignment.project_id == project_id,
                WbsAssignment.period_id == period_id,
                WbsAssignment.deleted_at.is_(None),
            )
        )
        return result.scalar() or 0

    async def _ensure_not_assigned(self, employee_id: int, wbs_item_id: int, period_id: int) -> None:
        result = await self.db.execute(
            select(WbsAssignment.id).where(
                WbsAssignment.employee_id == employee_id,
                WbsAssignment.wbs_item_id == wbs_item_id,
                WbsAssignment.period_id == period_id,
                WbsAssignment.deleted_at.is_(None),
            )
        )
        if result.first() is not None:
            raise ConflictError(
                "WBS item is already assigned to this employee in this period",
                key={"employee_id": employee_id, "wbs_item_id": wbs_item_id, "period_id": period_id},
            )

    async def create(
        self,
        request: AssignmentRequest,
        assigned_by: str,
        display_order: Optional[int] = None,
    ) -> WbsAssignment:
        await self._ensure_not_assigned(request.employee_id, request.wbs_item_id, request.period_id)
        if display_order is None:
            display_order = await self._next_order(
                (request.employee_id, request.project_id, request.period_id)
            )
        assignment = WbsAssignment(
            employee_id=request.employee_id,
            wbs_item_id=request.wbs_item_id,
            project_id=request.project_id,
            period_id=request.period_id,
            assigned_by=assigned_by,
            assigned_date=datetime.utcnow(),
            display_order=display_order,
            created_by=assigned_by,
        )
        self.db.add(assignment)
        await self._flush(request)
        return assignment

    async def create_many(self, requests: Iterable[AssignmentRequest], assigned_by: str) -> List[WbsAssignment]:
        """Create every row or none; each row is appended to the end of its scope."""
        requests = list(requests)
        seen = set()
        for request in requests:
            key = (request.employee_id, request.wbs_item_id, request.period_id)
            if key in seen:
                raise ConflictError("Duplicate assignment in batch", key=dict(zip(("employee_id", "wbs_item_id", "period_id"), key)))
            seen.add(key)
            await self._ensure_not_assigned(*key)

        next_order: Dict[ScopeKey, int] = {}
        assignments: List[WbsAssignment] = []
        for request in requests:
            scope = (request.employee_id, request.project_id, request.period_id)
            if scope not in next_order:
                next_order[scope] = await self._next_order(scope)
            assignment = WbsAssignment(
                employee_id=request.employee_id,
                wbs_item_id=request.wbs_item_id,
                project_id=request.project_id,
                period_id=request.period_id,
                assigned_by=assigned_by,
                assigned_date=datetime.utcnow(),
                display_order=next_order[scope],
                created_by=assigned_by,
            )
            next_order[scope] += 1
            self.db.add(assignment)
            assignments.append(assignment)
        if requests:
            await self._flush(requests[0])
        return assignments

    async def _flush(self, request: AssignmentRequest) -> None:
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                "WBS assignment violates a uniqueness constraint",
                key={"employee_id": request.employee_id, "wbs_item_id": request.wbs_item_id, "period_id": request.period_id},
            ) from exc

    async def soft_delete(self, assignment_id: int, deleted_by: str) -> bool:
        """Returns False when the row is missing or already deleted."""
        result = await self.db.execute(
            update(WbsAssignment)
            .where(WbsAssignment.id == assignment_id, WbsAssignment.deleted_at.is_(None))
            .values(deleted_at=datetime.utcnow(), deleted_by=deleted_by, updated_by=deleted_by)
            .execution_options(synchronize_session="fetch")
        )
        return (result.rowcount or 0) > 0

    async def soft_delete_where(self, flt: AssignmentFilter, deleted_by: str) -> int:
        query = _apply_filter(update(WbsAssignment), flt)
        result = await self.db.execute(
            query.values(deleted_at=datetime.utcnow(), deleted_by=deleted_by, updated_by=deleted_by)
            .execution_options(synchronize_session="fetch")
        )
        deleted = result.rowcount or 0
        logger.info("Soft-deleted WBS assignments", extra={"count": deleted, "deleted_by": deleted_by})
        return deleted
