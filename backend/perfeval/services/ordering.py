"""Display-order maintenance for (employee, project, period) assignment scopes.

Orders are dense and zero-based. Every mutation recomputes the whole scope
from one fresh read and writes only the rows whose order changed.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from perfeval.models import WbsAssignment
from perfeval.services.stores import AssignmentStore
from perfeval.services.types import OrderDirection

logger = logging.getLogger(__name__)


def sort_key(assignment: Any):
    assigned = assignment.assigned_date or datetime.min
    return (assignment.display_order, assigned, assignment.id or 0)


def sort_scope(assignments: Sequence[Any]) -> List[Any]:
    return sorted(assignments, key=sort_key)


def _index_of(assignments: Sequence[Any], wbs_item_id: Optional[int]) -> int:
    for index, assignment in enumerate(assignments):
        if assignment.wbs_item_id == wbs_item_id:
            return index
    return -1


def compute_insert_index(
    sorted_assignments: Sequence[Any],
    previous_wbs_item_id: Optional[int] = None,
    next_wbs_item_id: Optional[int] = None,
) -> Optional[int]:
    """Target position for a new item; None means append."""
    size = len(sorted_assignments)
    if previous_wbs_item_id and next_wbs_item_id:
        prev_index = _index_of(sorted_assignments, previous_wbs_item_id)
        next_index = _index_of(sorted_assignments, next_wbs_item_id)
        if prev_index != -1 and next_index != -1:
            return prev_index + 1
        return size
    if previous_wbs_item_id:
        prev_index = _index_of(sorted_assignments, previous_wbs_item_id)
        return prev_index + 1 if prev_index != -1 else size
    if next_wbs_item_id:
        next_index = _index_of(sorted_assignments, next_wbs_item_id)
        return next_index if next_index != -1 else 0
    return None


def plan_order(
    assignments: Sequence[Any],
    new_wbs_item_id: Optional[int] = None,
    target_index: Optional[int] = None,
) -> List[Any]:
    """Final order of a scope: existing rows sorted, new row spliced at target_index."""
    new_assignment = None
    existing = list(assignments)
    if new_wbs_item_id is not None:
        for assignment in existing:
            if assignment.wbs_item_id == new_wbs_item_id:
                new_assignment = assignment
                break
        existing = [a for a in existing if a.wbs_item_id != new_wbs_item_id]

    final = sort_scope(existing)
    if new_assignment is not None:
        if target_index is None:
            final.append(new_assignment)
        else:
            final.insert(max(0, min(int(target_index), len(final))), new_assignment)
    return final


def plan_move(assignments: Sequence[Any], assignment_id: int, direction: OrderDirection) -> List[Any]:
    final = sort_scope(assignments)
    index = next((i for i, a in enumerate(final) if a.id == assignment_id), -1)
    if index == -1:
        return final
    neighbour = index - 1 if direction == OrderDirection.up else index + 1
    if 0 <= neighbour < len(final):
        final[index], final[neighbour] = final[neighbour], final[index]
    return final


class OrderingEngine:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.assignments = AssignmentStore(db)

    async def target_index_for(
        self,
        employee_id: int,
        project_id: int,
        period_id: int,
        previous_wbs_item_id: Optional[int] = None,
        next_wbs_item_id: Optional[int] = None,
    ) -> Optional[int]:
        if not previous_wbs_item_id and not next_wbs_item_id:
            return None
        scope = sort_scope(await self.assignments.list_scope(employee_id, project_id, period_id))
        target_index = compute_insert_index(scope, previous_wbs_item_id, next_wbs_item_id)
        logger.info(
            "Computed insert position",
            extra={
                "employee_id": employee_id,
                "project_id": project_id,
                "period_id": period_id,
                "scope_size": len(scope),
                "target_index": target_index,
            },
        )
        return target_index

    async def _rewrite(self, final: List[WbsAssignment], updated_by: str) -> int:
        changed = 0
        now = datetime.utcnow()
        for index, assignment in enumerate(final):
            if assignment.display_order != index:
                assignment.display_order = index
                assignment.updated_by = updated_by
                assignment.updated_at = now
                changed += 1
        if changed:
            # one flush carries every delta
            await self.db.flush()
        return changed

    async def resequence(
        self,
        employee_id: int,
        project_id: int,
        period_id: int,
        updated_by: str,
        new_wbs_item_id: Optional[int] = None,
        target_index: Optional[int] = None,
    ) -> int:
        scope = await self.assignments.list_scope(employee_id, project_id, period_id)
        final = plan_order(scope, new_wbs_item_id, target_index)
        changed = await self._rewrite(final, updated_by)
        logger.info(
            "Resequenced WBS assignments",
            extra={
                "employee_id": employee_id,
                "project_id": project_id,
                "period_id": period_id,
                "count": len(final),
                "updated_count": changed,
            },
        )
        return changed

    async def move(self, assignment: WbsAssignment, direction: OrderDirection, updated_by: str) -> WbsAssignment:
        scope = await self.assignments.list_scope(assignment.employee_id, assignment.project_id, assignment.period_id)
        final = plan_move(scope, assignment.id, direction)
        await self._rewrite(final, updated_by)
        return assignment
