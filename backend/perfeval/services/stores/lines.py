"""Evaluation line templates and line mappings."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from perfeval.models import EvaluationLine, EvaluationLineMapping, EvaluatorType

# evaluator_type -> (order, is_required)
STANDARD_LINES = {
    EvaluatorType.primary: (1, True),
    EvaluatorType.secondary: (2, False),
}


class LineStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    async def get_line(self, evaluator_type: EvaluatorType, order: Optional[int] = None) -> Optional[EvaluationLine]:
        query = select(EvaluationLine).where(
            EvaluationLine.evaluator_type == evaluator_type,
            EvaluationLine.deleted_at.is_(None),
        )
        if order is not None:
            query = query.where(EvaluationLine.order == order)
        result = await self.db.execute(query.order_by(EvaluationLine.order.asc(), EvaluationLine.id.asc()))
        return result.scalars().first()

    async def get_line_by_id(self, line_id: int) -> Optional[EvaluationLine]:
        result = await self.db.execute(
            select(EvaluationLine).where(EvaluationLine.id == line_id, EvaluationLine.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def ensure_line(self, evaluator_type: EvaluatorType, created_by: str) -> Tuple[EvaluationLine, bool]:
        order, is_required = STANDARD_LINES[evaluator_type]
        line = await self.get_line(evaluator_type, order)
        if line is not None:
            return line, False
        line = EvaluationLine(
            evaluator_type=evaluator_type,
            order=order,
            is_required=is_required,
            is_auto_assigned=True,
            created_by=created_by,
        )
        self.db.add(line)
        await self.db.flush()
        return line, True

    # ------------------------------------------------------------------
    # Mappings
    # ------------------------------------------------------------------

    async def find_employee_mappings(self, period_id: int, employee_id: int, line_id: int) -> List[EvaluationLineMapping]:
        """Employee-level mappings (wbs_item_id IS NULL), oldest first."""
        result = await self.db.execute(
            select(EvaluationLineMapping)
            .where(
                EvaluationLineMapping.period_id == period_id,
                EvaluationLineMapping.employee_id == employee_id,
                EvaluationLineMapping.evaluation_line_id == line_id,
                EvaluationLineMapping.wbs_item_id.is_(None),
                EvaluationLineMapping.deleted_at.is_(None),
            )
            .order_by(EvaluationLineMapping.created_at.asc(), EvaluationLineMapping.id.asc())
        )
        return list(result.scalars().all())

    async def find_wbs_mappings(
        self,
        period_id: int,
        employee_id: int,
        wbs_item_id: int,
        line_id: Optional[int] = None,
    ) -> List[EvaluationLineMapping]:
        query = select(EvaluationLineMapping).where(
            EvaluationLineMapping.period_id == period_id,
            EvaluationLineMapping.employee_id == employee_id,
            EvaluationLineMapping.wbs_item_id == wbs_item_id,
            EvaluationLineMapping.deleted_at.is_(None),
        )
        if line_id is not None:
            query = query.where(EvaluationLineMapping.evaluation_line_id == line_id)
        result = await self.db.execute(query.order_by(EvaluationLineMapping.id.asc()))
        return list(result.scalars().all())

    async def list_period_mappings(self, period_id: int) -> List[EvaluationLineMapping]:
        result = await self.db.execute(
            select(EvaluationLineMapping)
            .where(
                EvaluationLineMapping.period_id == period_id,
                EvaluationLineMapping.deleted_at.is_(None),
            )
            .order_by(EvaluationLineMapping.created_at.asc(), EvaluationLineMapping.id.asc())
        )
        return list(result.scalars().all())

    async def create_mapping(
        self,
        period_id: int,
        employee_id: int,
        evaluator_id: int,
        line_id: int,
        created_by: str,
        wbs_item_id: Optional[int] = None,
    ) -> EvaluationLineMapping:
        mapping = EvaluationLineMapping(
            period_id=period_id,
            employee_id=employee_id,
            evaluator_id=evaluator_id,
            wbs_item_id=wbs_item_id,
            evaluation_line_id=line_id,
            created_by=created_by,
        )
        self.db.add(mapping)
        await self.db.flush()
        return mapping

    async def soft_delete_mapping(self, mapping_id: int, deleted_by: str) -> bool:
        result = await self.db.execute(
            update(EvaluationLineMapping)
            .where(EvaluationLineMapping.id == mapping_id, EvaluationLineMapping.deleted_at.is_(None))
            .values(deleted_at=datetime.utcnow(), deleted_by=deleted_by)
            .execution_options(synchronize_session="fetch")
        )
        return (result.rowcount or 0) > 0

    async def soft_delete_wbs_mappings(
        self,
        employee_id: int,
        wbs_item_id: int,
        period_id: int,
        deleted_by: str,
    ) -> List[int]:
        """Drop the per-WBS bindings of one assignment; employee-level rows are never matched."""
        mappings = await self.find_wbs_mappings(period_id, employee_id, wbs_item_id)
        deleted: List[int] = []
        for mapping in mappings:
            if await self.soft_delete_mapping(mapping.id, deleted_by):
                deleted.append(mapping.id)
        return deleted
