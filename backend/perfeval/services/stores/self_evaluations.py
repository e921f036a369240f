"""Self-evaluation store."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from perfeval.models import WbsSelfEvaluation


class SelfEvaluationStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find(self, employee_id: int, period_id: int, wbs_item_id: int) -> List[WbsSelfEvaluation]:
        result = await self.db.execute(
            select(WbsSelfEvaluation).where(
                WbsSelfEvaluation.employee_id == employee_id,
                WbsSelfEvaluation.period_id == period_id,
                WbsSelfEvaluation.wbs_item_id == wbs_item_id,
                WbsSelfEvaluation.deleted_at.is_(None),
            )
        )
        return list(result.scalars().all())

    async def delete_for_assignment(
        self,
        employee_id: int,
        period_id: int,
        wbs_item_id: int,
        deleted_by: str,
    ) -> List[Dict[str, int]]:
        """Soft-delete the employee's write-ups for one WBS item; returns what was removed."""
        evaluations = await self.find(employee_id, period_id, wbs_item_id)
        now = datetime.utcnow()
        deleted = []
        for evaluation in evaluations:
            evaluation.deleted_at = now
            evaluation.deleted_by = deleted_by
            deleted.append({"evaluation_id": evaluation.id, "wbs_item_id": evaluation.wbs_item_id})
        if evaluations:
            await self.db.flush()
        return deleted
