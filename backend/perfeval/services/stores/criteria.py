"""Criteria store - evaluation criteria shared per WBS item."""
from __future__ import annotations

from typing import List

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from perfeval.models import WbsEvaluationCriteria


class CriteriaStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_for_wbs_item(self, wbs_item_id: int) -> List[WbsEvaluationCriteria]:
        result = await self.db.execute(
            select(WbsEvaluationCriteria)
            .where(WbsEvaluationCriteria.wbs_item_id == wbs_item_id)
            .order_by(WbsEvaluationCriteria.id.asc())
        )
        return list(result.scalars().all())

    async def create(
        self,
        wbs_item_id: int,
        criteria: str,
        importance: int,
        created_by: str,
        is_additional: bool = False,
    ) -> WbsEvaluationCriteria:
        row = WbsEvaluationCriteria(
            wbs_item_id=wbs_item_id,
            criteria=criteria,
            importance=importance,
            is_additional=is_additional,
            created_by=created_by,
        )
        self.db.add(row)
        await self.db.flush()
        return row

    async def delete_all_for_wbs_item(self, wbs_item_id: int) -> int:
        result = await self.db.execute(
            delete(WbsEvaluationCriteria)
            .where(WbsEvaluationCriteria.wbs_item_id == wbs_item_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0
