"""WBS item store."""
from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from perfeval.models import WbsItem, WbsItemStatus

WBS_CODE_PREFIX = "WBS-"


def format_wbs_code(sequence: int) -> str:
    return f"{WBS_CODE_PREFIX}{sequence:03d}"


class WbsItemStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, wbs_item_id: int) -> Optional[WbsItem]:
        result = await self.db.execute(
            select(WbsItem).where(WbsItem.id == wbs_item_id, WbsItem.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def list_for_project(self, project_id: int) -> List[WbsItem]:
        result = await self.db.execute(
            select(WbsItem)
            .where(WbsItem.project_id == project_id, WbsItem.deleted_at.is_(None))
            .order_by(WbsItem.wbs_code.asc(), WbsItem.id.asc())
        )
        return list(result.scalars().all())

    async def _next_code(self, project_id: int) -> str:
        # deleted rows keep their code, so they count as taken
        result = await self.db.execute(select(WbsItem.wbs_code).where(WbsItem.project_id == project_id))
        taken = {row[0] for row in result.all()}
        sequence = len(taken) + 1
        while format_wbs_code(sequence) in taken:
            sequence += 1
        return format_wbs_code(sequence)

    async def create_with_generated_code(
        self,
        project_id: int,
        title: str,
        created_by: str,
        assigned_to_id: Optional[int] = None,
    ) -> WbsItem:
        item = WbsItem(
            project_id=project_id,
            wbs_code=await self._next_code(project_id),
            title=title,
            status=WbsItemStatus.pending,
            level=1,
            assigned_to_id=assigned_to_id,
            parent_wbs_id=None,
            start_date=None,
            end_date=None,
            progress_percentage=0.0,
            created_by=created_by,
        )
        self.db.add(item)
        await self.db.flush()
        return item

    async def update_title(self, item: WbsItem, title: str, updated_by: str) -> WbsItem:
        item.title = title
        item.updated_by = updated_by
        await self.db.flush()
        return item
