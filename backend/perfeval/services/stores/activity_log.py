"""Activity log sink."""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from perfeval.models import EvaluationActivityLog
from perfeval.services.types import ActivityEvent


class ActivityLogService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def record(self, event: ActivityEvent) -> EvaluationActivityLog:
        entry = EvaluationActivityLog(
            period_id=event.period_id,
            employee_id=event.employee_id,
            activity_type=event.activity_type,
            activity_action=event.activity_action,
            activity_title=event.activity_title,
            related_entity_type=event.related_entity_type,
            related_entity_id=event.related_entity_id,
            performed_by=event.performed_by,
            activity_metadata=dict(event.metadata),
        )
        self.db.add(entry)
        await self.db.flush()
        return entry
