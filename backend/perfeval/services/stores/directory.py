"""Read-only lookups for employees, projects and periods."""
from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from perfeval.models import Employee, EvaluationPeriod, PeriodStatus, Project


class DirectoryStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_employee(self, employee_id: int) -> Optional[Employee]:
        result = await self.db.execute(
            select(Employee).where(Employee.id == employee_id, Employee.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def get_project(self, project_id: int) -> Optional[Project]:
        result = await self.db.execute(
            select(Project).where(Project.id == project_id, Project.deleted_at.is_(None))
        )
        return result.unique().scalar_one_or_none()

    async def list_periods(self, status: Optional[PeriodStatus] = None) -> List[EvaluationPeriod]:
        query = select(EvaluationPeriod)
        if status is not None:
            query = query.where(EvaluationPeriod.status == status)
        result = await self.db.execute(query.order_by(EvaluationPeriod.id.asc()))
        return list(result.scalars().all())
