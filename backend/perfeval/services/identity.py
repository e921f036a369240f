"""Resolves HR-system identifiers to internal employee records.

Manager references on Employee and Project come from the HR source system.
They must go through IdentityResolver before being compared with, or stored
as, an internal employee id.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from perfeval.models import Employee, Project
from perfeval.services.types import ExternalEmployeeId, InternalEmployeeId

logger = logging.getLogger(__name__)


class IdentityResolver:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._cache: Dict[str, Optional[Employee]] = {}

    async def resolve_external_id(self, external_id: Optional[ExternalEmployeeId]) -> Optional[Employee]:
        key = str(external_id or "").strip()
        if not key:
            return None
        if key in self._cache:
            return self._cache[key]
        result = await self.db.execute(
            select(Employee).where(Employee.external_id == key, Employee.deleted_at.is_(None))
        )
        employee = result.scalars().first()
        if employee is None:
            logger.debug("No employee for external id", extra={"external_id": key})
        self._cache[key] = employee
        return employee

    async def resolve_internal_id(self, external_id: Optional[ExternalEmployeeId]) -> Optional[InternalEmployeeId]:
        employee = await self.resolve_external_id(external_id)
        return InternalEmployeeId(employee.id) if employee is not None else None

    async def manager_of(self, employee: Employee) -> Optional[InternalEmployeeId]:
        """Internal id of the employee's direct manager, if resolvable."""
        if not employee.manager_id:
            return None
        return await self.resolve_internal_id(ExternalEmployeeId(employee.manager_id))

    async def project_manager_of(self, project: Project) -> Optional[InternalEmployeeId]:
        """Internal id of the project's PM; the pre-resolved link wins over the external id."""
        if project.manager_employee_id:
            return InternalEmployeeId(project.manager_employee_id)
        if not project.manager_id:
            return None
        resolved = await self.resolve_internal_id(ExternalEmployeeId(project.manager_id))
        if resolved is not None:
            logger.info(
                "Resolved project manager external id",
                extra={"project_id": project.id, "external_id": project.manager_id, "employee_id": resolved},
            )
        return resolved
