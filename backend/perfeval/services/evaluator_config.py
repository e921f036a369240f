"""Automatic evaluator wiring for WBS assignments.

PRIMARY evaluator: one employee-level mapping (wbs_item_id NULL) per employee
and period. Once it exists it is reused as-is.
SECONDARY evaluator: the project's manager, bound per WBS item, unless that
person is also the employee's own manager.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from perfeval.models import EvaluationLineMapping, EvaluatorType
from perfeval.services.identity import IdentityResolver
from perfeval.services.stores import DirectoryStore, LineStore
from perfeval.services.types import EvaluatorConfiguration, InternalEmployeeId

logger = logging.getLogger(__name__)


class EvaluatorAutoConfigurator:
    def __init__(self, db: AsyncSession, resolver: Optional[IdentityResolver] = None) -> None:
        self.db = db
        self.resolver = resolver or IdentityResolver(db)
        self.lines = LineStore(db)
        self.directory = DirectoryStore(db)

    async def existing_primary_evaluator(self, employee_id: int, period_id: int) -> Optional[InternalEmployeeId]:
        line = await self.lines.get_line(EvaluatorType.primary, order=1)
        if line is None:
            return None
        mappings = await self.lines.find_employee_mappings(period_id, employee_id, line.id)
        if not mappings:
            return None
        return InternalEmployeeId(mappings[0].evaluator_id)

    async def configure_primary(
        self,
        employee_id: int,
        period_id: int,
        evaluator_id: InternalEmployeeId,
        created_by: str,
    ) -> Tuple[EvaluationLineMapping, bool]:
        line, _ = await self.lines.ensure_line(EvaluatorType.primary, created_by)
        existing = await self.lines.find_employee_mappings(period_id, employee_id, line.id)
        if existing:
            return existing[0], False
        mapping = await self.lines.create_mapping(
            period_id=period_id,
            employee_id=employee_id,
            evaluator_id=evaluator_id,
            line_id=line.id,
            created_by=created_by,
        )
        return mapping, True

    async def configure_secondary(
        self,
        employee_id: int,
        wbs_item_id: int,
        period_id: int,
        evaluator_id: InternalEmployeeId,
        created_by: str,
    ) -> Tuple[EvaluationLineMapping, bool]:
        line, _ = await self.lines.ensure_line(EvaluatorType.secondary, created_by)
        existing = await self.lines.find_wbs_mappings(period_id, employee_id, wbs_item_id, line.id)
        if existing:
            mapping = existing[0]
            if mapping.evaluator_id != evaluator_id:
                logger.info(
                    "Re-pointing secondary evaluator",
                    extra={"mapping_id": mapping.id, "old": mapping.evaluator_id, "new": evaluator_id},
                )
                mapping.evaluator_id = evaluator_id
                mapping.updated_by = created_by
                await self.db.flush()
            return mapping, False
        mapping = await self.lines.create_mapping(
            period_id=period_id,
            employee_id=employee_id,
            evaluator_id=evaluator_id,
            line_id=line.id,
            created_by=created_by,
            wbs_item_id=wbs_item_id,
        )
        return mapping, True

    async def ensure_wbs_evaluation_line(
        self,
        employee_id: int,
        wbs_item_id: int,
        period_id: int,
        created_by: str,
    ) -> Dict[str, int]:
        """Make sure the standard line templates exist for per-WBS evaluation."""
        created_lines = 0
        for evaluator_type in (EvaluatorType.primary, EvaluatorType.secondary):
            _, created = await self.lines.ensure_line(evaluator_type, created_by)
            created_lines += int(created)
        logger.info(
            "Per-WBS evaluation line ready",
            extra={
                "employee_id": employee_id,
                "wbs_item_id": wbs_item_id,
                "period_id": period_id,
                "created_lines": created_lines,
            },
        )
        return {"created_lines": created_lines, "created_mappings": 0}

    async def configure_for_assignment(
        self,
        employee_id: int,
        wbs_item_id: int,
        project_id: int,
        period_id: int,
        created_by: str,
    ) -> EvaluatorConfiguration:
        config = EvaluatorConfiguration(employee_id=employee_id, wbs_item_id=wbs_item_id)
        context = {"employee_id": employee_id, "wbs_item_id": wbs_item_id, "project_id": project_id, "period_id": period_id}

        employee = await self.directory.get_employee(employee_id)
        if employee is None:
            logger.warning("Employee not found, evaluator line not configured", extra=context)
            config.skipped.append("employee_not_found")
            return config
        project = await self.directory.get_project(project_id)
        if project is None:
            logger.warning("Project not found, evaluator line not configured", extra=context)
            config.skipped.append("project_not_found")
            return config

        # Both sides of every comparison below are internal ids.
        employee_manager_id = await self.resolver.manager_of(employee)

        primary_id = await self.existing_primary_evaluator(employee_id, period_id)
        if primary_id is None:
            primary_id = employee_manager_id
        if primary_id is not None:
            _, config.primary_created = await self.configure_primary(employee_id, period_id, primary_id, created_by)
            config.primary_evaluator_id = primary_id
        else:
            logger.warning(
                "No primary evaluator available",
                extra={**context, "manager_external_id": employee.manager_id},
            )
            config.skipped.append("no_primary_evaluator")

        secondary_id = await self.resolver.project_manager_of(project)
        if secondary_id is None:
            logger.warning(
                "Project manager missing or unresolvable, secondary evaluator not configured",
                extra={**context, "manager_external_id": project.manager_id},
            )
            config.skipped.append("no_secondary_evaluator")
        elif employee_manager_id is not None and secondary_id == employee_manager_id:
            logger.info(
                "Project manager is the employee's manager, secondary evaluator not configured",
                extra={**context, "evaluator_id": secondary_id},
            )
            config.skipped.append("secondary_same_as_manager")
        else:
            _, config.secondary_created = await self.configure_secondary(
                employee_id, wbs_item_id, period_id, secondary_id, created_by
            )
            config.secondary_evaluator_id = secondary_id

        logger.info(
            "Evaluator line configured",
            extra={
                **context,
                "primary_evaluator_id": config.primary_evaluator_id,
                "secondary_evaluator_id": config.secondary_evaluator_id,
            },
        )
        return config
