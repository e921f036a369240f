"""Periodic audit of evaluation line mappings."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from perfeval.models import Employee, EvaluationLineMapping, EvaluatorType, WbsAssignment
from perfeval.services.stores import LineStore

logger = logging.getLogger(__name__)

REASON_NO_EVALUATOR = "evaluator is not an active employee"
REASON_LINE_NOT_FOUND = "evaluation line missing or deleted"
REASON_ASSIGNMENT_DELETED = "WBS assignment deleted or missing"
REASON_DUPLICATE_PRIMARY = "duplicate employee-level primary evaluator"


def _empty_summary() -> Dict[str, int]:
    return {
        "no_evaluator_in_employee": 0,
        "wbs_assignment_deleted": 0,
        "duplicate_primary_evaluator": 0,
        "evaluation_line_not_found": 0,
    }


@dataclass
class InvalidMapping:
    id: int
    employee_id: int
    evaluator_id: int
    evaluation_line_id: int
    period_id: int
    wbs_item_id: Optional[int]
    reason: str
    action: str = "kept"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "evaluator_id": self.evaluator_id,
            "evaluation_line_id": self.evaluation_line_id,
            "period_id": self.period_id,
            "wbs_item_id": self.wbs_item_id,
            "reason": self.reason,
            "action": self.action,
        }


@dataclass
class ValidationResult:
    period_id: int
    total_checked: int = 0
    invalid_count: int = 0
    cleaned_count: int = 0
    invalid_mappings: List[InvalidMapping] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=_empty_summary)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "period_id": self.period_id,
            "total_checked": self.total_checked,
            "invalid_count": self.invalid_count,
            "cleaned_count": self.cleaned_count,
            "invalid_mappings": [m.as_dict() for m in self.invalid_mappings],
            "summary": dict(self.summary),
        }


class LineMappingValidator:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.lines = LineStore(db)

    async def _active_employee_ids(self, ids: Set[int]) -> Set[int]:
        if not ids:
            return set()
        result = await self.db.execute(
            select(Employee.id).where(Employee.id.in_(ids), Employee.deleted_at.is_(None))
        )
        return {row[0] for row in result.all()}

    async def _assignment_exists(self, period_id: int, employee_id: int, wbs_item_id: int) -> bool:
        result = await self.db.execute(
            select(func.count(WbsAssignment.id)).where(
                WbsAssignment.period_id == period_id,
                WbsAssignment.employee_id == employee_id,
                WbsAssignment.wbs_item_id == wbs_item_id,
                WbsAssignment.deleted_at.is_(None),
            )
        )
        return (result.scalar() or 0) > 0

    async def _discard(self, invalid: InvalidMapping, performed_by: str) -> None:
        if await self.lines.soft_delete_mapping(invalid.id, performed_by):
            invalid.action = "deleted"
            logger.info(
                "Removed invalid line mapping",
                extra={"mapping_id": invalid.id, "reason": invalid.reason},
            )

    async def validate_period(
        self,
        period_id: int,
        perform_cleanup: bool = False,
        performed_by: Optional[str] = None,
    ) -> ValidationResult:
        """Check every active mapping of a period; with cleanup, soft-delete invalid ones.

        Cleanup needs an actor; without performed_by the run only reports.
        """
        cleanup = bool(perform_cleanup and performed_by)
        mappings = await self.lines.list_period_mappings(period_id)
        result = ValidationResult(period_id=period_id, total_checked=len(mappings))
        logger.info(
            "Validating line mappings",
            extra={"period_id": period_id, "count": len(mappings), "perform_cleanup": cleanup},
        )

        active_employees = await self._active_employee_ids({m.evaluator_id for m in mappings})
        line_types: Dict[int, Optional[EvaluatorType]] = {}
        for line_id in {m.evaluation_line_id for m in mappings}:
            line = await self.lines.get_line_by_id(line_id)
            line_types[line_id] = line.evaluator_type if line is not None else None

        discarded: Set[int] = set()
        for mapping in mappings:
            issues = []
            if mapping.evaluator_id not in active_employees:
                issues.append(REASON_NO_EVALUATOR)
                result.summary["no_evaluator_in_employee"] += 1
            if line_types.get(mapping.evaluation_line_id) is None:
                issues.append(REASON_LINE_NOT_FOUND)
                result.summary["evaluation_line_not_found"] += 1
            if mapping.wbs_item_id is not None and not await self._assignment_exists(
                period_id, mapping.employee_id, mapping.wbs_item_id
            ):
                issues.append(REASON_ASSIGNMENT_DELETED)
                result.summary["wbs_assignment_deleted"] += 1
            if not issues:
                continue
            invalid = self._invalid(mapping, "; ".join(issues))
            if cleanup:
                await self._discard(invalid, performed_by)
                discarded.add(mapping.id)
            result.invalid_mappings.append(invalid)

        # oldest employee-level primary wins; mappings come back oldest first
        seen_primary: Set[int] = set()
        for mapping in mappings:
            if mapping.wbs_item_id is not None or mapping.id in discarded:
                continue
            if line_types.get(mapping.evaluation_line_id) != EvaluatorType.primary:
                continue
            if mapping.employee_id not in seen_primary:
                seen_primary.add(mapping.employee_id)
                continue
            invalid = self._invalid(mapping, REASON_DUPLICATE_PRIMARY)
            result.summary["duplicate_primary_evaluator"] += 1
            if cleanup:
                await self._discard(invalid, performed_by)
            result.invalid_mappings.append(invalid)

        if cleanup:
            await self.db.commit()

        result.invalid_count = len(result.invalid_mappings)
        result.cleaned_count = sum(1 for m in result.invalid_mappings if m.action == "deleted")
        logger.info(
            "Line mapping validation finished",
            extra={
                "period_id": period_id,
                "total_checked": result.total_checked,
                "invalid_count": result.invalid_count,
                "cleaned_count": result.cleaned_count,
            },
        )
        return result

    @staticmethod
    def _invalid(mapping: EvaluationLineMapping, reason: str) -> InvalidMapping:
        return InvalidMapping(
            id=mapping.id,
            employee_id=mapping.employee_id,
            evaluator_id=mapping.evaluator_id,
            evaluation_line_id=mapping.evaluation_line_id,
            period_id=mapping.period_id,
            wbs_item_id=mapping.wbs_item_id,
            reason=reason,
        )
