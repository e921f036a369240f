"""WBS assignment lifecycle.

Every write path runs its cascade as a sequence of steps that commit on their
own. Steps that may fail without failing the caller run inside a SAVEPOINT and
come back as a StepResult.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from perfeval.config import get_settings
from perfeval.models import WbsAssignment, WbsItem
from perfeval.services.evaluator_config import EvaluatorAutoConfigurator
from perfeval.services.identity import IdentityResolver
from perfeval.services.ordering import OrderingEngine
from perfeval.services.stores import (
    ActivityLogService,
    AssignmentStore,
    CriteriaStore,
    DirectoryStore,
    LineStore,
    SelfEvaluationStore,
    WbsItemStore,
)
from perfeval.services.types import (
    ActivityEvent,
    AssignmentFilter,
    AssignmentPage,
    AssignmentRequest,
    CascadeReport,
    ConflictError,
    CreatedWbsAssignment,
    NotFoundError,
    OrderDirection,
    ResetReport,
    StepResult,
)

logger = logging.getLogger(__name__)

ACTIVITY_TYPE = "wbs_assignment"


class WbsAssignmentOrchestrator:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._settings = get_settings()
        self.resolver = IdentityResolver(db)
        self.assignments = AssignmentStore(db)
        self.criteria = CriteriaStore(db)
        self.lines = LineStore(db)
        self.self_evaluations = SelfEvaluationStore(db)
        self.wbs_items = WbsItemStore(db)
        self.directory = DirectoryStore(db)
        self.activity_log = ActivityLogService(db)
        self.configurator = EvaluatorAutoConfigurator(db, self.resolver)
        self.ordering = OrderingEngine(db)

    # ------------------------------------------------------------------
    # step plumbing

    async def _step(
        self,
        name: str,
        operation: Callable[[], Awaitable[Any]],
        context: Dict[str, Any],
        *,
        fatal: bool = False,
        level: int = logging.ERROR,
    ) -> StepResult:
        try:
            async with self.db.begin_nested():
                value = await operation()
            await self.db.commit()
        except Exception as exc:
            if not self.db.is_active:
                await self.db.rollback()
            if fatal:
                raise
            logger.log(level, "Step %s failed", name, exc_info=True, extra={**context, "step": name})
            return StepResult(step=name, ok=False, error=str(exc))
        return StepResult(step=name, ok=True, value=value)

    async def _record_activity(self, event: ActivityEvent, context: Dict[str, Any]) -> StepResult:
        return await self._step(
            "activity_log",
            lambda: self._write_activity(event),
            context,
            level=logging.WARNING,
        )

    async def _write_activity(self, event: ActivityEvent) -> int:
        entry = await self.activity_log.record(event)
        return entry.id

    async def _ensure_placeholder_criteria(self, wbs_item_id: int, created_by: str) -> bool:
        existing = await self.criteria.list_for_wbs_item(wbs_item_id)
        if existing:
            return False
        logger.info("WBS item has no criteria, creating placeholder", extra={"wbs_item_id": wbs_item_id})
        await self.criteria.create(
            wbs_item_id=wbs_item_id,
            criteria="",
            importance=self._settings.criteria_placeholder_importance,
            created_by=created_by,
        )
        return True

    async def _cleanup_orphan_criteria(
        self,
        wbs_item_id: int,
        performed_by: str,
        exclude_assignment_id: Optional[int] = None,
    ) -> int:
        remaining = await self.assignments.count_active_for_wbs_item(wbs_item_id, exclude_id=exclude_assignment_id)
        if remaining:
            return 0
        deleted = await self.criteria.delete_all_for_wbs_item(wbs_item_id)
        logger.info(
            "Deleted criteria of unassigned WBS item",
            extra={"wbs_item_id": wbs_item_id, "count": deleted, "performed_by": performed_by},
        )
        return deleted

    async def _configure_evaluation(self, assignment_key: Dict[str, int], created_by: str) -> Dict[str, Any]:
        config = await self.configurator.configure_for_assignment(
            assignment_key["employee_id"],
            assignment_key["wbs_item_id"],
            assignment_key["project_id"],
            assignment_key["period_id"],
            created_by,
        )
        line_result = await self.configurator.ensure_wbs_evaluation_line(
            assignment_key["employee_id"],
            assignment_key["wbs_item_id"],
            assignment_key["period_id"],
            created_by,
        )
        return {"evaluators": config, "lines": line_result}

    @staticmethod
    def _key_of(assignment: WbsAssignment) -> Dict[str, int]:
        return {
            "assignment_id": assignment.id,
            "employee_id": assignment.employee_id,
            "wbs_item_id": assignment.wbs_item_id,
            "project_id": assignment.project_id,
            "period_id": assignment.period_id,
        }

    async def _compact_scope(self, key: Dict[str, int], performed_by: str) -> StepResult:
        return await self._step(
            "order_compaction",
            lambda: self.ordering.resequence(
                key["employee_id"], key["project_id"], key["period_id"], performed_by
            ),
            key,
            level=logging.WARNING,
        )

    @staticmethod
    def _activity(key: Dict[str, int], action: str, title: str, performed_by: str, **metadata) -> ActivityEvent:
        return ActivityEvent(
            period_id=key["period_id"],
            employee_id=key["employee_id"],
            activity_type=ACTIVITY_TYPE,
            activity_action=action,
            activity_title=title,
            performed_by=performed_by,
            related_entity_type=ACTIVITY_TYPE,
            related_entity_id=key["assignment_id"],
            metadata={"wbs_item_id": key["wbs_item_id"], "project_id": key["project_id"], **metadata},
        )

    # ------------------------------------------------------------------
    # creation

    async def _persist_assignment(
        self,
        request: AssignmentRequest,
        assigned_by: str,
        display_order: Optional[int] = None,
    ) -> WbsAssignment:
        if await self.wbs_items.get(request.wbs_item_id) is None:
            raise NotFoundError(
                "WBS item not found",
                entity="wbs_item",
                key={"wbs_item_id": request.wbs_item_id},
            )
        try:
            assignment = await self.assignments.create(request, assigned_by, display_order=display_order)
        except ConflictError:
            if not self.db.is_active:
                await self.db.rollback()
            raise
        await self.db.commit()
        return assignment

    async def _run_creation_cascade(self, assignment: WbsAssignment, assigned_by: str) -> None:
        key = self._key_of(assignment)
        await self._ensure_placeholder_criteria(assignment.wbs_item_id, assigned_by)
        await self.db.commit()
        result = await self._configure_evaluation(key, assigned_by)
        await self.db.commit()
        logger.info(
            "Per-WBS evaluation line configured",
            extra={**key, **result["lines"]},
        )
        await self._record_activity(self._activity(key, "created", "WBS assigned", assigned_by), key)

    async def assign_wbs(
        self,
        employee_id: int,
        wbs_item_id: int,
        project_id: int,
        period_id: int,
        assigned_by: str,
    ) -> WbsAssignment:
        request = AssignmentRequest(
            employee_id=employee_id,
            wbs_item_id=wbs_item_id,
            project_id=project_id,
            period_id=period_id,
        )
        logger.info("Assigning WBS item", extra={**request.__dict__, "assigned_by": assigned_by})
        assignment = await self._persist_assignment(request, assigned_by)
        await self._compact_scope(self._key_of(assignment), assigned_by)
        await self._run_creation_cascade(assignment, assigned_by)
        logger.info("WBS assignment created", extra=self._key_of(assignment))
        return assignment

    async def create_and_assign(
        self,
        title: str,
        project_id: int,
        employee_id: int,
        period_id: int,
        created_by: str,
    ) -> CreatedWbsAssignment:
        wbs_item = await self._create_wbs_item(title, project_id, employee_id, created_by)
        assignment = await self.assign_wbs(employee_id, wbs_item.id, project_id, period_id, created_by)
        return CreatedWbsAssignment(wbs_item=wbs_item, assignment=assignment)

    async def _create_wbs_item(self, title: str, project_id: int, employee_id: int, created_by: str) -> WbsItem:
        if await self.directory.get_project(project_id) is None:
            raise NotFoundError("Project not found", entity="project", key={"project_id": project_id})
        wbs_item = await self.wbs_items.create_with_generated_code(
            project_id=project_id,
            title=title,
            created_by=created_by,
            assigned_to_id=employee_id,
        )
        await self.db.commit()
        logger.info("WBS item created", extra={"wbs_item_id": wbs_item.id, "wbs_code": wbs_item.wbs_code})
        return wbs_item

    async def insert_between(
        self,
        title: str,
        project_id: int,
        employee_id: int,
        period_id: int,
        created_by: str,
        previous_wbs_item_id: Optional[int] = None,
        next_wbs_item_id: Optional[int] = None,
    ) -> CreatedWbsAssignment:
        logger.info(
            "Inserting WBS item between neighbours",
            extra={
                "employee_id": employee_id,
                "project_id": project_id,
                "period_id": period_id,
                "previous_wbs_item_id": previous_wbs_item_id,
                "next_wbs_item_id": next_wbs_item_id,
            },
        )
        wbs_item = await self._create_wbs_item(title, project_id, employee_id, created_by)
        target_index = await self.ordering.target_index_for(
            employee_id, project_id, period_id, previous_wbs_item_id, next_wbs_item_id
        )
        request = AssignmentRequest(
            employee_id=employee_id,
            wbs_item_id=wbs_item.id,
            project_id=project_id,
            period_id=period_id,
        )
        assignment = await self._persist_assignment(
            request, created_by, display_order=self._settings.display_order_sentinel
        )
        await self.ordering.resequence(
            employee_id,
            project_id,
            period_id,
            created_by,
            new_wbs_item_id=wbs_item.id,
            target_index=target_index,
        )
        await self.db.commit()

        await self._run_creation_cascade(assignment, created_by)
        logger.info(
            "WBS item inserted",
            extra={**self._key_of(assignment), "display_order": assignment.display_order},
        )
        return CreatedWbsAssignment(wbs_item=wbs_item, assignment=assignment)

    async def bulk_assign(self, requests: List[AssignmentRequest], assigned_by: str) -> List[WbsAssignment]:
        requests = list(requests)
        if not requests:
            return []
        logger.info("Bulk assigning WBS items", extra={"count": len(requests), "assigned_by": assigned_by})
        for wbs_item_id in {request.wbs_item_id for request in requests}:
            if await self.wbs_items.get(wbs_item_id) is None:
                raise NotFoundError("WBS item not found", entity="wbs_item", key={"wbs_item_id": wbs_item_id})

        try:
            assignments = await self.assignments.create_many(requests, assigned_by)
        except ConflictError:
            if not self.db.is_active:
                await self.db.rollback()
            raise
        await self.db.commit()

        scopes = dict.fromkeys((a.employee_id, a.project_id, a.period_id) for a in assignments)
        for employee_id, project_id, period_id in scopes:
            await self._compact_scope(
                {"employee_id": employee_id, "project_id": project_id, "period_id": period_id},
                assigned_by,
            )

        for wbs_item_id in dict.fromkeys(request.wbs_item_id for request in requests):
            await self._ensure_placeholder_criteria(wbs_item_id, assigned_by)
        await self.db.commit()

        failed = 0
        for assignment in assignments:
            key = self._key_of(assignment)
            result = await self._step(
                "evaluation_line",
                lambda key=key: self._configure_evaluation(key, assigned_by),
                key,
            )
            failed += int(not result.ok)
            await self._record_activity(self._activity(key, "created", "WBS assigned", assigned_by), key)

        logger.info(
            "Bulk assignment finished",
            extra={"count": len(assignments), "failed_count": failed},
        )
        return assignments

    # ------------------------------------------------------------------
    # cancellation

    async def cancel_assignment(self, assignment_id: int, cancelled_by: str) -> CascadeReport:
        report = CascadeReport(assignment_id=assignment_id)
        assignment = await self.assignments.get(assignment_id)
        if assignment is None:
            logger.info("Assignment already gone, nothing to cancel", extra={"assignment_id": assignment_id})
            report.found = False
            return report

        # plain ids; the steps below commit and may roll back
        key = self._key_of(assignment)
        logger.info("Cancelling WBS assignment", extra=key)

        report.steps.append(
            await self._step(
                "self_evaluations",
                lambda: self.self_evaluations.delete_for_assignment(
                    key["employee_id"], key["period_id"], key["wbs_item_id"], cancelled_by
                ),
                key,
            )
        )
        report.steps.append(
            await self._step(
                "criteria",
                lambda: self._cleanup_orphan_criteria(key["wbs_item_id"], cancelled_by, key["assignment_id"]),
                key,
                fatal=True,
            )
        )
        report.steps.append(
            await self._step(
                "line_mappings",
                lambda: self.lines.soft_delete_wbs_mappings(
                    key["employee_id"], key["wbs_item_id"], key["period_id"], cancelled_by
                ),
                key,
                fatal=True,
            )
        )
        report.steps.append(
            await self._step(
                "assignment",
                lambda: self.assignments.soft_delete(key["assignment_id"], cancelled_by),
                key,
                fatal=True,
            )
        )
        report.steps.append(await self._compact_scope(key, cancelled_by))
        report.steps.append(
            await self._record_activity(self._activity(key, "cancelled", "WBS assignment cancelled", cancelled_by), key)
        )

        logger.info(
            "WBS assignment cancelled",
            extra={**key, "failed_steps": [s.step for s in report.failures]},
        )
        return report

    async def cancel_assignment_by_key(
        self,
        employee_id: int,
        wbs_item_id: int,
        project_id: int,
        period_id: int,
        cancelled_by: str,
    ) -> CascadeReport:
        assignment = await self.assignments.find_by_key(employee_id, wbs_item_id, project_id, period_id)
        if assignment is None:
            logger.info(
                "No active assignment for key, nothing to cancel",
                extra={
                    "employee_id": employee_id,
                    "wbs_item_id": wbs_item_id,
                    "project_id": project_id,
                    "period_id": period_id,
                },
            )
            return CascadeReport(assignment_id=0, found=False)
        return await self.cancel_assignment(assignment.id, cancelled_by)

    # ------------------------------------------------------------------
    # ordering

    async def change_order(self, assignment_id: int, direction: OrderDirection, updated_by: str) -> WbsAssignment:
        assignment = await self.assignments.get(assignment_id)
        if assignment is None:
            raise NotFoundError(
                "WBS assignment not found",
                entity="wbs_assignment",
                key={"assignment_id": assignment_id},
            )
        await self.ordering.move(assignment, OrderDirection(direction), updated_by)
        await self.db.commit()
        logger.info(
            "WBS assignment moved",
            extra={**self._key_of(assignment), "direction": OrderDirection(direction).value},
        )
        return assignment

    async def change_order_by_key(
        self,
        employee_id: int,
        wbs_item_id: int,
        project_id: int,
        period_id: int,
        direction: OrderDirection,
        updated_by: str,
    ) -> WbsAssignment:
        assignment = await self.assignments.find_by_key(employee_id, wbs_item_id, project_id, period_id)
        if assignment is None:
            raise NotFoundError(
                "WBS assignment not found",
                entity="wbs_assignment",
                key={
                    "employee_id": employee_id,
                    "wbs_item_id": wbs_item_id,
                    "project_id": project_id,
                    "period_id": period_id,
                },
            )
        return await self.change_order(assignment.id, direction, updated_by)

    # ------------------------------------------------------------------
    # resets

    async def _reset(self, flt: AssignmentFilter, performed_by: str) -> ResetReport:
        context = {k: v for k, v in flt.__dict__.items() if v is not None}
        affected = await self.assignments.wbs_item_ids_where(flt)
        if not affected:
            logger.info("No assignments to reset", extra=context)
            return ResetReport()

        deleted_count = await self.assignments.soft_delete_where(flt, performed_by)
        await self.db.commit()

        cleaned: List[int] = []
        for wbs_item_id in affected:
            if await self._cleanup_orphan_criteria(wbs_item_id, performed_by):
                cleaned.append(wbs_item_id)
        await self.db.commit()

        logger.info(
            "WBS assignments reset",
            extra={**context, "count": deleted_count, "cleaned_count": len(cleaned)},
        )
        return ResetReport(
            deleted_count=deleted_count,
            affected_wbs_item_ids=affected,
            cleaned_wbs_item_ids=cleaned,
        )

    async def reset_by_period(self, period_id: int, reset_by: str) -> ResetReport:
        return await self._reset(AssignmentFilter(period_id=period_id), reset_by)

    async def reset_by_project(self, project_id: int, period_id: int, reset_by: str) -> ResetReport:
        return await self._reset(AssignmentFilter(period_id=period_id, project_id=project_id), reset_by)

    async def reset_by_employee(self, employee_id: int, period_id: int, reset_by: str) -> ResetReport:
        return await self._reset(AssignmentFilter(period_id=period_id, employee_id=employee_id), reset_by)

    # ------------------------------------------------------------------
    # queries

    async def list_assignments(
        self,
        flt: AssignmentFilter,
        page: int = 1,
        limit: Optional[int] = None,
        order_by: str = "display_order",
        order_direction: str = "asc",
    ) -> AssignmentPage:
        return await self.assignments.list(flt, page, limit, order_by, order_direction)

    async def get_assignment_detail(
        self,
        employee_id: int,
        wbs_item_id: int,
        project_id: int,
        period_id: int,
    ) -> Optional[WbsAssignment]:
        return await self.assignments.find_by_key(employee_id, wbs_item_id, project_id, period_id)

    async def _all(self, flt: AssignmentFilter) -> List[WbsAssignment]:
        page = await self.assignments.list(flt, page=1, limit=self._settings.assignment_scope_fetch_limit)
        return page.assignments

    async def get_employee_assignments(self, employee_id: int, period_id: int) -> List[WbsAssignment]:
        return await self._all(AssignmentFilter(employee_id=employee_id, period_id=period_id))

    async def get_project_assignments(self, project_id: int, period_id: int) -> List[WbsAssignment]:
        return await self._all(AssignmentFilter(project_id=project_id, period_id=period_id))

    async def get_wbs_item_assignments(self, wbs_item_id: int, period_id: int) -> List[WbsAssignment]:
        return await self.assignments.list_for_wbs_item(wbs_item_id, period_id)

    async def get_unassigned_wbs_items(
        self,
        project_id: int,
        period_id: int,
        employee_id: Optional[int] = None,
    ) -> List[WbsItem]:
        assigned = set(await self.assignments.assigned_wbs_item_ids(project_id, period_id, employee_id))
        items = await self.wbs_items.list_for_project(project_id)
        return [item for item in items if item.id not in assigned]

    async def update_wbs_item_title(self, wbs_item_id: int, title: str, updated_by: str) -> WbsItem:
        item = await self.wbs_items.get(wbs_item_id)
        if item is None:
            raise NotFoundError("WBS item not found", entity="wbs_item", key={"wbs_item_id": wbs_item_id})
        await self.wbs_items.update_title(item, title, updated_by)
        await self.db.commit()
        logger.info("WBS item renamed", extra={"wbs_item_id": wbs_item_id, "title": title})
        return item
