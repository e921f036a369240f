from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, NewType, Optional

from perfeval.models import WbsAssignment, WbsItem

# employees.id
InternalEmployeeId = NewType("InternalEmployeeId", int)
# Identifier issued by the HR source system (Employee.manager_id, Project.manager_id)
ExternalEmployeeId = NewType("ExternalEmployeeId", str)


class OrderDirection(str, Enum):
    up = "up"
    down = "down"


class WbsAssignmentError(RuntimeError):
    pass


class NotFoundError(WbsAssignmentError):
    def __init__(self, message: str, *, entity: str = "", key: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.entity = entity
        self.key = key or {}


class ConflictError(WbsAssignmentError):
    def __init__(self, message: str, *, key: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.key = key or {}


@dataclass
class AssignmentRequest:
    employee_id: int
    wbs_item_id: int
    project_id: int
    period_id: int


@dataclass
class AssignmentFilter:
    period_id: Optional[int] = None
    employee_id: Optional[int] = None
    project_id: Optional[int] = None
    wbs_item_id: Optional[int] = None


@dataclass
class AssignmentPage:
    assignments: List[WbsAssignment]
    total: int
    page: int
    limit: int


@dataclass
class CreatedWbsAssignment:
    wbs_item: WbsItem
    assignment: WbsAssignment


@dataclass
class ActivityEvent:
    period_id: int
    employee_id: Optional[int]
    activity_type: str
    activity_action: str
    activity_title: str
    performed_by: str
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StepResult:
    """Outcome of one cascade step that is allowed to fail."""
    step: str
    ok: bool
    value: Any = None
    error: Optional[str] = None


@dataclass
class CascadeReport:
    assignment_id: int
    found: bool = True
    steps: List[StepResult] = field(default_factory=list)

    @property
    def failures(self) -> List[StepResult]:
        return [step for step in self.steps if not step.ok]

    def step(self, name: str) -> Optional[StepResult]:
        for result in self.steps:
            if result.step == name:
                return result
        return None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "assignment_id": self.assignment_id,
            "found": self.found,
            "steps": [
                {"step": s.step, "ok": s.ok, "value": s.value, "error": s.error}
                for s in self.steps
            ],
        }


@dataclass
class ResetReport:
    deleted_count: int = 0
    affected_wbs_item_ids: List[int] = field(default_factory=list)
    cleaned_wbs_item_ids: List[int] = field(default_factory=list)


@dataclass
class EvaluatorConfiguration:
    employee_id: int
    wbs_item_id: int
    primary_evaluator_id: Optional[InternalEmployeeId] = None
    primary_created: bool = False
    secondary_evaluator_id: Optional[InternalEmployeeId] = None
    secondary_created: bool = False
    skipped: List[str] = field(default_factory=list)
