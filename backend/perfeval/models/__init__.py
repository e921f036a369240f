from perfeval.models.base import Base
from perfeval.models.organization import Employee, Project, EvaluationPeriod, PeriodStatus
from perfeval.models.wbs import WbsItem, WbsItemStatus, WbsAssignment, WbsEvaluationCriteria
from perfeval.models.evaluation_line import EvaluationLine, EvaluationLineMapping, EvaluatorType
from perfeval.models.self_evaluation import WbsSelfEvaluation
from perfeval.models.activity_log import EvaluationActivityLog

__all__ = [
    "Base",
    # Organization
    "Employee", "Project", "EvaluationPeriod", "PeriodStatus",
    # WBS
    "WbsItem", "WbsItemStatus", "WbsAssignment", "WbsEvaluationCriteria",
    # Evaluation lines
    "EvaluationLine", "EvaluationLineMapping", "EvaluatorType",
    "WbsSelfEvaluation",
    "EvaluationActivityLog",
]
