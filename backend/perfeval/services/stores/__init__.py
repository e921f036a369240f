"""Thin async repositories used by the assignment services."""
from perfeval.services.stores.activity_log import ActivityLogService
from perfeval.services.stores.assignments import AssignmentStore
from perfeval.services.stores.criteria import CriteriaStore
from perfeval.services.stores.directory import DirectoryStore
from perfeval.services.stores.lines import LineStore, STANDARD_LINES
from perfeval.services.stores.self_evaluations import SelfEvaluationStore
from perfeval.services.stores.wbs_items import WbsItemStore, format_wbs_code

__all__ = [
    "ActivityLogService",
    "AssignmentStore",
    "CriteriaStore",
    "DirectoryStore",
    "LineStore",
    "STANDARD_LINES",
    "SelfEvaluationStore",
    "WbsItemStore",
    "format_wbs_code",
]
