"""Evaluation line models - evaluator-role templates and concrete evaluator bindings."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, Boolean, Index, text
from datetime import datetime
import enum

from perfeval.models.base import Base


class EvaluatorType(enum.Enum):
    primary = "primary"
    secondary = "secondary"


class EvaluationLine(Base):
    """Reusable evaluator-role template (PRIMARY order 1, SECONDARY order 2)."""
    __tablename__ = "evaluation_lines"

    id = Column(Integer, primary_key=True, index=True)
    evaluator_type = Column(Enum(EvaluatorType), nullable=False)
    order = Column(Integer, nullable=False, default=1)
    is_required = Column(Boolean, default=True)
    is_auto_assigned = Column(Boolean, default=False)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)


class EvaluationLineMapping(Base):
    """Binds (period, employee[, wbs item]) to one evaluator through one line.

    wbs_item_id NULL is the employee-level fixed evaluator (PRIMARY);
    a non-null wbs_item_id is a per-WBS evaluator (SECONDARY).
    evaluator_id is always an internal employees.id.
    """
    __tablename__ = "evaluation_line_mappings"
    __table_args__ = (
        Index(
            "uq_evaluation_line_mappings_primary_per_period_employee_line",
            "period_id",
            "employee_id",
            "evaluation_line_id",
            unique=True,
            postgresql_where=text("wbs_item_id IS NULL AND deleted_at IS NULL"),
            sqlite_where=text("wbs_item_id IS NULL AND deleted_at IS NULL"),
        ),
        Index("ix_evaluation_line_mappings_scope", "period_id", "employee_id", "wbs_item_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    period_id = Column(Integer, ForeignKey("evaluation_periods.id"), nullable=False)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False)
    evaluator_id = Column(Integer, ForeignKey("employees.id"), nullable=False)
    wbs_item_id = Column(Integer, ForeignKey("wbs_items.id"), nullable=True)
    evaluation_line_id = Column(Integer, ForeignKey("evaluation_lines.id"), nullable=False)

    created_by = Column(String(100), nullable=True)
    updated_by = Column(String(100), nullable=True)
    deleted_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)
