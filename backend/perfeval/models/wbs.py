"""WBS models - work items, per-period assignments and shared evaluation criteria."""
from sqlalchemy import Column, Integer, String, DateTime, Date, Text, ForeignKey, Enum, Boolean, Float, Index, UniqueConstraint, text
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from perfeval.models.base import Base


class WbsItemStatus(enum.Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class WbsItem(Base):
    """A unit of work in a project's work-breakdown structure."""
    __tablename__ = "wbs_items"
    __table_args__ = (
        UniqueConstraint("project_id", "wbs_code", name="uq_wbs_items_project_code"),
    )

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)

    wbs_code = Column(String(50), nullable=False)  # WBS-001, WBS-002, ...
    title = Column(Text, nullable=False)
    status = Column(Enum(WbsItemStatus), default=WbsItemStatus.pending, nullable=False)
    level = Column(Integer, default=1)

    assigned_to_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    parent_wbs_id = Column(Integer, ForeignKey("wbs_items.id"), nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    progress_percentage = Column(Float, default=0.0)

    created_by = Column(String(100), nullable=True)
    updated_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)

    # Relationships
    project = relationship("Project", back_populates="wbs_items")


class WbsAssignment(Base):
    """One employee's responsibility for one WBS item in one project and period.

    display_order is dense and zero-based inside (employee_id, project_id, period_id).
    """
    __tablename__ = "evaluation_wbs_assignments"
    __table_args__ = (
        # one active assignment per (employee, wbs item, period)
        Index(
            "uq_wbs_assignments_active_employee_item_period",
            "employee_id",
            "wbs_item_id",
            "period_id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("ix_wbs_assignments_scope", "employee_id", "project_id", "period_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    period_id = Column(Integer, ForeignKey("evaluation_periods.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False)
    wbs_item_id = Column(Integer, ForeignKey("wbs_items.id"), nullable=False, index=True)

    assigned_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    assigned_by = Column(String(100), nullable=True)
    display_order = Column(Integer, default=0, nullable=False)

    # Computed by the weight calculation job; read-only here
    weight = Column(Float, default=0.0)

    created_by = Column(String(100), nullable=True)
    updated_by = Column(String(100), nullable=True)
    deleted_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)


class WbsEvaluationCriteria(Base):
    """Criteria/importance pair shared by everyone assigned to the WBS item."""
    __tablename__ = "wbs_evaluation_criteria"

    id = Column(Integer, primary_key=True, index=True)
    wbs_item_id = Column(Integer, ForeignKey("wbs_items.id"), nullable=False, index=True)

    criteria = Column(Text, nullable=False, default="")
    importance = Column(Integer, nullable=False, default=5)
    is_additional = Column(Boolean, default=False)

    created_by = Column(String(100), nullable=True)
    updated_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
