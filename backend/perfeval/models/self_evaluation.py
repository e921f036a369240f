"""Self-evaluation model - an employee's own write-up for one WBS item."""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Boolean, Float
from datetime import datetime

from perfeval.models.base import Base


class WbsSelfEvaluation(Base):
    __tablename__ = "wbs_self_evaluations"

    id = Column(Integer, primary_key=True, index=True)
    period_id = Column(Integer, ForeignKey("evaluation_periods.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    wbs_item_id = Column(Integer, ForeignKey("wbs_items.id"), nullable=False)

    performance_result = Column(Text, nullable=True)
    self_evaluation_content = Column(Text, nullable=True)
    self_evaluation_score = Column(Float, nullable=True)
    submitted_to_evaluator = Column(Boolean, default=False)

    created_by = Column(String(100), nullable=True)
    deleted_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)
