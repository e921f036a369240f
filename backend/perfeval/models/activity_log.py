"""Activity log model - append-only history of evaluation activities."""
from sqlalchemy import Column, Integer, String, DateTime, JSON
from datetime import datetime

from perfeval.models.base import Base


class EvaluationActivityLog(Base):
    __tablename__ = "evaluation_activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    period_id = Column(Integer, nullable=False, index=True)
    employee_id = Column(Integer, nullable=True, index=True)

    activity_type = Column(String(50), nullable=False)  # wbs_assignment, ...
    activity_action = Column(String(50), nullable=False)  # created, cancelled, reset, ...
    activity_title = Column(String(255), nullable=True)

    related_entity_type = Column(String(50), nullable=True)
    related_entity_id = Column(Integer, nullable=True)

    performed_by = Column(String(100), nullable=True)
    activity_metadata = Column(JSON, default=dict)
    activity_date = Column(DateTime, default=datetime.utcnow)
