"""Organization models - employees, projects and evaluation periods.

Employee.manager_id and Project.manager_id hold identifiers issued by the HR
source system (external ids), not employees.id.
"""
from sqlalchemy import Column, Integer, String, DateTime, Date, ForeignKey, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from perfeval.models.base import Base


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(100), nullable=False, unique=True, index=True)
    employee_number = Column(String(50), nullable=True)
    name = Column(String(255), nullable=False)
    department_id = Column(String(100), nullable=True)

    # External id of the direct manager (HR source system)
    manager_id = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    project_code = Column(String(100), nullable=True)

    # PM as known by the HR source system
    manager_id = Column(String(100), nullable=True)
    # PM already resolved to an internal employee (optional)
    manager_employee_id = Column(Integer, ForeignKey("employees.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)

    # Relationships
    manager = relationship("Employee", foreign_keys=[manager_employee_id], lazy="joined")
    wbs_items = relationship("WbsItem", back_populates="project")


class PeriodStatus(enum.Enum):
    waiting = "waiting"
    in_progress = "in_progress"
    completed = "completed"


class EvaluationPeriod(Base):
    """One evaluation cycle."""
    __tablename__ = "evaluation_periods"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    status = Column(Enum(PeriodStatus), default=PeriodStatus.waiting, nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
