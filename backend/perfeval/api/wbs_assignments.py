"""WBS assignment API routes - assignment lifecycle, ordering, resets and queries."""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from perfeval.config import get_settings
from perfeval.models.base import get_db
from perfeval.models.wbs import WbsItemStatus
from perfeval.services.assignment_orchestrator import WbsAssignmentOrchestrator
from perfeval.services.types import (
    AssignmentFilter,
    AssignmentRequest,
    ConflictError,
    NotFoundError,
    OrderDirection,
)

router = APIRouter()


# ============================================================================
# Pydantic Schemas
# ============================================================================

class AssignmentCreate(BaseModel):
    employee_id: int
    wbs_item_id: int
    project_id: int
    period_id: int
    assigned_by: Optional[str] = None


class BulkAssignmentCreate(BaseModel):
    assignments: List[AssignmentCreate] = Field(min_length=1)
    assigned_by: Optional[str] = None


class AssignmentKey(BaseModel):
    employee_id: int
    wbs_item_id: int
    project_id: int
    period_id: int


class CancelByKey(AssignmentKey):
    cancelled_by: Optional[str] = None


class CreateAndAssign(BaseModel):
    title: str = Field(min_length=1)
    project_id: int
    employee_id: int
    period_id: int
    created_by: Optional[str] = None


class InsertBetween(CreateAndAssign):
    previous_wbs_item_id: Optional[int] = None
    next_wbs_item_id: Optional[int] = None


class OrderChange(BaseModel):
    direction: OrderDirection
    updated_by: Optional[str] = None


class ResetRequest(BaseModel):
    period_id: Optional[int] = None
    reset_by: Optional[str] = None


class WbsItemTitleUpdate(BaseModel):
    title: str = Field(min_length=1)
    updated_by: Optional[str] = None


class AssignmentResponse(BaseModel):
    id: int
    period_id: int
    employee_id: int
    project_id: int
    wbs_item_id: int
    assigned_date: datetime
    assigned_by: Optional[str]
    display_order: int
    weight: Optional[float] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AssignmentListResponse(BaseModel):
    assignments: List[AssignmentResponse]
    total: int
    page: int
    limit: int


class WbsItemResponse(BaseModel):
    id: int
    project_id: int
    wbs_code: str
    title: str
    status: WbsItemStatus
    level: Optional[int] = None
    assigned_to_id: Optional[int] = None
    progress_percentage: Optional[float] = None

    class Config:
        from_attributes = True


class CreatedAssignmentResponse(BaseModel):
    wbs_item: WbsItemResponse
    assignment: AssignmentResponse


class CascadeResponse(BaseModel):
    assignment_id: int
    found: bool
    steps: List[Dict[str, Any]]


class ResetResponse(BaseModel):
    deleted_count: int
    affected_wbs_item_ids: List[int]
    cleaned_wbs_item_ids: List[int]


# ============================================================================
# Helpers
# ============================================================================

def _actor(value: Optional[str]) -> str:
    return value or get_settings().system_actor


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=409, detail=str(exc))


def _require_period(period_id: Optional[int]) -> int:
    if period_id is None:
        raise HTTPException(status_code=400, detail="period_id is required")
    return period_id


# ============================================================================
# Commands
# ============================================================================

@router.post("", response_model=AssignmentResponse)
async def create_assignment(data: AssignmentCreate, db: AsyncSession = Depends(get_db)):
    """Assign a WBS item to an employee and wire up criteria and evaluators."""
    service = WbsAssignmentOrchestrator(db)
    try:
        return await service.assign_wbs(
            employee_id=data.employee_id,
            wbs_item_id=data.wbs_item_id,
            project_id=data.project_id,
            period_id=data.period_id,
            assigned_by=_actor(data.assigned_by),
        )
    except (NotFoundError, ConflictError) as exc:
        raise _http_error(exc)


@router.post("/bulk", response_model=List[AssignmentResponse])
async def bulk_create_assignments(data: BulkAssignmentCreate, db: AsyncSession = Depends(get_db)):
    service = WbsAssignmentOrchestrator(db)
    requests = [
        AssignmentRequest(
            employee_id=item.employee_id,
            wbs_item_id=item.wbs_item_id,
            project_id=item.project_id,
            period_id=item.period_id,
        )
        for item in data.assignments
    ]
    try:
        return await service.bulk_assign(requests, _actor(data.assigned_by))
    except (NotFoundError, ConflictError) as exc:
        raise _http_error(exc)


@router.post("/insert-between", response_model=CreatedAssignmentResponse)
async def insert_between(data: InsertBetween, db: AsyncSession = Depends(get_db)):
    """Create a WBS item and slot its assignment between two existing ones."""
    service = WbsAssignmentOrchestrator(db)
    try:
        created = await service.insert_between(
            title=data.title,
            project_id=data.project_id,
            employee_id=data.employee_id,
            period_id=data.period_id,
            created_by=_actor(data.created_by),
            previous_wbs_item_id=data.previous_wbs_item_id,
            next_wbs_item_id=data.next_wbs_item_id,
        )
    except (NotFoundError, ConflictError) as exc:
        raise _http_error(exc)
    return CreatedAssignmentResponse(
        wbs_item=WbsItemResponse.model_validate(created.wbs_item),
        assignment=AssignmentResponse.model_validate(created.assignment),
    )


@router.post("/create-and-assign", response_model=CreatedAssignmentResponse)
async def create_and_assign(data: CreateAndAssign, db: AsyncSession = Depends(get_db)):
    service = WbsAssignmentOrchestrator(db)
    try:
        created = await service.create_and_assign(
            title=data.title,
            project_id=data.project_id,
            employee_id=data.employee_id,
            period_id=data.period_id,
            created_by=_actor(data.created_by),
        )
    except (NotFoundError, ConflictError) as exc:
        raise _http_error(exc)
    return CreatedAssignmentResponse(
        wbs_item=WbsItemResponse.model_validate(created.wbs_item),
        assignment=AssignmentResponse.model_validate(created.assignment),
    )


@router.delete("/{assignment_id}", response_model=CascadeResponse)
async def cancel_assignment(
    assignment_id: int,
    cancelled_by: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """Cancel an assignment. Cancelling a missing assignment succeeds with found=false."""
    service = WbsAssignmentOrchestrator(db)
    report = await service.cancel_assignment(assignment_id, _actor(cancelled_by))
    return report.as_dict()


@router.post("/cancel-by-key", response_model=CascadeResponse)
async def cancel_assignment_by_key(data: CancelByKey, db: AsyncSession = Depends(get_db)):
    service = WbsAssignmentOrchestrator(db)
    report = await service.cancel_assignment_by_key(
        employee_id=data.employee_id,
        wbs_item_id=data.wbs_item_id,
        project_id=data.project_id,
        period_id=data.period_id,
        cancelled_by=_actor(data.cancelled_by),
    )
    return report.as_dict()


@router.patch("/{assignment_id}/order", response_model=AssignmentResponse)
async def change_assignment_order(
    assignment_id: int,
    data: OrderChange,
    db: AsyncSession = Depends(get_db)
):
    """Move an assignment one slot up or down inside its scope."""
    service = WbsAssignmentOrchestrator(db)
    try:
        return await service.change_order(assignment_id, data.direction, _actor(data.updated_by))
    except NotFoundError as exc:
        raise _http_error(exc)


@router.post("/reset/period/{period_id}", response_model=ResetResponse)
async def reset_period_assignments(
    period_id: int,
    data: Optional[ResetRequest] = None,
    db: AsyncSession = Depends(get_db)
):
    service = WbsAssignmentOrchestrator(db)
    report = await service.reset_by_period(period_id, _actor(data.reset_by if data else None))
    return ResetResponse(**report.__dict__)


@router.post("/reset/project/{project_id}", response_model=ResetResponse)
async def reset_project_assignments(
    project_id: int,
    data: ResetRequest,
    db: AsyncSession = Depends(get_db)
):
    service = WbsAssignmentOrchestrator(db)
    report = await service.reset_by_project(project_id, _require_period(data.period_id), _actor(data.reset_by))
    return ResetResponse(**report.__dict__)


@router.post("/reset/employee/{employee_id}", response_model=ResetResponse)
async def reset_employee_assignments(
    employee_id: int,
    data: ResetRequest,
    db: AsyncSession = Depends(get_db)
):
    service = WbsAssignmentOrchestrator(db)
    report = await service.reset_by_employee(employee_id, _require_period(data.period_id), _actor(data.reset_by))
    return ResetResponse(**report.__dict__)


@router.patch("/wbs-items/{wbs_item_id}/title", response_model=WbsItemResponse)
async def update_wbs_item_title(
    wbs_item_id: int,
    data: WbsItemTitleUpdate,
    db: AsyncSession = Depends(get_db)
):
    service = WbsAssignmentOrchestrator(db)
    try:
        return await service.update_wbs_item_title(wbs_item_id, data.title, _actor(data.updated_by))
    except NotFoundError as exc:
        raise _http_error(exc)


# ============================================================================
# Queries
# ============================================================================

@router.get("", response_model=AssignmentListResponse)
async def list_assignments(
    period_id: Optional[int] = None,
    employee_id: Optional[int] = None,
    project_id: Optional[int] = None,
    wbs_item_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    order_by: str = "display_order",
    order_direction: str = Query("asc", pattern="^(asc|desc|ASC|DESC)$"),
    db: AsyncSession = Depends(get_db)
):
    service = WbsAssignmentOrchestrator(db)
    result = await service.list_assignments(
        AssignmentFilter(
            period_id=period_id,
            employee_id=employee_id,
            project_id=project_id,
            wbs_item_id=wbs_item_id,
        ),
        page=page,
        limit=limit,
        order_by=order_by,
        order_direction=order_direction,
    )
    return AssignmentListResponse(
        assignments=[AssignmentResponse.model_validate(a) for a in result.assignments],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@router.get("/detail", response_model=AssignmentResponse)
async def get_assignment_detail(
    employee_id: int,
    wbs_item_id: int,
    project_id: int,
    period_id: int,
    db: AsyncSession = Depends(get_db)
):
    service = WbsAssignmentOrchestrator(db)
    assignment = await service.get_assignment_detail(employee_id, wbs_item_id, project_id, period_id)
    if not assignment:
        raise HTTPException(status_code=404, detail="WBS assignment not found")
    return assignment


@router.get("/employees/{employee_id}", response_model=List[AssignmentResponse])
async def get_employee_assignments(employee_id: int, period_id: int, db: AsyncSession = Depends(get_db)):
    service = WbsAssignmentOrchestrator(db)
    return await service.get_employee_assignments(employee_id, period_id)


@router.get("/projects/{project_id}", response_model=List[AssignmentResponse])
async def get_project_assignments(project_id: int, period_id: int, db: AsyncSession = Depends(get_db)):
    service = WbsAssignmentOrchestrator(db)
    return await service.get_project_assignments(project_id, period_id)


@router.get("/wbs-items/{wbs_item_id}", response_model=List[AssignmentResponse])
async def get_wbs_item_assignments(wbs_item_id: int, period_id: int, db: AsyncSession = Depends(get_db)):
    service = WbsAssignmentOrchestrator(db)
    return await service.get_wbs_item_assignments(wbs_item_id, period_id)


@router.get("/unassigned-wbs-items", response_model=List[WbsItemResponse])
async def get_unassigned_wbs_items(
    project_id: int,
    period_id: int,
    employee_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db)
):
    """WBS items of a project with no active assignment in the period."""
    service = WbsAssignmentOrchestrator(db)
    return await service.get_unassigned_wbs_items(project_id, period_id, employee_id)
