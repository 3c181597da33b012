"""
API Router for applications, plans and tasks

The caller's identity arrives already resolved in the X-Principal header.
Workflow errors are returned as HTTP errors whose detail is the error's
to_dict() body.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from .errors import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
    TrackerError,
    UnavailableError,
)
from .service import TrackerService, get_service

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logger = logging.getLogger("router")

# -----------------------------------------------------------------------------
# Router Setup
# -----------------------------------------------------------------------------
router = APIRouter(prefix="/api", tags=["Applications & Tasks"])

ERROR_STATUS: Dict[type, int] = {
    NotFoundError: 404,
    ConflictError: 409,
    ForbiddenError: 403,
    InvalidTransitionError: 409,
    InvalidArgumentError: 400,
    UnavailableError: 503,
}


def _http_error(error: TrackerError) -> HTTPException:
    status = ERROR_STATUS.get(type(error), 500)
    return HTTPException(status_code=status, detail=error.to_dict())


# -----------------------------------------------------------------------------
# Request/Response Models
# -----------------------------------------------------------------------------
class ApplicationCreateRequest(BaseModel):
    """Request model for application creation."""
    acronym: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    permits: Dict[str, Optional[str]] = Field(default_factory=dict)


class ApplicationUpdateRequest(BaseModel):
    """Request model for application update. Omitted fields are unchanged."""
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    permits: Optional[Dict[str, Optional[str]]] = None


class PlanCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    color: Optional[str] = None


class PlanUpdateRequest(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    color: Optional[str] = None


class TaskCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    plan: Optional[str] = None


class TaskTransitionRequest(BaseModel):
    state: str
    note: Optional[str] = None


class TaskEditRequest(BaseModel):
    description: Optional[str] = None
    plan: Optional[str] = None
    note: Optional[str] = None


class TaskSummaryResponse(BaseModel):
    success: bool = True
    id: str
    state: str
    owner: str
    message: str


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------
def get_principal(x_principal: Optional[str] = Header(None, alias="X-Principal")) -> str:
    """Authenticated principal, resolved upstream."""
    if not x_principal or not x_principal.strip():
        raise HTTPException(
            status_code=401,
            detail={"error": True, "code": "UNAUTHENTICATED", "message": "Authentication required"},
        )
    return x_principal.strip()


def require_admin(
    principal: str = Depends(get_principal),
    service: TrackerService = Depends(get_service),
) -> str:
    try:
        allowed = service.policy.is_admin(principal)
    except TrackerError as e:
        raise _http_error(e)
    if not allowed:
        logger.warning(f"Admin access denied for {principal}")
        raise HTTPException(
            status_code=403,
            detail={"error": True, "code": "FORBIDDEN", "message": "Admin access required"},
        )
    return principal


# -----------------------------------------------------------------------------
# Application Endpoints
# -----------------------------------------------------------------------------
@router.get("/applications")
def list_applications(
    principal: str = Depends(get_principal),
    service: TrackerService = Depends(get_service),
):
    try:
        apps = service.applications.list()
    except TrackerError as e:
        raise _http_error(e)
    return {
        "success": True,
        "applications": [a.to_dict() for a in apps],
        "count": len(apps),
    }


@router.get("/applications/{acronym}")
def get_application(
    acronym: str,
    principal: str = Depends(get_principal),
    service: TrackerService = Depends(get_service),
):
    try:
        application = service.applications.get(acronym)
    except TrackerError as e:
        raise _http_error(e)
    return {"success": True, "application": application.to_dict()}


@router.post("/applications", status_code=201)
def create_application(
    request: ApplicationCreateRequest,
    principal: str = Depends(require_admin),
    service: TrackerService = Depends(get_service),
):
    try:
        application = service.create_application(
            request.acronym,
            description=request.description,
            start_date=request.start_date,
            end_date=request.end_date,
            permits=request.permits,
        )
    except TrackerError as e:
        raise _http_error(e)

    logger.info(f"Application {application.acronym} created by {principal}")
    return {
        "success": True,
        "message": "Application created successfully",
        "application": application.to_dict(),
    }


@router.put("/applications/{acronym}")
def update_application(
    acronym: str,
    request: ApplicationUpdateRequest,
    principal: str = Depends(require_admin),
    service: TrackerService = Depends(get_service),
):
    changes = request.model_dump(exclude_unset=True)
    permits = changes.pop("permits", None)
    if not changes and permits is None:
        raise _http_error(InvalidArgumentError("No fields to update"))

    try:
        application = service.update_application(acronym, fields=changes, permits=permits)
    except TrackerError as e:
        raise _http_error(e)

    logger.info(f"Application {acronym} updated by {principal}")
    return {
        "success": True,
        "message": "Application updated successfully",
        "application": application.to_dict(),
    }


# -----------------------------------------------------------------------------
# Plan Endpoints
# -----------------------------------------------------------------------------
@router.get("/applications/{acronym}/plans")
def list_plans(
    acronym: str,
    principal: str = Depends(get_principal),
    service: TrackerService = Depends(get_service),
):
    try:
        plans = service.plans.list(acronym)
    except TrackerError as e:
        raise _http_error(e)
    return {"success": True, "plans": [p.to_dict() for p in plans], "count": len(plans)}


@router.post("/applications/{acronym}/plans", status_code=201)
def create_plan(
    acronym: str,
    request: PlanCreateRequest,
    principal: str = Depends(get_principal),
    service: TrackerService = Depends(get_service),
):
    try:
        plan = service.plans.create(
            acronym,
            request.name,
            start_date=request.start_date,
            end_date=request.end_date,
            color=request.color,
        )
    except TrackerError as e:
        raise _http_error(e)
    return {"success": True, "message": "Plan created successfully", "plan": plan.to_dict()}


@router.put("/applications/{acronym}/plans/{name}")
def update_plan(
    acronym: str,
    name: str,
    request: PlanUpdateRequest,
    principal: str = Depends(get_principal),
    service: TrackerService = Depends(get_service),
):
    changes = request.model_dump(exclude_unset=True)
    if not changes:
        raise _http_error(InvalidArgumentError("No fields to update"))
    try:
        plan = service.plans.update(acronym, name, changes)
    except TrackerError as e:
        raise _http_error(e)
    return {"success": True, "message": "Plan updated successfully", "plan": plan.to_dict()}


# -----------------------------------------------------------------------------
# Task Endpoints
# -----------------------------------------------------------------------------
@router.get("/applications/{acronym}/tasks")
def list_tasks(
    acronym: str,
    principal: str = Depends(get_principal),
    service: TrackerService = Depends(get_service),
):
    try:
        tasks = service.engine.list_tasks(acronym)
    except TrackerError as e:
        raise _http_error(e)
    return {"success": True, "tasks": [t.to_dict() for t in tasks], "count": len(tasks)}


@router.post("/applications/{acronym}/tasks", status_code=201, response_model=TaskSummaryResponse)
def create_task(
    acronym: str,
    request: TaskCreateRequest,
    principal: str = Depends(get_principal),
    service: TrackerService = Depends(get_service),
):
    try:
        summary = service.engine.create_task(
            principal,
            acronym,
            request.name,
            description=request.description,
            plan=request.plan,
        )
    except TrackerError as e:
        raise _http_error(e)
    return TaskSummaryResponse(
        id=summary.id,
        state=summary.state.value,
        owner=summary.owner,
        message="Task created successfully",
    )


@router.patch("/applications/{acronym}/tasks/{task_id}/state", response_model=TaskSummaryResponse)
def transition_task(
    acronym: str,
    task_id: str,
    request: TaskTransitionRequest,
    principal: str = Depends(get_principal),
    service: TrackerService = Depends(get_service),
):
    try:
        summary = service.engine.transition(
            principal,
            acronym,
            task_id,
            request.state,
            note=request.note,
        )
    except TrackerError as e:
        raise _http_error(e)
    return TaskSummaryResponse(
        id=summary.id,
        state=summary.state.value,
        owner=summary.owner,
        message=f"Task moved to {summary.state.value}",
    )


@router.patch("/applications/{acronym}/tasks/{task_id}")
def edit_task(
    acronym: str,
    task_id: str,
    request: TaskEditRequest,
    principal: str = Depends(get_principal),
    service: TrackerService = Depends(get_service),
):
    try:
        service.engine.edit_details(
            principal,
            acronym,
            task_id,
            description=request.description,
            plan=request.plan,
            note=request.note,
        )
    except TrackerError as e:
        raise _http_error(e)
    return {"success": True, "message": "Task updated successfully"}


@router.get("/applications/{acronym}/tasks/{task_id}/actions")
def task_actions(
    acronym: str,
    task_id: str,
    principal: str = Depends(get_principal),
    service: TrackerService = Depends(get_service),
):
    """Transitions the caller could perform right now."""
    try:
        task = service.engine.get_task(acronym, task_id)
        targets = service.engine.available_transitions(principal, acronym, task_id)
    except TrackerError as e:
        raise _http_error(e)
    return {
        "success": True,
        "task_id": task.id,
        "current_state": task.state.value,
        "available_transitions": [t.value for t in targets],
        "can_edit": True,
    }


@router.get("/applications/{acronym}/board")
def task_board(
    acronym: str,
    principal: str = Depends(get_principal),
    service: TrackerService = Depends(get_service),
):
    """Kanban view: tasks grouped by state."""
    try:
        columns = service.engine.board(acronym)
        can_create = service.engine.can_create(principal, acronym)
    except TrackerError as e:
        raise _http_error(e)

    board: List[Dict[str, Any]] = [
        {
            "state": state.value,
            "count": len(tasks),
            "tasks": [t.to_dict() for t in tasks],
        }
        for state, tasks in columns.items()
    ]
    return {"success": True, "acronym": acronym, "can_create_task": can_create, "columns": board}
