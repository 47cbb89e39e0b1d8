"""Task routes: the per-job checklist a worker must finish before completion."""

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel, Field

from ..auth import CurrentUser
from ..database import Controller
from ..logging_config import get_logger
from ..models import TaskResponse
from ..rate_limit import limiter
from .jobs import TaskCreateItem, to_task_responses

logger = get_logger("tasks")
router = APIRouter(prefix="/tasks", tags=["tasks"])


class TaskCreate(TaskCreateItem):
    """Request to append one task to a job."""

    job_id: str = Field(..., min_length=1)


class TaskUpdate(BaseModel):
    """Partial task edit; position and completion have their own endpoints."""

    description: str | None = Field(None, min_length=1)
    is_optional: bool | None = None
    due_time: datetime | None = None
    location: str | None = None
    bonus_amount: Decimal | None = Field(None, ge=0)
    estimated_duration: int | None = Field(None, gt=0)
    notes: str | None = None


class TaskReorderRequest(BaseModel):
    task_ids: list[str]


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_task(
    request: Request,
    task: TaskCreate,
    auth: CurrentUser,
    controller: Controller,
):
    """Append a task to the end of a job's checklist (poster only)."""
    logger.info(f"POST /tasks | poster={auth.user_id} | job={task.job_id}")
    created = controller.add_task(task.job_id, auth.user_id, task.model_dump(exclude={"job_id"}))
    return TaskResponse.model_validate(created.to_dict())


@router.get("/job/{job_id}", response_model=list[TaskResponse])
@limiter.limit("60/minute")
def list_job_tasks(
    request: Request,
    job_id: str,
    auth: CurrentUser,
    controller: Controller,
):
    """Tasks of a job in checklist order."""
    controller.get_job(job_id)
    return to_task_responses(controller.list_tasks(job_id))


@router.patch("/{task_id}", response_model=TaskResponse)
@limiter.limit("30/minute")
def update_task(
    request: Request,
    task_id: str,
    update: TaskUpdate,
    auth: CurrentUser,
    controller: Controller,
):
    """Edit a task (poster only)."""
    changes = update.model_dump(exclude_unset=True)
    logger.info(f"PATCH /tasks/{task_id} | poster={auth.user_id} | fields={sorted(changes)}")
    return TaskResponse.model_validate(controller.update_task(task_id, auth.user_id, changes).to_dict())


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
def delete_task(
    request: Request,
    task_id: str,
    auth: CurrentUser,
    controller: Controller,
):
    """Delete a task; the remaining tasks close the gap (poster only)."""
    logger.info(f"DELETE /tasks/{task_id} | poster={auth.user_id}")
    controller.delete_task(task_id, auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{task_id}/complete", response_model=TaskResponse)
@limiter.limit("60/minute")
def complete_task(
    request: Request,
    task_id: str,
    auth: CurrentUser,
    controller: Controller,
):
    """Mark a task done (assigned worker only)."""
    logger.info(f"POST /tasks/{task_id}/complete | worker={auth.user_id}")
    return TaskResponse.model_validate(controller.complete_task(task_id, auth.user_id).to_dict())


@router.post("/job/{job_id}/reorder", response_model=list[TaskResponse])
@limiter.limit("30/minute")
def reorder_tasks(
    request: Request,
    job_id: str,
    reorder: TaskReorderRequest,
    auth: CurrentUser,
    controller: Controller,
):
    """Rewrite positions to match the given order (poster only)."""
    logger.info(f"POST /tasks/job/{job_id}/reorder | poster={auth.user_id}")
    return to_task_responses(controller.reorder_tasks(job_id, auth.user_id, reorder.task_ids))
