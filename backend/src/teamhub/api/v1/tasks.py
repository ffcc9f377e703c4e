"""Task API endpoints."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from teamhub.api.deps import get_task_service
from teamhub.auth.middleware import require_auth
from teamhub.auth.models import UserAccount
from teamhub.tasks.models import TaskStatus
from teamhub.tasks.service import TaskService

router = APIRouter(tags=["tasks"])


class CreateTaskRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    status: TaskStatus = TaskStatus.PENDING


class UpdateTaskRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    status: TaskStatus | None = None


@router.get("/teams/{team_id}/tasks")
async def list_tasks(
    team_id: str,
    status: TaskStatus | None = None,
    current_user: UserAccount = Depends(require_auth),
    tasks: TaskService = Depends(get_task_service),
):
    """List the team's tasks, newest first."""
    return {"tasks": tasks.list_tasks(team_id, current_user.id, status=status)}


@router.post("/teams/{team_id}/tasks", status_code=201)
async def create_task(
    team_id: str,
    body: CreateTaskRequest,
    current_user: UserAccount = Depends(require_auth),
    tasks: TaskService = Depends(get_task_service),
):
    return tasks.create_task(
        team_id,
        current_user.id,
        title=body.title,
        description=body.description,
        status=body.status,
    )


@router.patch("/tasks/{task_id}")
async def update_task(
    task_id: int,
    body: UpdateTaskRequest,
    current_user: UserAccount = Depends(require_auth),
    tasks: TaskService = Depends(get_task_service),
):
    return tasks.update_task(
        task_id,
        current_user.id,
        title=body.title,
        description=body.description,
        status=body.status,
    )


@router.delete("/tasks/{task_id}")
async def delete_task(
    task_id: int,
    current_user: UserAccount = Depends(require_auth),
    tasks: TaskService = Depends(get_task_service),
):
    tasks.delete_task(task_id, current_user.id)
    return {"success": True}
