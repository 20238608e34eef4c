from typing import List

from fastapi import APIRouter, Depends, status

from ..core.openapi import TASK_API_TAG
from ..core.permissions import WRITE
from ..core.security import require_patient, require_scope
from ..schemas.request import NewTaskRequest, UpdateTaskRequest
from ..schemas.response import NewTaskResponse, TaskDto
from ..services.task_service import TaskService
from .deps import get_task_service

router = APIRouter(prefix="/task", tags=[TASK_API_TAG])


@router.get("", response_model=List[TaskDto])
def list_tasks(
    context=Depends(require_scope("Task")),
    service: TaskService = Depends(get_task_service),
):
    """Referral tasks of the patient in context, newest first."""
    return service.list_tasks(require_patient(context))


@router.post("", response_model=NewTaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    request: NewTaskRequest,
    context=Depends(require_scope("Task", WRITE)),
    service: TaskService = Depends(get_task_service),
):
    """Create a referral and send it to the performing CBRO."""
    task_id = service.create_task(require_patient(context), context.fhir_user, request)
    return NewTaskResponse(task_id=task_id)


@router.put("/{task_id}", response_model=TaskDto)
def update_task(
    task_id: str,
    request: UpdateTaskRequest,
    context=Depends(require_scope("Task", WRITE)),
    service: TaskService = Depends(get_task_service),
):
    """Cancel a referral or comment on it."""
    return service.update_task(require_patient(context), context.fhir_user, task_id, request)
