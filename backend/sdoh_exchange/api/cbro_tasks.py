from typing import List

from fastapi import APIRouter, Depends

from ..core.openapi import TASK_API_TAG
from ..schemas.request import UpdateCbroTaskRequest
from ..schemas.response import CbroTaskDto
from ..services.cbro_task_service import CbroTaskService
from .deps import get_cbro_task_service

router = APIRouter(prefix="/task", tags=[TASK_API_TAG])


@router.get("", response_model=List[CbroTaskDto])
def list_tasks(service: CbroTaskService = Depends(get_cbro_task_service)):
    """Tasks received from EHRs, newest first."""
    return service.list_tasks()


@router.get("/{task_id}", response_model=CbroTaskDto)
def get_task(task_id: str, service: CbroTaskService = Depends(get_cbro_task_service)):
    return service.get_task(task_id)


@router.put("/{task_id}", response_model=CbroTaskDto)
def update_task(
    task_id: str,
    request: UpdateCbroTaskRequest,
    service: CbroTaskService = Depends(get_cbro_task_service),
):
    """Move a Task along its workflow, record a status reason, a comment or the outcome."""
    return service.update_task(task_id, request)
