from fastapi import APIRouter, Depends

from ..core.openapi import ADMINISTRATION_API_TAG
from ..core.permissions import WRITE
from ..core.security import require_scope
from ..schemas.response import PollingSummary
from ..services.task_poller import TaskPoller
from .deps import get_task_poller

router = APIRouter(prefix="/administration", tags=[ADMINISTRATION_API_TAG])


@router.post("/task/poll", response_model=PollingSummary)
def poll_tasks(
    _context=Depends(require_scope("Task", WRITE)),
    poller: TaskPoller = Depends(get_task_poller),
):
    """Synchronize Task statuses with the CBRO servers now, without waiting for the next cycle."""
    return poller.poll_once()
