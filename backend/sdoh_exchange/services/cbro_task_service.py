"""
CBRO side of a referral: the tasks EHRs sent to this organization and their status workflow.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from ..core.exceptions import InvalidRequestError, NotFoundError
from ..fhir.client import FhirClient, ResourceNotFoundError
from ..fhir.profiles import TaskStatus
from ..fhir.util import get_from_bundle, id_part, reference_id, to_fhir_datetime
from ..repositories.service_request import ServiceRequestRepository
from ..repositories.task import TaskRepository
from ..schemas.request import UpdateCbroTaskRequest
from ..schemas.response import CbroTaskDto
from .converters import CbroTaskToDtoConverter, result_output
from .task_bundles import note

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[str, List[str]] = {
    TaskStatus.REQUESTED: [TaskStatus.RECEIVED, TaskStatus.ACCEPTED, TaskStatus.REJECTED],
    TaskStatus.RECEIVED: [TaskStatus.ACCEPTED, TaskStatus.REJECTED],
    TaskStatus.ACCEPTED: [TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED],
    TaskStatus.IN_PROGRESS: [TaskStatus.ON_HOLD, TaskStatus.COMPLETED, TaskStatus.CANCELLED],
    TaskStatus.ON_HOLD: [TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED],
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, [])


class CbroTaskService:

    def __init__(self, client: FhirClient):
        self.client = client
        self.tasks = TaskRepository(client)
        self.service_requests = ServiceRequestRepository(client)
        self.converter = CbroTaskToDtoConverter()

    def list_tasks(self) -> List[CbroTaskDto]:
        bundle = self.tasks.find_all_with_focus()
        service_requests = {id_part(sr["id"]): sr for sr in get_from_bundle(bundle, "ServiceRequest")}
        return [
            self.converter.convert(task, service_requests.get(reference_id(task.get("focus"))))
            for task in get_from_bundle(bundle, "Task")
        ]

    def get_task(self, task_id: str) -> CbroTaskDto:
        task = self._read_task(task_id)
        return self.converter.convert(task, self._read_focus(task))

    def update_task(self, task_id: str, request: UpdateCbroTaskRequest, author: Optional[str] = None) -> CbroTaskDto:
        task = self._read_task(task_id)
        current = task.get("status")
        target = request.status

        if target and target != current:
            if not can_transition(current, target):
                raise InvalidRequestError(f"Task status cannot change from '{current}' to '{target}'")
            task["status"] = target
            logger.info("Task/%s status changed from '%s' to '%s'", task_id, current, target)
        if request.status_reason:
            task["statusReason"] = {"text": request.status_reason}
        if request.outcome:
            if task["status"] != TaskStatus.COMPLETED:
                raise InvalidRequestError("An outcome can only be recorded for a completed Task")
            task["output"] = [result_output(request.outcome)]

        now = datetime.now()
        if request.comment:
            task.setdefault("note", []).append(note(request.comment, author, now))
        task["lastModified"] = to_fhir_datetime(now)

        saved = self.client.update(task) or task
        return self.converter.convert(saved, self._read_focus(saved))

    def _read_task(self, task_id: str) -> Dict:
        try:
            return self.tasks.get(task_id)
        except ResourceNotFoundError:
            raise NotFoundError(f"Task '{task_id}' not found")

    def _read_focus(self, task: Dict) -> Optional[Dict]:
        focus_id = reference_id(task.get("focus"))
        if not focus_id:
            return None
        try:
            return self.service_requests.get(focus_id)
        except ResourceNotFoundError:
            logger.warning("Task/%s focus ServiceRequest/%s does not exist", id_part(task["id"]), focus_id)
            return None
