"""
EHR referral tasks: listing, creation (including the copy sent to the CBRO) and updates.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..core.exceptions import ConflictError, InvalidRequestError, NotFoundError, SdohExchangeError
from ..fhir.client import FhirClient, FhirClientError, ResourceNotFoundError, VersionConflictError
from ..fhir.profiles import ServiceRequestStatus, TaskStatus
from ..fhir.util import (
    get_all_references,
    get_from_response_bundle,
    id_part,
    parse_reference,
    reference_id,
    to_fhir_datetime,
)
from ..repositories.condition import ConditionRepository
from ..repositories.consent import ConsentRepository
from ..repositories.goal import GoalRepository
from ..repositories.organization import OrganizationRepository, is_cbro
from ..repositories.service_request import ServiceRequestRepository
from ..repositories.task import TaskRepository
from ..schemas.request import NewTaskRequest, UpdateTaskRequest
from ..schemas.response import TaskDto
from . import mappings
from .converters import TaskInfoToDtoConverter
from .fhir_clients import cbro_client
from .task_bundles import (
    build_service_request,
    build_task,
    cbro_task_bundle,
    create_task_bundle,
    note,
    update_bundle,
)
from .task_info import TaskInfo, collect_task_infos

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], FhirClient]


class TaskService:

    def __init__(
        self,
        client: FhirClient,
        identifier_system: Optional[str] = None,
        cbro_client_factory: ClientFactory = cbro_client,
    ):
        self.client = client
        self.identifier_system = identifier_system or client.base_url
        self.cbro_client_factory = cbro_client_factory
        self.tasks = TaskRepository(client)
        self.service_requests = ServiceRequestRepository(client)
        self.conditions = ConditionRepository(client)
        self.goals = GoalRepository(client)
        self.consents = ConsentRepository(client)
        self.organizations = OrganizationRepository(client)
        self.converter = TaskInfoToDtoConverter()

    def list_tasks(self, patient_id: str) -> List[TaskDto]:
        bundle = self.tasks.find_by_patient(patient_id)
        return [self.converter.convert(info) for info in collect_task_infos(bundle, self.client)]

    def get_task_info(self, task_id: str) -> TaskInfo:
        bundle = self.tasks.find({"_id": task_id, "_include": ["Task:focus", "Task:owner"]})
        infos = collect_task_infos(bundle, self.client)
        if not infos:
            raise NotFoundError(f"Task '{task_id}' not found")
        return infos[0]

    def create_task(self, patient_id: str, user: Optional[str], request: NewTaskRequest) -> str:
        """Create ServiceRequest + Task in the EHR, then send a copy to the performing CBRO."""
        category, code = mappings.resolve(request.category, request.request)
        performer = self._get_cbro(request.performer_id)
        address = self.organizations.find_endpoint_address(performer)
        if not address:
            raise InvalidRequestError(f"Organization '{request.performer_id}' has no FHIR endpoint")
        self._check_exist(self.conditions, request.condition_ids)
        self._check_exist(self.goals, request.goal_ids)
        if request.consent_id:
            self._check_exist(self.consents, [request.consent_id])

        now = datetime.now()
        service_request = build_service_request(patient_id, user, request, category, code, performer, now)
        task = build_task(patient_id, user, request, service_request, performer, now)
        response = self.client.transaction(create_task_bundle(service_request, task))
        task_id = get_from_response_bundle(response, "Task")
        if task_id is None:
            raise SdohExchangeError("FHIR server did not return the id of the created Task")
        logger.info("Created Task/%s for Patient/%s owned by Organization/%s",
                    task_id, patient_id, request.performer_id)

        try:
            self._send_to_cbro(task_id, address)
        except FhirClientError as exc:
            logger.warning("Failed to create a copy of Task/%s at %s: %s", task_id, address, exc)
            self._mark_failed(task_id, f"Failed to create a Task in the CBRO: {exc}")
        return task_id

    def _get_cbro(self, organization_id: str) -> Dict:
        try:
            organization = self.organizations.get(organization_id)
        except ResourceNotFoundError:
            raise InvalidRequestError(f"Organization '{organization_id}' not found")
        if not is_cbro(organization):
            raise InvalidRequestError(f"Organization '{organization_id}' is not a CBRO")
        return organization

    @staticmethod
    def _check_exist(repository, resource_ids: List[str]) -> None:
        if not resource_ids:
            return
        found = {id_part(r["id"]) for r in repository.find_by_ids(resource_ids)}
        missing = sorted(set(resource_ids) - found)
        if missing:
            raise InvalidRequestError(f"{repository.resource_type} not found: {', '.join(missing)}")

    def _send_to_cbro(self, task_id: str, address: str) -> None:
        task = self.tasks.get(task_id)
        service_request = self.service_requests.get(reference_id(task["focus"]))
        referenced = self._read_referenced([task, service_request])
        bundle = cbro_task_bundle(task, service_request, referenced, self.identifier_system)
        with self.cbro_client_factory(address) as cbro:
            cbro.transaction(bundle)
        logger.info("Sent Task/%s to %s", task_id, address)

    def _read_referenced(self, resources: List[Dict]) -> List[Dict]:
        """Read every resource the given resources refer to, except ServiceRequests."""
        targets = []
        for resource in resources:
            for reference in get_all_references(resource):
                target = parse_reference(reference.get("reference"))
                if target[0] and target[0] != "ServiceRequest" and target not in targets:
                    targets.append(target)
        referenced = []
        for resource_type, resource_id in targets:
            try:
                referenced.append(self.client.read(resource_type, resource_id))
            except ResourceNotFoundError:
                logger.warning("Referenced %s/%s does not exist, not copied", resource_type, resource_id)
        return referenced

    def _mark_failed(self, task_id: str, reason: str) -> None:
        task = self.tasks.get(task_id)
        task["status"] = TaskStatus.FAILED
        task["statusReason"] = {"text": reason}
        task["lastModified"] = to_fhir_datetime(datetime.now())
        self.client.update(task)

    def update_task(
        self, patient_id: str, user: Optional[str], task_id: str, request: UpdateTaskRequest,
    ) -> TaskDto:
        info = self.get_task_info(task_id)
        task = info.task
        if reference_id(task.get("for")) != patient_id:
            raise NotFoundError(f"Task '{task_id}' not found")

        now = datetime.now()
        changed = [task]
        if request.status == TaskStatus.CANCELLED:
            if task.get("status") not in TaskStatus.ACTIVE:
                raise InvalidRequestError(
                    f"Task in status '{task.get('status')}' cannot be cancelled"
                )
            task["status"] = TaskStatus.CANCELLED
            if info.service_request_info is not None:
                service_request = info.service_request_info.service_request
                service_request["status"] = ServiceRequestStatus.REVOKED
                changed.append(service_request)
        if request.comment:
            task.setdefault("note", []).append(note(request.comment, user, now))
        task["lastModified"] = to_fhir_datetime(now)

        try:
            self.client.transaction(update_bundle(changed))
        except VersionConflictError:
            raise ConflictError(f"Task '{task_id}' was changed in the meantime, reload it and retry")
        logger.info("Updated Task/%s (status=%s)", task_id, task["status"])

        if request.status == TaskStatus.CANCELLED and info.owner is not None:
            self._cancel_in_cbro(task_id, info.owner)
        return self.converter.convert(info)

    def _cancel_in_cbro(self, task_id: str, owner: Dict) -> None:
        """Cancel the CBRO copy. Failures are logged; the EHR cancellation stands."""
        try:
            address = self.organizations.find_endpoint_address(owner)
            if not address:
                return
            with self.cbro_client_factory(address) as cbro:
                cbro_task = TaskRepository(cbro).find_by_identifier(self.identifier_system, task_id)
                if cbro_task is None or cbro_task.get("status") in TaskStatus.TERMINAL:
                    return
                cbro_task["status"] = TaskStatus.CANCELLED
                cbro_task["lastModified"] = to_fhir_datetime(datetime.now())
                cbro.update(cbro_task)
            logger.info("Cancelled the CBRO copy of Task/%s", task_id)
        except FhirClientError as exc:
            logger.warning("Failed to cancel the CBRO copy of Task/%s: %s", task_id, exc)
