"""
Task status synchronization.

Every cycle the EHR's non-terminal referral tasks are compared with their copies on the
CBRO servers. Status, status reason, outputs and new notes are copied onto the EHR Task;
once the CBRO finishes a Task the EHR ServiceRequest is completed or revoked.
"""
import asyncio
import copy
import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from starlette.concurrency import run_in_threadpool

from ..core.config import settings
from ..fhir.client import FhirClient, FhirClientError, VersionConflictError
from ..fhir.profiles import SERVICE_REQUEST_STATUS_BY_TASK_STATUS, TaskStatus
from ..fhir.util import get_from_bundle, id_part, reference_id, to_fhir_datetime
from ..repositories.organization import OrganizationRepository
from ..repositories.task import TaskRepository
from ..schemas.response import PollingSummary
from .fhir_clients import cbro_client, ehr_identifier_system, open_ehr_client
from .task_bundles import update_bundle

logger = logging.getLogger(__name__)

SYNCHRONIZED_FIELDS = ("status", "statusReason", "businessStatus", "output")


def reconcile(ehr_task: Dict, cbro_task: Dict) -> bool:
    """
    Copy the CBRO side of a Task onto the EHR Task in place. Returns True if anything changed.
    Notes are merged: CBRO notes missing in the EHR Task (same text and time) are appended.
    """
    changed = False
    for name in SYNCHRONIZED_FIELDS:
        if cbro_task.get(name) == ehr_task.get(name):
            continue
        if name in cbro_task:
            ehr_task[name] = copy.deepcopy(cbro_task[name])
        else:
            ehr_task.pop(name, None)
        changed = True

    known = {(n.get("text"), n.get("time")) for n in ehr_task.get("note", [])}
    new_notes = [n for n in cbro_task.get("note", []) if (n.get("text"), n.get("time")) not in known]
    if new_notes:
        ehr_task.setdefault("note", []).extend(copy.deepcopy(new_notes))
        changed = True

    if changed:
        ehr_task["lastModified"] = to_fhir_datetime(datetime.now())
    return changed


class TaskPoller:

    def __init__(
        self,
        ehr_client_factory: Callable[[], FhirClient] = open_ehr_client,
        cbro_client_factory: Callable[[str], FhirClient] = cbro_client,
        identifier_system: Optional[str] = None,
        delay: Optional[float] = None,
    ):
        self.ehr_client_factory = ehr_client_factory
        self.cbro_client_factory = cbro_client_factory
        self.identifier_system = identifier_system or ehr_identifier_system()
        self.delay = settings.TASK_POLLING_DELAY_SECONDS if delay is None else delay
        self._stopped = asyncio.Event()

    def poll_once(self) -> PollingSummary:
        summary = PollingSummary()
        with self.ehr_client_factory() as ehr:
            bundle = TaskRepository(ehr).find_active()
            owners = {id_part(o["id"]): o for o in get_from_bundle(bundle, "Organization")}
            organizations = OrganizationRepository(ehr)
            addresses: Dict[str, Optional[str]] = {}

            for task in get_from_bundle(bundle, "Task"):
                summary.checked += 1
                try:
                    if self._sync_task(ehr, task, owners, organizations, addresses):
                        summary.updated += 1
                    else:
                        summary.skipped += 1
                except FhirClientError as exc:
                    summary.failed += 1
                    logger.warning("Failed to synchronize Task/%s: %s", id_part(task["id"]), exc)

        if summary.updated or summary.failed:
            logger.info(
                "Task polling: %d checked, %d updated, %d failed",
                summary.checked, summary.updated, summary.failed,
            )
        return summary

    def _sync_task(self, ehr: FhirClient, task: Dict, owners: Dict, organizations, addresses: Dict) -> bool:
        task_id = id_part(task["id"])
        owner_id = reference_id(task.get("owner"))
        owner = owners.get(owner_id)
        if owner is None:
            logger.debug("Task/%s has no owner Organization, skipped", task_id)
            return False
        if owner_id not in addresses:
            addresses[owner_id] = organizations.find_endpoint_address(owner)
        address = addresses[owner_id]
        if not address:
            return False

        with self.cbro_client_factory(address) as cbro:
            cbro_task = TaskRepository(cbro).find_by_identifier(self.identifier_system, task_id)
        if cbro_task is None:
            logger.warning("Task/%s has no copy at %s", task_id, address)
            return False

        # the search snapshot is stale by now, a clinician may have commented or cancelled
        task = ehr.read("Task", task_id)
        if task.get("status") in TaskStatus.TERMINAL:
            return False
        if not reconcile(task, cbro_task):
            return False

        changed = [task]
        service_request_status = SERVICE_REQUEST_STATUS_BY_TASK_STATUS.get(task["status"])
        focus_id = reference_id(task.get("focus"))
        if service_request_status and focus_id:
            service_request = ehr.read("ServiceRequest", focus_id)
            if service_request.get("status") != service_request_status:
                service_request["status"] = service_request_status
                changed.append(service_request)
        try:
            ehr.transaction(update_bundle(changed))
        except VersionConflictError:
            logger.info("Task/%s changed during synchronization, retrying next cycle", task_id)
            return False
        logger.info("Task/%s synchronized, status is now '%s'", task_id, task["status"])
        return True

    async def run(self) -> None:
        """Poll with a fixed delay until stop() is called."""
        logger.info("Task polling started, every %.1f s", self.delay)
        while not self._stopped.is_set():
            try:
                await run_in_threadpool(self.poll_once)
            except Exception:
                logger.exception("Task polling cycle failed")
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.delay)
            except asyncio.TimeoutError:
                pass
        logger.info("Task polling stopped")

    def stop(self) -> None:
        self._stopped.set()
