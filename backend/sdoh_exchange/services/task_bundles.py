"""
Transaction Bundles for creating a referral in the EHR, copying it to a CBRO server
and saving updated resources.
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..fhir.profiles import (
    SERVICE_REQUEST_PROFILE,
    TASK_CODE_SYSTEM,
    TASK_PROFILE,
    ServiceRequestStatus,
    TaskStatus,
)
from ..fhir.util import (
    create_post_entry,
    create_put_entry,
    id_part,
    new_urn,
    strip_meta,
    to_fhir_datetime,
    to_reference,
    transaction_bundle,
)
from ..schemas.request import NewTaskRequest
from .mappings import Code


def _requester(user: Optional[str]) -> Dict:
    return {"requester": {"reference": user}} if user else {}


def note(text: str, user: Optional[str], now: datetime) -> Dict:
    entry = {"text": text, "time": to_fhir_datetime(now)}
    if user:
        entry["authorReference"] = {"reference": user}
    return entry


def build_service_request(
    patient_id: str,
    user: Optional[str],
    request: NewTaskRequest,
    category: Code,
    code: Code,
    performer: Dict,
    now: datetime,
) -> Dict:
    service_request = {
        "resourceType": "ServiceRequest",
        "id": new_urn(),
        "meta": {"profile": [SERVICE_REQUEST_PROFILE]},
        "status": ServiceRequestStatus.ACTIVE,
        "intent": "order",
        "priority": request.priority,
        "category": [{"coding": [category.to_coding()]}],
        "code": {"coding": [code.to_coding()]},
        "subject": to_reference("Patient", patient_id),
        "authoredOn": to_fhir_datetime(now),
        "performer": [to_reference("Organization", id_part(performer["id"]), performer.get("name"))],
        **_requester(user),
    }
    occurrence = request.occurrence
    if occurrence.start is not None:
        service_request["occurrencePeriod"] = {
            "start": to_fhir_datetime(occurrence.start),
            "end": to_fhir_datetime(occurrence.end),
        }
    else:
        service_request["occurrenceDateTime"] = to_fhir_datetime(occurrence.end)
    if request.condition_ids:
        service_request["reasonReference"] = [to_reference("Condition", i) for i in request.condition_ids]
    supporting = [to_reference("Goal", i) for i in request.goal_ids]
    if request.consent_id:
        supporting.append(to_reference("Consent", request.consent_id))
    if supporting:
        service_request["supportingInfo"] = supporting
    return service_request


def build_task(
    patient_id: str,
    user: Optional[str],
    request: NewTaskRequest,
    service_request: Dict,
    performer: Dict,
    now: datetime,
) -> Dict:
    timestamp = to_fhir_datetime(now)
    task = {
        "resourceType": "Task",
        "id": new_urn(),
        "meta": {"profile": [TASK_PROFILE]},
        "status": TaskStatus.REQUESTED,
        "intent": "order",
        "priority": request.priority,
        "code": {"coding": [{
            "system": TASK_CODE_SYSTEM,
            "code": "fulfill",
            "display": "Fulfill the focal request",
        }]},
        "description": request.name,
        "focus": {"reference": service_request["id"]},
        "for": to_reference("Patient", patient_id),
        "authoredOn": timestamp,
        "lastModified": timestamp,
        "owner": to_reference("Organization", id_part(performer["id"]), performer.get("name")),
        **_requester(user),
    }
    if request.comment:
        task["note"] = [note(request.comment, user, now)]
    return task


def create_task_bundle(service_request: Dict, task: Dict) -> Dict:
    return transaction_bundle([create_post_entry(service_request), create_post_entry(task)])


def cbro_task_bundle(
    task: Dict,
    service_request: Dict,
    referenced: Iterable[Dict],
    identifier_system: str,
) -> Dict:
    """
    Copy of an EHR referral for a CBRO server. Referenced resources keep their ids (PUT) so
    references stay valid; the Task copy points back to the EHR Task through an identifier.
    """
    entries: List[Dict] = [create_put_entry(strip_meta(r)) for r in referenced]

    service_request_copy = strip_meta(service_request)
    service_request_copy["id"] = new_urn()

    task_copy = strip_meta(task)
    task_copy["id"] = new_urn()
    task_copy["focus"] = {"reference": service_request_copy["id"]}
    task_copy["identifier"] = [i for i in task.get("identifier", []) if i.get("system") != identifier_system]
    task_copy["identifier"].append({"system": identifier_system, "value": id_part(task["id"])})

    entries.append(create_post_entry(service_request_copy))
    entries.append(create_post_entry(task_copy))
    return transaction_bundle(entries)


def update_bundle(resources: Iterable[Dict]) -> Dict:
    """
    PUT entries for resources read from the server. Each entry is conditional on the
    version that was read, so a concurrent change makes the whole transaction fail.
    """
    entries = []
    for resource in resources:
        entry = create_put_entry(resource)
        version = resource.get("meta", {}).get("versionId")
        if version:
            entry["request"]["ifMatch"] = f'W/"{version}"'
        entries.append(entry)
    return transaction_bundle(entries)
