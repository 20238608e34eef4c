"""
Aggregates of a Task with the resources it points to, built from a Task search Bundle.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..fhir.client import FhirClient
from ..fhir.util import get_from_bundle, get_references, id_part, parse_reference, reference_id
from ..repositories.condition import ConditionRepository
from ..repositories.consent import ConsentRepository
from ..repositories.goal import GoalRepository


@dataclass
class ServiceRequestInfo:
    service_request: Dict
    conditions: List[Dict] = field(default_factory=list)
    goals: List[Dict] = field(default_factory=list)
    consent: Optional[Dict] = None


@dataclass
class TaskInfo:
    task: Dict
    service_request_info: Optional[ServiceRequestInfo]
    owner: Optional[Dict]


def _by_id(resources: List[Dict]) -> Dict[str, Dict]:
    return {id_part(r["id"]): r for r in resources}


def collect_task_infos(bundle: Dict, client: FhirClient) -> List[TaskInfo]:
    """
    Resolve Task.focus and Task.owner from the included resources of the Bundle, then load
    the Conditions, Goals and Consent each ServiceRequest refers to in one search per type.
    """
    tasks = get_from_bundle(bundle, "Task")
    service_requests = _by_id(get_from_bundle(bundle, "ServiceRequest"))
    organizations = _by_id(get_from_bundle(bundle, "Organization"))

    references = {sr_id: get_references(sr, ["Condition", "Goal", "Consent"])
                  for sr_id, sr in service_requests.items()}

    def ids_of(resource_type: str) -> List[str]:
        return [parse_reference(r.get("reference"))[1]
                for refs in references.values() for r in refs.get(resource_type, [])]

    conditions = _by_id(ConditionRepository(client).find_by_ids(ids_of("Condition")))
    goals = _by_id(GoalRepository(client).find_by_ids(ids_of("Goal")))
    consents = _by_id(ConsentRepository(client).find_by_ids(ids_of("Consent")))

    infos = []
    for task in tasks:
        sr_id = reference_id(task.get("focus"))
        sr_info = None
        if sr_id in service_requests:
            refs = references[sr_id]
            consent_ids = [reference_id(r) for r in refs.get("Consent", [])]
            sr_info = ServiceRequestInfo(
                service_request=service_requests[sr_id],
                conditions=[conditions[reference_id(r)] for r in refs.get("Condition", [])
                            if reference_id(r) in conditions],
                goals=[goals[reference_id(r)] for r in refs.get("Goal", []) if reference_id(r) in goals],
                consent=next((consents[i] for i in consent_ids if i in consents), None),
            )
        infos.append(TaskInfo(
            task=task,
            service_request_info=sr_info,
            owner=organizations.get(reference_id(task.get("owner"))),
        ))
    return infos
