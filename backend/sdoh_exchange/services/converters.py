"""
Conversion of FHIR resources (FHIR JSON) into the response DTOs of the HTTP API.
"""
from typing import Dict, List, Optional

from ..fhir.profiles import SDOHCC_TEMPORARY_CODES, TASK_OUTPUT_RESULT_CODE
from ..fhir.util import concept_text, first_coding, id_part, to_local_datetime
from ..repositories.organization import is_cbro
from ..schemas.response import (
    CbroTaskDto,
    CodingDto,
    CommentDto,
    ConditionDto,
    ConsentResponseDto,
    GoalDto,
    OccurrenceResponseDto,
    OrganizationDto,
    ServiceRequestDto,
    TaskDto,
)
from .task_info import ServiceRequestInfo, TaskInfo


def coding_to_dto(coding: Dict) -> Optional[CodingDto]:
    if not coding:
        return None
    return CodingDto(code=coding.get("code"), display=coding.get("display"))


def condition_to_dto(condition: Dict) -> ConditionDto:
    return ConditionDto(id=id_part(condition["id"]), display=concept_text(condition.get("code")))


def goal_to_dto(goal: Dict) -> GoalDto:
    return GoalDto(id=id_part(goal["id"]), display=concept_text(goal.get("description")))


def consent_to_dto(consent: Dict) -> ConsentResponseDto:
    name = consent.get("sourceAttachment", {}).get("title")
    if not name:
        name = next((concept_text(c) for c in consent.get("category", []) if concept_text(c)), None)
    return ConsentResponseDto(id=id_part(consent["id"]), name=name)


def organization_to_dto(organization: Dict) -> OrganizationDto:
    if is_cbro(organization):
        org_type = "CBO"
    else:
        org_type = next((first_coding(t).get("code") for t in organization.get("type", [])), None)
    return OrganizationDto(id=id_part(organization["id"]), name=organization.get("name"), type=org_type)


def notes_to_dto(notes: List[Dict]) -> List[CommentDto]:
    comments = []
    for note in notes or []:
        if not note.get("text"):
            continue
        author = note.get("authorString") or note.get("authorReference", {}).get("display") \
            or note.get("authorReference", {}).get("reference")
        comments.append(CommentDto(text=note["text"], author=author, time=to_local_datetime(note.get("time"))))
    return comments


def task_outcome(task: Dict) -> Optional[str]:
    """Text of the Task output that records the resulting activity."""
    for output in task.get("output", []):
        if first_coding(output.get("type")).get("code") != TASK_OUTPUT_RESULT_CODE:
            continue
        if "valueString" in output:
            return output["valueString"]
        if "valueCodeableConcept" in output:
            return concept_text(output["valueCodeableConcept"])
        if "valueReference" in output:
            return output["valueReference"].get("display")
    return None


def result_output(outcome: str) -> Dict:
    return {
        "type": {"coding": [{"system": SDOHCC_TEMPORARY_CODES, "code": TASK_OUTPUT_RESULT_CODE}]},
        "valueString": outcome,
    }


class ServiceRequestToDtoConverter:
    """ServiceRequest -> id, category, code and occurrence."""

    def convert(self, service_request: Dict) -> ServiceRequestDto:
        dto = ServiceRequestDto(id=id_part(service_request["id"]))
        categories = service_request.get("category") or [{}]
        dto.category = coding_to_dto(first_coding(categories[0]))
        dto.code = coding_to_dto(first_coding(service_request.get("code")))
        if "occurrenceDateTime" in service_request:
            dto.occurrence = OccurrenceResponseDto(
                end=to_local_datetime(service_request["occurrenceDateTime"]),
            )
        elif "occurrencePeriod" in service_request:
            period = service_request["occurrencePeriod"]
            dto.occurrence = OccurrenceResponseDto(
                start=to_local_datetime(period.get("start")),
                end=to_local_datetime(period.get("end")),
            )
        return dto


class ServiceRequestInfoToDtoConverter(ServiceRequestToDtoConverter):
    """ServiceRequest with the Conditions, Goals and Consent it refers to."""

    def convert_info(self, info: ServiceRequestInfo) -> ServiceRequestDto:
        dto = self.convert(info.service_request)
        if dto.category is None:
            dto.add_error("ServiceRequest has no category.")
        if dto.code is None:
            dto.add_error("ServiceRequest has no code.")
        if dto.occurrence is None:
            dto.add_error("ServiceRequest has no occurrence.")
        dto.conditions = [condition_to_dto(c) for c in info.conditions]
        dto.goals = [goal_to_dto(g) for g in info.goals]
        if info.consent is not None:
            dto.consent = consent_to_dto(info.consent)
        return dto


class TaskInfoToDtoConverter:

    def __init__(self):
        self.service_request_converter = ServiceRequestInfoToDtoConverter()

    def convert(self, info: TaskInfo) -> TaskDto:
        task = info.task
        dto = TaskDto(
            id=id_part(task["id"]),
            name=task.get("description"),
            created_at=to_local_datetime(task.get("authoredOn")),
            last_modified=to_local_datetime(task.get("lastModified")),
            priority=task.get("priority"),
            status=task.get("status"),
            status_reason=concept_text(task.get("statusReason")),
            comments=notes_to_dto(task.get("note")),
            outcome=task_outcome(task),
        )
        if info.service_request_info is None:
            dto.add_error("Task has no ServiceRequest in focus.")
        else:
            dto.service_request = self.service_request_converter.convert_info(info.service_request_info)
        if info.owner is None:
            dto.add_error("Task has no owner Organization.")
        else:
            dto.organization = organization_to_dto(info.owner)
        return dto


class CbroTaskToDtoConverter:

    def __init__(self):
        self.service_request_converter = ServiceRequestToDtoConverter()

    def convert(self, task: Dict, service_request: Optional[Dict]) -> CbroTaskDto:
        identifiers = task.get("identifier", [])
        dto = CbroTaskDto(
            id=id_part(task["id"]),
            name=task.get("description"),
            created_at=to_local_datetime(task.get("authoredOn")),
            last_modified=to_local_datetime(task.get("lastModified")),
            priority=task.get("priority"),
            status=task.get("status"),
            status_reason=concept_text(task.get("statusReason")),
            comments=notes_to_dto(task.get("note")),
            outcome=task_outcome(task),
            requester=task.get("requester", {}).get("display") or task.get("requester", {}).get("reference"),
            ehr_task_id=identifiers[0].get("value") if identifiers else None,
        )
        if service_request is None:
            dto.add_error("Task has no ServiceRequest in focus.")
        else:
            dto.service_request = self.service_request_converter.convert(service_request)
        return dto
