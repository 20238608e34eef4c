from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .base import CamelModel, ValidatedDto


class CodingDto(CamelModel):
    code: Optional[str] = None
    display: Optional[str] = None


class ConditionDto(CamelModel):
    id: str
    display: Optional[str] = None


class GoalDto(CamelModel):
    id: str
    display: Optional[str] = None


class ConsentResponseDto(CamelModel):
    id: str
    name: Optional[str] = None


class OccurrenceResponseDto(CamelModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class OrganizationDto(CamelModel):
    id: str
    name: Optional[str] = None
    type: Optional[str] = None


class CommentDto(CamelModel):
    text: str
    author: Optional[str] = None
    time: Optional[datetime] = None


class ServiceRequestDto(ValidatedDto):
    id: str
    category: Optional[CodingDto] = None
    code: Optional[CodingDto] = None
    occurrence: Optional[OccurrenceResponseDto] = None
    conditions: List[ConditionDto] = Field(default_factory=list)
    goals: List[GoalDto] = Field(default_factory=list)
    consent: Optional[ConsentResponseDto] = None


class TaskDto(ValidatedDto):
    id: str
    name: Optional[str] = None
    created_at: Optional[datetime] = None
    last_modified: Optional[datetime] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    status_reason: Optional[str] = None
    comments: List[CommentDto] = Field(default_factory=list)
    outcome: Optional[str] = None
    service_request: Optional[ServiceRequestDto] = None
    organization: Optional[OrganizationDto] = None


class CbroTaskDto(ValidatedDto):
    id: str
    name: Optional[str] = None
    created_at: Optional[datetime] = None
    last_modified: Optional[datetime] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    status_reason: Optional[str] = None
    comments: List[CommentDto] = Field(default_factory=list)
    outcome: Optional[str] = None
    requester: Optional[str] = None
    ehr_task_id: Optional[str] = None
    service_request: Optional[ServiceRequestDto] = None


class ContextResponse(CamelModel):
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None


class NewTaskResponse(CamelModel):
    task_id: str


class PollingSummary(CamelModel):
    checked: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
