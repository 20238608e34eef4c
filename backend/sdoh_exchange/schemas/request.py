from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from ..fhir.profiles import TaskPriority, TaskStatus
from .base import CamelModel


class OccurrenceRequestDto(CamelModel):
    start: Optional[datetime] = None
    end: datetime

    @model_validator(mode="after")
    def check_period(self):
        if self.start is not None and self.start > self.end:
            raise ValueError("Occurrence start must not be after its end")
        return self


class NewTaskRequest(CamelModel):
    name: str = Field(min_length=1)
    category: str
    request: str  # ServiceRequest code within the category
    priority: str = TaskPriority.ROUTINE
    occurrence: OccurrenceRequestDto
    condition_ids: List[str] = Field(default_factory=list)
    goal_ids: List[str] = Field(default_factory=list)
    performer_id: str
    consent_id: Optional[str] = None
    comment: Optional[str] = None

    @field_validator("priority")
    @classmethod
    def check_priority(cls, value: str) -> str:
        value = value.lower()
        if value not in TaskPriority.ALL:
            raise ValueError(f"Priority must be one of {', '.join(TaskPriority.ALL)}")
        return value


class UpdateTaskRequest(CamelModel):
    """The EHR may only cancel a task or comment on it."""
    status: Optional[str] = None
    comment: Optional[str] = None

    @field_validator("status")
    @classmethod
    def check_status(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.lower()
        if value != TaskStatus.CANCELLED:
            raise ValueError("Only cancellation is allowed")
        return value

    @model_validator(mode="after")
    def check_not_empty(self):
        if self.status is None and not self.comment:
            raise ValueError("Either status or comment must be provided")
        return self


class UpdateCbroTaskRequest(CamelModel):
    status: Optional[str] = None
    status_reason: Optional[str] = None
    comment: Optional[str] = None
    outcome: Optional[str] = None

    @field_validator("status")
    @classmethod
    def normalize_status(cls, value: Optional[str]) -> Optional[str]:
        return value.lower().replace("_", "-") if value else value
