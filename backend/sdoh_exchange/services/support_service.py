"""
Lists of FHIR resources a new Task/ServiceRequest may refer to.
"""
from typing import List

from ..fhir.client import FhirClient
from ..fhir.util import first_coding, get_from_bundle
from ..repositories.condition import ConditionRepository
from ..repositories.consent import ConsentRepository
from ..repositories.goal import GoalRepository
from ..repositories.organization import OrganizationRepository
from ..schemas.response import ConditionDto, ConsentResponseDto, GoalDto, OrganizationDto
from .converters import condition_to_dto, consent_to_dto, goal_to_dto, organization_to_dto

INACTIVE_CONDITION_STATUSES = {"inactive", "remission", "resolved"}
CLOSED_GOAL_STATUSES = {"completed", "cancelled", "rejected", "entered-in-error"}


class SupportService:

    def __init__(self, client: FhirClient):
        self.client = client

    def conditions(self, patient_id: str) -> List[ConditionDto]:
        bundle = ConditionRepository(self.client).find_by_patient(patient_id)
        return [
            condition_to_dto(c) for c in get_from_bundle(bundle, "Condition")
            if first_coding(c.get("clinicalStatus")).get("code") not in INACTIVE_CONDITION_STATUSES
        ]

    def goals(self, patient_id: str) -> List[GoalDto]:
        bundle = GoalRepository(self.client).find_by_patient(patient_id)
        return [
            goal_to_dto(g) for g in get_from_bundle(bundle, "Goal")
            if g.get("lifecycleStatus") not in CLOSED_GOAL_STATUSES
        ]

    def consents(self, patient_id: str) -> List[ConsentResponseDto]:
        bundle = ConsentRepository(self.client).find_by_patient(patient_id)
        return [consent_to_dto(c) for c in get_from_bundle(bundle, "Consent") if c.get("status") == "active"]

    def organizations(self) -> List[OrganizationDto]:
        return [organization_to_dto(o) for o in OrganizationRepository(self.client).find_cbro_organizations()]
