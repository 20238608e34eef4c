from typing import Dict

from ..fhir.profiles import GOAL_PROFILE
from .base import FhirRepository


class GoalRepository(FhirRepository):
    resource_type = "Goal"

    def find_by_patient(self, patient_id: str) -> Dict:
        return self.find_by_patient_and_profile(patient_id, GOAL_PROFILE)
