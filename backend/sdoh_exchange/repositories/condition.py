from typing import Dict

from ..fhir.profiles import CONDITION_PROFILE
from .base import FhirRepository


class ConditionRepository(FhirRepository):
    resource_type = "Condition"

    def find_by_patient(self, patient_id: str) -> Dict:
        return self.find_by_patient_and_profile(patient_id, CONDITION_PROFILE)
