from typing import Dict

from .base import FhirRepository, LAST_UPDATED_DESC


class ConsentRepository(FhirRepository):
    resource_type = "Consent"

    def find_by_patient(self, patient_id: str) -> Dict:
        # Consents are not filtered by profile, many EHRs store them without one.
        return self.find({"patient": patient_id, "_sort": LAST_UPDATED_DESC})
