from typing import Dict, Optional

from ..fhir.profiles import TASK_PROFILE, TaskStatus
from ..fhir.util import get_from_bundle
from .base import FhirRepository, LAST_UPDATED_DESC


class TaskRepository(FhirRepository):
    resource_type = "Task"

    def find_by_patient(self, patient_id: str) -> Dict:
        """Patient's tasks together with their ServiceRequest and owner Organization."""
        return self.find({
            "patient": patient_id,
            "_sort": LAST_UPDATED_DESC,
            "_include": ["Task:focus", "Task:owner"],
        })

    def find_active(self) -> Dict:
        """Referral tasks not yet in a terminal status, with their owner Organization."""
        return self.find({
            "status": ",".join(TaskStatus.ACTIVE),
            "_profile": TASK_PROFILE,
            "_include": "Task:owner",
        })

    def find_by_identifier(self, system: str, value: str) -> Optional[Dict]:
        bundle = self.find({"identifier": f"{system}|{value}"})
        tasks = get_from_bundle(bundle, self.resource_type)
        return tasks[0] if tasks else None

    def find_all_with_focus(self) -> Dict:
        return self.find({"_sort": LAST_UPDATED_DESC, "_include": "Task:focus"})
