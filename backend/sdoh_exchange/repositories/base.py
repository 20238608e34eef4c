from typing import Dict, Iterable, List

from ..fhir.client import FhirClient, SearchParams
from ..fhir.util import get_from_bundle

LAST_UPDATED_DESC = "-_lastUpdated"


class FhirRepository:
    """Base class for repositories of a single FHIR resource type."""

    resource_type: str = ""

    def __init__(self, client: FhirClient):
        self.client = client

    def get(self, resource_id: str) -> Dict:
        return self.client.read(self.resource_type, resource_id)

    def find(self, params: SearchParams) -> Dict:
        return self.client.search_all(self.resource_type, params)

    def find_by_ids(self, resource_ids: Iterable[str]) -> List[Dict]:
        ids = sorted(set(i for i in resource_ids if i))
        if not ids:
            return []
        bundle = self.find({"_id": ",".join(ids)})
        return get_from_bundle(bundle, self.resource_type)

    def find_by_patient_and_profile(self, patient_id: str, profile: str) -> Dict:
        return self.find({
            "patient": patient_id,
            "_profile": profile,
            "_sort": LAST_UPDATED_DESC,
        })
