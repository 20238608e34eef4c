import logging
from typing import Dict, List, Optional

from ..fhir.profiles import CBRO_ORGANIZATION_TYPE, SDOHCC_TEMPORARY_CODES
from ..fhir.util import find_coding, get_from_bundle, parse_reference
from .base import FhirRepository

logger = logging.getLogger(__name__)


def is_cbro(organization: Dict) -> bool:
    coding = find_coding(organization.get("type", []), SDOHCC_TEMPORARY_CODES)
    return coding is not None and coding.get("code") == CBRO_ORGANIZATION_TYPE


class OrganizationRepository(FhirRepository):
    resource_type = "Organization"

    def find_cbro_organizations(self) -> List[Dict]:
        bundle = self.find({
            "type": f"{SDOHCC_TEMPORARY_CODES}|{CBRO_ORGANIZATION_TYPE}",
            "_sort": "name",
        })
        return get_from_bundle(bundle, self.resource_type)

    def find_endpoint_address(self, organization: Dict) -> Optional[str]:
        """Base URL of the FHIR server listed in Organization.endpoint, if any."""
        for reference in organization.get("endpoint", []):
            resource_type, endpoint_id = parse_reference(reference.get("reference"))
            if resource_type != "Endpoint":
                continue
            endpoint = self.client.read("Endpoint", endpoint_id)
            if endpoint.get("address"):
                return endpoint["address"]
        logger.debug("Organization/%s has no endpoint with an address", organization.get("id"))
        return None
