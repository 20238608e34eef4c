"""
Factories of FhirClient instances for the servers the applications talk to.
"""
from typing import Optional

from ..core.config import settings
from ..fhir.client import FhirClient


def ehr_client(token: Optional[str]) -> FhirClient:
    """Secured EHR endpoint, called on behalf of the logged in user."""
    return FhirClient(settings.EHR_FHIR_SERVER_URI, token=token, timeout=settings.FHIR_TIMEOUT)


def open_ehr_client() -> FhirClient:
    """Open EHR endpoint for background jobs that run without a user."""
    return FhirClient(settings.EHR_OPEN_FHIR_SERVER_URI, timeout=settings.FHIR_TIMEOUT)


def cbro_client(address: str) -> FhirClient:
    """CBRO FHIR server found in Organization.endpoint."""
    return FhirClient(address, timeout=settings.FHIR_TIMEOUT)


def cbro_app_client() -> FhirClient:
    """The FHIR server the CBRO application works against."""
    return FhirClient(settings.CBRO_FHIR_SERVER_URI, token=settings.CBRO_FHIR_TOKEN, timeout=settings.FHIR_TIMEOUT)


def ehr_identifier_system() -> Optional[str]:
    """System of the identifier that links a CBRO Task copy to its EHR Task."""
    uri = settings.EHR_FHIR_SERVER_URI
    return uri.rstrip("/") if uri else None
