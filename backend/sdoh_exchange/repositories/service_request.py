from .base import FhirRepository


class ServiceRequestRepository(FhirRepository):
    resource_type = "ServiceRequest"
