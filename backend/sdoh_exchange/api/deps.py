"""Request-scoped dependencies: FHIR clients and the services built on them."""
from fastapi import Depends

from ..core.config import settings
from ..core.exceptions import ConfigurationError
from ..core.security import get_current_context
from ..models.launch_context import LaunchContext
from ..services.cbro_task_service import CbroTaskService
from ..services.fhir_clients import cbro_app_client, ehr_client, ehr_identifier_system
from ..services.support_service import SupportService
from ..services.task_poller import TaskPoller
from ..services.task_service import TaskService


def get_ehr_client(context: LaunchContext = Depends(get_current_context)):
    if not settings.EHR_FHIR_SERVER_URI:
        raise ConfigurationError("EHR_FHIR_SERVER_URI is not configured")
    client = ehr_client(context.access_token)
    try:
        yield client
    finally:
        client.close()


def get_task_service(client=Depends(get_ehr_client)) -> TaskService:
    return TaskService(client, identifier_system=ehr_identifier_system())


def get_support_service(client=Depends(get_ehr_client)) -> SupportService:
    return SupportService(client)


def get_task_poller() -> TaskPoller:
    if not settings.EHR_OPEN_FHIR_SERVER_URI:
        raise ConfigurationError("EHR_OPEN_FHIR_SERVER_URI is not configured, task polling is unavailable")
    return TaskPoller()


def get_cbro_client():
    if not settings.CBRO_FHIR_SERVER_URI:
        raise ConfigurationError("CBRO_FHIR_SERVER_URI is not configured")
    client = cbro_app_client()
    try:
        yield client
    finally:
        client.close()


def get_cbro_task_service(client=Depends(get_cbro_client)) -> CbroTaskService:
    return CbroTaskService(client)
