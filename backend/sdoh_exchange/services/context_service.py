from typing import Dict, List, Optional

from ..fhir.client import FhirClient
from ..fhir.util import parse_reference
from ..models.launch_context import LaunchContext
from ..schemas.response import ContextResponse


def format_name(names: List[Dict]) -> Optional[str]:
    """'Given Family' of the official HumanName, else of the first one."""
    if not names:
        return None
    name = next((n for n in names if n.get("use") == "official"), names[0])
    if name.get("text"):
        return name["text"]
    parts = list(name.get("given", []))
    if name.get("family"):
        parts.append(name["family"])
    return " ".join(parts) or None


def get_context(client: FhirClient, context: LaunchContext) -> ContextResponse:
    """Names of the patient in context and of the logged in user."""
    response = ContextResponse(patient_id=context.patient_id)
    if context.patient_id:
        patient = client.read("Patient", context.patient_id)
        response.patient_name = format_name(patient.get("name", []))

    user_type, user_id = parse_reference(context.fhir_user)
    if user_type:
        response.user_id = user_id
        user = client.read(user_type, user_id)
        response.user_name = format_name(user.get("name", []))
    return response
