"""
Helpers for FHIR R4 resources handled as FHIR JSON (plain dicts).
"""
import re
import uuid
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple

from fhirpathpy import evaluate as fhirpath

_PARTIAL_DATE = re.compile(r"^(\d{4})(?:-(\d{2}))?(?:-(\d{2}))?$")


def new_urn() -> str:
    """Temporary id used to reference a resource that is created in the same transaction."""
    return f"urn:uuid:{uuid.uuid4()}"


def to_reference(resource_type: str, resource_id: str, display: Optional[str] = None) -> Dict:
    """Compose a Reference out of a resource type and id."""
    reference = {"reference": f"{resource_type}/{resource_id}"}
    if display:
        reference["display"] = display
    return reference


def parse_reference(value: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Split a literal reference into (resource type, id).
    Relative ("Task/1"), absolute ("http://server/fhir/Task/1") and versioned
    ("Task/1/_history/2") forms are accepted. Contained and urn references yield (None, None).
    """
    if not value or value.startswith("#") or value.startswith("urn:"):
        return None, None
    parts = [p for p in value.split("/") if p]
    if "_history" in parts:
        parts = parts[:parts.index("_history")]
    if len(parts) < 2:
        return None, None
    return parts[-2], parts[-1]


def id_part(value: Optional[str]) -> Optional[str]:
    """Bare id of a resource id or reference value."""
    if not value:
        return None
    if "/" not in value:
        return value
    return parse_reference(value)[1]


def reference_id(reference: Optional[Dict]) -> Optional[str]:
    if not reference:
        return None
    return parse_reference(reference.get("reference"))[1]


def to_local_date(value: Optional[str]) -> Optional[date]:
    """Convert a FHIR date (or dateTime) to a date in the system timezone."""
    if not value:
        return None
    match = _PARTIAL_DATE.match(value)
    if match:
        year, month, day = match.groups()
        return date(int(year), int(month or 1), int(day or 1))
    return to_local_datetime(value).date()


def to_local_datetime(value: Optional[str]) -> Optional[datetime]:
    """Convert a FHIR dateTime to a naive datetime in the system timezone."""
    if not value:
        return None
    if _PARTIAL_DATE.match(value):
        day = to_local_date(value)
        return datetime(day.year, day.month, day.day)
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    # any number of fraction digits parses from Python 3.11 on
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def to_fhir_datetime(value: datetime) -> str:
    """Serialize a datetime as FHIR dateTime. Naive values are taken as system local time."""
    if value.tzinfo is None:
        value = value.astimezone()
    return value.isoformat(timespec="seconds")


def find_coding(codes: Iterable[Dict], system: str) -> Optional[Dict]:
    """
    Find the first Coding with the given system among a list of CodeableConcepts.
    Useful when looking for a specific code inside a FHIR resource.
    """
    for concept in codes or []:
        for coding in concept.get("coding", []):
            if coding.get("system") == system:
                return coding
    return None


def first_coding(concept: Optional[Dict]) -> Dict:
    codings = (concept or {}).get("coding") or []
    return codings[0] if codings else {}


def concept_text(concept: Optional[Dict]) -> Optional[str]:
    """Human readable text of a CodeableConcept: its text, else the first coding display."""
    if not concept:
        return None
    return concept.get("text") or first_coding(concept).get("display")


def get_from_bundle(bundle: Dict, resource_type: str) -> List[Dict]:
    """All resources of a specific type from Bundle.entry.resource."""
    if not bundle or not bundle.get("entry"):
        return []
    resources = fhirpath(bundle, "Bundle.entry.resource")
    return [r for r in resources if r.get("resourceType") == resource_type]


def get_from_response_bundle(bundle: Dict, resource_type: str) -> Optional[str]:
    """
    Id of the first resource of a type created/updated by a transaction, taken from
    Bundle.entry.response.location. None when no such entry exists.
    """
    for entry in (bundle or {}).get("entry", []):
        location = entry.get("response", {}).get("location")
        found_type, found_id = parse_reference(location)
        if found_type == resource_type:
            return found_id
    return None


def transaction_bundle(entries: List[Dict]) -> Dict:
    return {"resourceType": "Bundle", "type": "transaction", "entry": entries}


def create_put_entry(resource: Dict) -> Dict:
    """
    Transaction entry that updates (or creates with a client id) a resource.
    A urn: id only names the resource inside one Bundle, so it cannot be PUT; use a POST entry.
    """
    if resource["id"].startswith("urn:"):
        raise ValueError(f"{resource['resourceType']} '{resource['id']}' has no server id to PUT to")
    resource_type = resource["resourceType"]
    resource_id = id_part(resource["id"])
    body = dict(resource, id=resource_id)
    entry = {
        "resource": body,
        "request": {"method": "PUT", "url": f"{resource_type}/{resource_id}"},
    }
    if "://" in resource["id"]:
        entry["fullUrl"] = resource["id"]
    return entry


def create_post_entry(resource: Dict) -> Dict:
    """
    Transaction entry that creates a resource. If the resource carries an id it becomes the
    entry fullUrl so other entries of the same Bundle can reference this instance.
    """
    body = {k: v for k, v in resource.items() if k != "id"}
    entry = {
        "resource": body,
        "request": {"method": "POST", "url": resource["resourceType"]},
    }
    if resource.get("id"):
        entry["fullUrl"] = resource["id"]
    return entry


def get_all_references(resource: Dict) -> List[Dict]:
    """Every Reference found in any field of the resource, at any depth."""
    return fhirpath(resource, "descendants().where(reference.exists())")


def get_references(resource: Dict, resource_types: Iterable[str]) -> Dict[str, List[Dict]]:
    """References of the resource pointing to the given resource types, grouped by type."""
    wanted = set(resource_types)
    grouped: Dict[str, List[Dict]] = {}
    for reference in get_all_references(resource):
        target_type, _ = parse_reference(reference.get("reference"))
        if target_type in wanted:
            grouped.setdefault(target_type, []).append(reference)
    return grouped


def get_references_of_type(resource: Dict, resource_type: str) -> List[Dict]:
    return get_references(resource, [resource_type]).get(resource_type, [])


def strip_meta(resource: Dict) -> Dict:
    """Copy of a resource without server-assigned version information."""
    copy = dict(resource)
    meta = {k: v for k, v in copy.get("meta", {}).items() if k not in ("versionId", "lastUpdated", "source")}
    if meta:
        copy["meta"] = meta
    else:
        copy.pop("meta", None)
    return copy
