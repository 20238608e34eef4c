"""
SMART-on-FHIR scope checks.
Scopes look like 'patient/Condition.read', 'user/*.*' or, in SMART v2, 'patient/Task.cruds'.
"""
from typing import Iterable, Optional, Tuple

READ = "read"
WRITE = "write"

SCOPE_CONTEXTS = ("patient", "user", "system")

# SMART v2 permission letters granting each kind of access
_V2_LETTERS = {
    READ: set("rs"),
    WRITE: set("cud"),
}


def parse_scope(scope: str) -> Optional[Tuple[str, str, str]]:
    """(context, resource type, permission) of a resource scope, None for other scopes (openid, launch...)."""
    if "/" not in scope:
        return None
    context, rest = scope.split("/", 1)
    if context not in SCOPE_CONTEXTS or "." not in rest:
        return None
    resource_type, _, permission = rest.rpartition(".")
    return context, resource_type, permission


def _grants(permission: str, access: str) -> bool:
    if permission in ("*", access):
        return True
    letters = set(permission)
    return bool(letters) and letters <= set("cruds") and bool(letters & _V2_LETTERS[access])


def has_scope(granted: Iterable[str], resource_type: str, access: str = READ) -> bool:
    """Check if any granted scope allows the access to the resource type."""
    for scope in granted:
        parsed = parse_scope(scope)
        if parsed is None:
            continue
        _, scope_resource, permission = parsed
        if scope_resource in ("*", resource_type) and _grants(permission, access):
            return True
    return False
