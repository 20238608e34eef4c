"""
Audit trail of patient data access.
Every request to the task, support and context endpoints is recorded with the fhirUser
and patient of the session that made it.
"""
import logging
from typing import Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..models.audit import AuditLog
from ..models.base import SessionLocal, generate_uuid
from .security import decode_access_token, token_from_request

logger = logging.getLogger(__name__)

AUDITED_PATH_PREFIXES = (
    "/task",
    "/support",
    "/current-context",
)

ACTIONS = {
    "GET": "view",
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}


def _session_identity(request: Request) -> Tuple[str, Optional[str]]:
    """(fhirUser, patient) of the session token, or ("anonymous", None)."""
    token = token_from_request(request)
    claims = decode_access_token(token) if token else None
    if not claims:
        return "anonymous", None
    return claims.get("fhirUser") or claims.get("sub") or "anonymous", claims.get("patient")


def build_audit_entry(request: Request, response: Response) -> Optional[AuditLog]:
    path = request.url.path
    action = ACTIONS.get(request.method)
    if action is None or not path.startswith(AUDITED_PATH_PREFIXES):
        return None

    user_id, patient_id = _session_identity(request)
    # /task/42 -> ("task", "42"); /support/goals -> ("support", "goals")
    segments = path.strip("/").split("/")
    return AuditLog(
        id=generate_uuid(),
        user_id=user_id,
        patient_id=patient_id,
        action=action,
        resource_type=segments[0],
        resource_id=segments[1] if len(segments) > 1 else "-",
        ip_address=request.client.host if request.client else None,
        request_method=request.method,
        request_path=path,
        status_code=response.status_code,
    )


class AuditMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        entry = build_audit_entry(request, response)
        if entry is None:
            return response

        db = SessionLocal()
        try:
            db.add(entry)
            db.commit()
        except Exception as exc:
            logger.warning("Audit log write failed for %s %s (user=%s): %s",
                           request.method, request.url.path, entry.user_id, exc)
        finally:
            db.close()
        return response
