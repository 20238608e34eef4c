"""
Application session and OAuth2 state tokens, and the FastAPI dependencies that resolve
the SMART launch context of the current request.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from ..models.base import get_db
from ..models.launch_context import LaunchContext
from ..services.smart_auth import apply_token_response, get_smart_auth_client
from .config import settings
from .exceptions import AuthenticationError, ForbiddenError, InvalidRequestError
from .permissions import READ, has_scope

logger = logging.getLogger(__name__)

TOKEN_TYPE_SESSION = "session"
TOKEN_TYPE_STATE = "state"


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None,
                        token_type: str = TOKEN_TYPE_SESSION) -> str:
    payload = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.SESSION_EXPIRE_MINUTES))
    payload.update({"exp": expire, "type": token_type})
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def create_state_token(launch: Optional[str] = None) -> str:
    """Signed, short lived OAuth2 'state' parameter carrying the EHR launch id."""
    data = {"nonce": uuid.uuid4().hex}
    if launch:
        data["launch"] = launch
    return create_access_token(
        data, timedelta(minutes=settings.STATE_EXPIRE_MINUTES), token_type=TOKEN_TYPE_STATE,
    )


def verify_state_token(token: str) -> dict:
    payload = decode_access_token(token)
    if payload is None or payload.get("type") != TOKEN_TYPE_STATE:
        raise AuthenticationError("Invalid or expired OAuth2 state")
    return payload


def create_session_token(context: LaunchContext) -> str:
    return create_access_token({
        "sub": context.id,
        "fhirUser": context.fhir_user,
        "patient": context.patient_id,
    })


def token_from_request(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _refresh(context: LaunchContext, db: Session) -> None:
    if not context.refresh_token:
        raise _unauthorized("Session expired")
    try:
        token = get_smart_auth_client().refresh(context.refresh_token)
    except AuthenticationError as exc:
        logger.info("Refreshing the access token of context %s failed: %s", context.id, exc.detail)
        raise _unauthorized("Session expired")
    apply_token_response(context, token)
    db.commit()
    logger.debug("Refreshed the access token of context %s", context.id)


def get_current_context(request: Request, db: Session = Depends(get_db)) -> LaunchContext:
    """The SMART launch context of the logged in user."""
    token = token_from_request(request)
    if not token:
        raise _unauthorized("Not authenticated")
    payload = decode_access_token(token)
    if payload is None or payload.get("type") != TOKEN_TYPE_SESSION:
        raise _unauthorized("Invalid or expired session")
    context = db.query(LaunchContext).filter(LaunchContext.id == payload.get("sub")).first()
    if context is None:
        raise _unauthorized("Session not found")
    if context.is_expired():
        _refresh(context, db)
    return context


def require_scope(resource_type: str, access: str = READ):
    """Dependency factory: the launch context must hold a scope granting the access."""
    def checker(context: LaunchContext = Depends(get_current_context)) -> LaunchContext:
        if not has_scope(context.scopes, resource_type, access):
            raise ForbiddenError(f"Scope for {access} access to {resource_type} was not granted")
        return context
    return checker


def require_patient(context: LaunchContext) -> str:
    if not context.patient_id:
        raise InvalidRequestError("No patient in context")
    return context.patient_id
