"""SMART-on-FHIR login: EHR launch / standalone launch, OAuth2 callback and logout."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import AuthenticationError, InvalidRequestError
from ..core.openapi import AUTH_API_TAG
from ..core.security import (
    create_session_token,
    create_state_token,
    get_current_context,
    verify_state_token,
)
from ..models.base import generate_uuid, get_db
from ..models.launch_context import LaunchContext
from ..services.smart_auth import (
    SmartAuthClient,
    apply_token_response,
    fhir_user,
    get_smart_auth_client,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=[AUTH_API_TAG])


def _redirect_uri(request: Request) -> str:
    return settings.OAUTH_REDIRECT_URI or str(request.url_for("oauth2_callback"))


@router.get("/oauth2/authorization/ehr-client")
def authorize(
    request: Request,
    launch: Optional[str] = None,
    iss: Optional[str] = None,
    auth: SmartAuthClient = Depends(get_smart_auth_client),
):
    """Start the authorization code flow. The EHR passes 'launch' and 'iss' on an EHR launch."""
    if iss and settings.EHR_FHIR_SERVER_URI and iss.rstrip("/") != settings.EHR_FHIR_SERVER_URI.rstrip("/"):
        raise InvalidRequestError(f"Unknown FHIR server '{iss}'")
    state = create_state_token(launch)
    return RedirectResponse(
        auth.authorization_url(_redirect_uri(request), state, launch),
        status_code=status.HTTP_302_FOUND,
    )


@router.get("/login/oauth2/code/ehr-client", name="oauth2_callback")
def oauth2_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    db: Session = Depends(get_db),
    auth: SmartAuthClient = Depends(get_smart_auth_client),
):
    if error:
        raise AuthenticationError(f"Authorization failed: {error_description or error}")
    if not code or not state:
        raise InvalidRequestError("Both 'code' and 'state' are required")
    verify_state_token(state)

    token = auth.exchange_code(code, _redirect_uri(request))
    claims = auth.id_token_claims(token["id_token"], token["access_token"]) if token.get("id_token") else {}
    if not fhir_user(claims):
        claims = auth.user_info(token["access_token"])

    context = LaunchContext(id=generate_uuid(), fhir_user=fhir_user(claims))
    apply_token_response(context, token)
    db.add(context)
    db.commit()
    logger.info("User %s logged in, patient in context: %s", context.fhir_user, context.patient_id)

    response = RedirectResponse("/", status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        create_session_token(context),
        max_age=settings.SESSION_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite="lax",
    )
    return response


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    context: LaunchContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    db.delete(context)
    db.commit()
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return response
