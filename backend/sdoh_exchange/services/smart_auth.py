"""
SMART-on-FHIR OAuth2 client (authorization code grant).
Builds the authorize redirect, exchanges and refreshes tokens, validates the id_token.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import AuthenticationError
from ..fhir.util import parse_reference
from ..models.launch_context import LaunchContext

logger = logging.getLogger(__name__)

ID_TOKEN_ALGORITHMS = ["RS256", "RS384", "RS512", "ES256", "ES384"]


class SmartAuthClient:

    def __init__(self, config: Settings = None, transport: Optional[httpx.BaseTransport] = None):
        self.config = config or default_settings
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.config.FHIR_TIMEOUT, transport=self._transport)

    def authorization_url(self, redirect_uri: str, state: str, launch: Optional[str] = None) -> str:
        params = {
            "response_type": "code",
            "client_id": self.config.OAUTH_CLIENT_ID,
            "redirect_uri": redirect_uri,
            "scope": " ".join(self.config.OAUTH_SCOPE.replace(",", " ").split()),
            "state": state,
        }
        # 'aud' is required by SMART servers for a standalone launch
        if self.config.EHR_FHIR_SERVER_URI:
            params["aud"] = self.config.EHR_FHIR_SERVER_URI
        if launch:
            params["launch"] = launch
        base = self.config.OAUTH_AUTHORIZATION_URI
        return f"{base}{'&' if '?' in base else '?'}{urlencode(params)}"

    def _token_request(self, data: Dict) -> Dict:
        try:
            with self._client() as client:
                resp = client.post(
                    self.config.OAUTH_TOKEN_URI,
                    data=data,
                    auth=(self.config.OAUTH_CLIENT_ID or "", self.config.OAUTH_CLIENT_SECRET or ""),
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            raise AuthenticationError(f"Token endpoint unavailable: {exc}") from exc
        if resp.is_error:
            logger.warning("Token request failed: HTTP %s %s", resp.status_code, resp.text[:300])
            raise AuthenticationError(f"Token request failed with HTTP {resp.status_code}")
        payload = resp.json()
        if not payload.get("access_token"):
            raise AuthenticationError("Token response has no access_token")
        return payload

    def exchange_code(self, code: str, redirect_uri: str) -> Dict:
        return self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        })

    def refresh(self, refresh_token: str) -> Dict:
        return self._token_request({"grant_type": "refresh_token", "refresh_token": refresh_token})

    def id_token_claims(self, id_token: str, access_token: Optional[str] = None) -> Dict:
        """Claims of the id_token, verified against the JWK set when one is configured."""
        if not self.config.OAUTH_JWK_SET_URI:
            logger.warning("OAUTH_JWK_SET_URI is not set, id_token signature is not verified")
            try:
                return jwt.get_unverified_claims(id_token)
            except JWTError as exc:
                raise AuthenticationError("Malformed id_token") from exc
        try:
            with self._client() as client:
                resp = client.get(self.config.OAUTH_JWK_SET_URI)
                resp.raise_for_status()
                jwks = resp.json()
        except httpx.HTTPError as exc:
            raise AuthenticationError(f"JWK set unavailable: {exc}") from exc
        try:
            return jwt.decode(
                id_token,
                jwks,
                algorithms=ID_TOKEN_ALGORITHMS,
                audience=self.config.OAUTH_CLIENT_ID,
                access_token=access_token,
                options={"verify_at_hash": False},
            )
        except JWTError as exc:
            raise AuthenticationError(f"Invalid id_token: {exc}") from exc

    def user_info(self, access_token: str) -> Dict:
        """Claims of the signed-in user from the user-info endpoint, {} when none is configured."""
        if not self.config.OAUTH_USER_INFO_URI:
            return {}
        try:
            with self._client() as client:
                resp = client.get(
                    self.config.OAUTH_USER_INFO_URI,
                    headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            raise AuthenticationError(f"User info endpoint unavailable: {exc}") from exc
        if resp.is_error:
            logger.warning("User info request failed: HTTP %s %s", resp.status_code, resp.text[:300])
            raise AuthenticationError(f"User info request failed with HTTP {resp.status_code}")
        return resp.json()


def fhir_user(claims: Dict) -> Optional[str]:
    """'Type/id' of the fhirUser claim (SMART v1 servers send 'profile')."""
    value = claims.get("fhirUser") or claims.get("profile")
    resource_type, resource_id = parse_reference(value)
    if not resource_type:
        return None
    return f"{resource_type}/{resource_id}"


def apply_token_response(context: LaunchContext, token: Dict, now: datetime = None) -> LaunchContext:
    """Copy a token endpoint response onto a LaunchContext."""
    now = now or datetime.utcnow()
    context.access_token = token["access_token"]
    context.token_type = token.get("token_type", "Bearer")
    if token.get("refresh_token"):
        context.refresh_token = token["refresh_token"]
    if token.get("id_token"):
        context.id_token = token["id_token"]
    if token.get("scope"):
        context.scope = token["scope"]
    if token.get("patient"):
        context.patient_id = token["patient"]
    expires_in = token.get("expires_in")
    context.expires_at = now + timedelta(seconds=int(expires_in)) if expires_in else None
    return context


def get_smart_auth_client() -> SmartAuthClient:
    return SmartAuthClient()
