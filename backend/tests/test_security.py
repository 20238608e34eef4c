from datetime import datetime, timedelta

import httpx
import pytest
from fastapi import HTTPException
from starlette.requests import Request

from sdoh_exchange.core import security
from sdoh_exchange.core.config import Settings
from sdoh_exchange.core.exceptions import AuthenticationError, ForbiddenError, InvalidRequestError
from sdoh_exchange.models.launch_context import LaunchContext
from sdoh_exchange.services.smart_auth import SmartAuthClient, apply_token_response, fhir_user


def _request(headers=None) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


def _context(db, **values) -> LaunchContext:
    context = LaunchContext(id="ctx-1", access_token="ehr-token", scope="patient/*.read openid",
                            patient_id="p1", fhir_user="Practitioner/pr1", **values)
    db.add(context)
    db.commit()
    return context


def test_state_token_round_trip():
    token = security.create_state_token("launch-1")
    assert security.verify_state_token(token)["launch"] == "launch-1"


def test_session_token_is_not_a_state_token(db):
    token = security.create_session_token(_context(db))
    with pytest.raises(AuthenticationError):
        security.verify_state_token(token)


def test_current_context_from_bearer_token(db):
    context = _context(db)
    token = security.create_session_token(context)

    found = security.get_current_context(_request({"Authorization": f"Bearer {token}"}), db)
    assert found.id == "ctx-1"
    assert found.scopes == ["patient/*.read", "openid"]


def test_current_context_from_cookie(db):
    token = security.create_session_token(_context(db))
    request = _request({"Cookie": f"SESSION={token}"})
    assert security.get_current_context(request, db).patient_id == "p1"


def test_missing_or_unknown_session_is_unauthorized(db):
    with pytest.raises(HTTPException) as info:
        security.get_current_context(_request(), db)
    assert info.value.status_code == 401

    orphan = security.create_access_token({"sub": "nobody"})
    with pytest.raises(HTTPException):
        security.get_current_context(_request({"Authorization": f"Bearer {orphan}"}), db)


def test_expired_context_without_refresh_token(db):
    token = security.create_session_token(_context(db, expires_at=datetime.utcnow() - timedelta(minutes=1)))
    with pytest.raises(HTTPException) as info:
        security.get_current_context(_request({"Authorization": f"Bearer {token}"}), db)
    assert info.value.detail == "Session expired"


def test_expired_context_is_refreshed(db, monkeypatch):
    class FakeAuth:
        def refresh(self, refresh_token):
            assert refresh_token == "refresh-1"
            return {"access_token": "new-token", "expires_in": 3600}

    monkeypatch.setattr(security, "get_smart_auth_client", FakeAuth)
    context = _context(db, refresh_token="refresh-1", expires_at=datetime.utcnow() - timedelta(minutes=1))
    token = security.create_session_token(context)

    found = security.get_current_context(_request({"Authorization": f"Bearer {token}"}), db)
    assert found.access_token == "new-token"
    assert not found.is_expired()


def test_require_scope_and_patient():
    context = LaunchContext(access_token="t", scope="patient/Condition.read")
    assert security.require_scope("Condition")(context) is context
    with pytest.raises(ForbiddenError):
        security.require_scope("Task", "write")(context)
    with pytest.raises(InvalidRequestError):
        security.require_patient(context)


class TestSmartAuthClient:

    config = Settings(
        OAUTH_CLIENT_ID="client", OAUTH_CLIENT_SECRET="secret",
        OAUTH_AUTHORIZATION_URI="http://auth.test/authorize", OAUTH_TOKEN_URI="http://auth.test/token",
        OAUTH_USER_INFO_URI="http://auth.test/userinfo",
        OAUTH_JWK_SET_URI=None, EHR_FHIR_SERVER_URI="http://ehr.test/fhir",
        OAUTH_SCOPE="launch,openid fhirUser",
    )

    def test_authorization_url(self):
        url = httpx.URL(SmartAuthClient(self.config).authorization_url("http://app/cb", "st", "l-1"))
        assert url.params["response_type"] == "code"
        assert url.params["client_id"] == "client"
        assert url.params["aud"] == "http://ehr.test/fhir"
        assert url.params["scope"] == "launch openid fhirUser"
        assert url.params["launch"] == "l-1"

    def test_exchange_code_uses_basic_auth(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = request.content.decode()
            return httpx.Response(200, json={"access_token": "a", "patient": "p1", "scope": "openid"})

        client = SmartAuthClient(self.config, transport=httpx.MockTransport(handler))
        token = client.exchange_code("code-1", "http://app/cb")
        assert token["patient"] == "p1"
        assert seen["auth"].startswith("Basic ")
        assert "grant_type=authorization_code" in seen["body"]

    def test_token_error_is_authentication_error(self):
        client = SmartAuthClient(self.config, transport=httpx.MockTransport(
            lambda request: httpx.Response(400, json={"error": "invalid_grant"})))
        with pytest.raises(AuthenticationError):
            client.refresh("expired")

    def test_user_info_sends_access_token(self):
        def handler(request):
            assert str(request.url) == "http://auth.test/userinfo"
            assert request.headers["Authorization"] == "Bearer a"
            return httpx.Response(200, json={"sub": "u1", "fhirUser": "Practitioner/pr1"})

        client = SmartAuthClient(self.config, transport=httpx.MockTransport(handler))
        assert fhir_user(client.user_info("a")) == "Practitioner/pr1"

    def test_user_info_errors(self):
        client = SmartAuthClient(self.config, transport=httpx.MockTransport(
            lambda request: httpx.Response(401, json={"error": "invalid_token"})))
        with pytest.raises(AuthenticationError):
            client.user_info("expired")

        unconfigured = SmartAuthClient(self.config.model_copy(update={"OAUTH_USER_INFO_URI": None}))
        assert unconfigured.user_info("a") == {}


def test_fhir_user_claim():
    assert fhir_user({"fhirUser": "http://ehr.test/fhir/Practitioner/pr1"}) == "Practitioner/pr1"
    assert fhir_user({"profile": "Practitioner/pr2"}) == "Practitioner/pr2"
    assert fhir_user({}) is None


def test_apply_token_response():
    now = datetime(2024, 1, 1, 12, 0)
    context = apply_token_response(LaunchContext(), {
        "access_token": "a", "refresh_token": "r", "scope": "openid", "patient": "p1", "expires_in": 300,
    }, now=now)
    assert context.expires_at == now + timedelta(seconds=300)
    assert context.is_expired(now + timedelta(minutes=6))
    assert not context.is_expired(now)
