"""
Shared fixtures: an in-memory FHIR server behind httpx.MockTransport and a throwaway
SQLite database for the session store.
"""
import copy
import itertools
import json
from typing import Dict, List, Optional

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sdoh_exchange.fhir.client import FhirClient
from sdoh_exchange.fhir.profiles import (
    CBRO_ORGANIZATION_TYPE,
    CONDITION_PROFILE,
    GOAL_PROFILE,
    SDOHCC_TEMPORARY_CODES,
)
from sdoh_exchange.models.base import Base
from sdoh_exchange.models import audit, launch_context  # noqa: F401

EHR_BASE = "http://ehr.test/fhir"
CBRO_BASE = "http://cbro.test/fhir"

REFERENCE_FIELDS = ("subject", "patient", "for")


def _outcome(status_code: int, message: str) -> httpx.Response:
    return httpx.Response(status_code, json={
        "resourceType": "OperationOutcome",
        "issue": [{"severity": "error", "code": "processing", "diagnostics": message}],
    })


def _ref_id(reference: Optional[Dict]) -> Optional[str]:
    if not reference or "/" not in reference.get("reference", ""):
        return None
    return reference["reference"].rsplit("/", 1)[1]


def _replace_references(node, mapping: Dict[str, str]):
    if isinstance(node, dict):
        for key, value in node.items():
            if key == "reference" and isinstance(value, str) and value in mapping:
                node[key] = mapping[value]
            else:
                _replace_references(value, mapping)
    elif isinstance(node, list):
        for item in node:
            _replace_references(item, mapping)


class FakeFhirServer:
    """Just enough of a FHIR REST server for the searches the repositories run."""

    def __init__(self, base_url: str):
        self.base_url = base_url
        self.resources: Dict[str, Dict[str, Dict]] = {}
        self.transactions: List[Dict] = []
        self.requests: List[httpx.Request] = []
        self.fail_transactions = False
        self._ids = itertools.count(1)
        self._path = httpx.URL(base_url).path.rstrip("/")

    def add(self, resource: Dict) -> Dict:
        stored = copy.deepcopy(resource)
        stored.setdefault("id", str(next(self._ids)))
        stored.setdefault("meta", {})
        stored["meta"]["versionId"] = str(int(self.version(stored["resourceType"], stored["id"]) or 0) + 1)
        stored["meta"]["lastUpdated"] = "2026-10-01T12:00:00+00:00"
        self.resources.setdefault(stored["resourceType"], {})[stored["id"]] = stored
        return stored

    def get(self, resource_type: str, resource_id: str) -> Dict:
        return self.resources[resource_type][resource_id]

    def version(self, resource_type: str, resource_id: str) -> Optional[str]:
        stored = self.resources.get(resource_type, {}).get(resource_id)
        return stored["meta"]["versionId"] if stored else None

    def all(self, resource_type: str) -> List[Dict]:
        return list(self.resources.get(resource_type, {}).values())

    def client(self, token: Optional[str] = None) -> FhirClient:
        return FhirClient(self.base_url, token=token, transport=httpx.MockTransport(self.handle))

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len(self._path):].strip("/")
        parts = path.split("/") if path else []
        if request.method == "POST" and not parts:
            return self._transaction(json.loads(request.content))
        if request.method == "GET" and len(parts) == 1:
            return httpx.Response(200, json=self._search(parts[0], request.url.params))
        if request.method == "GET" and len(parts) == 2:
            resource = self.resources.get(parts[0], {}).get(parts[1])
            if resource is None:
                return _outcome(404, f"{parts[0]}/{parts[1]} is not known")
            return httpx.Response(200, json=resource)
        if request.method == "POST" and len(parts) == 1:
            return httpx.Response(201, json=self.add(json.loads(request.content)))
        if request.method == "PUT" and len(parts) == 2:
            return httpx.Response(200, json=self.add(json.loads(request.content)))
        return _outcome(400, f"Unsupported request {request.method} {path}")

    def _matches(self, resource: Dict, name: str, value: str) -> bool:
        if name == "_id":
            return resource["id"] in value.split(",")
        if name in ("patient", "subject", "for"):
            return any(_ref_id(resource.get(f)) == value for f in REFERENCE_FIELDS)
        if name == "status":
            return resource.get("status") in value.split(",")
        if name == "_profile":
            return value in resource.get("meta", {}).get("profile", [])
        if name == "identifier":
            system, _, code = value.partition("|")
            return any(i.get("system") == system and i.get("value") == code
                       for i in resource.get("identifier", []))
        if name == "type":
            system, _, code = value.partition("|")
            return any(c.get("system") == system and c.get("code") == code
                       for t in resource.get("type", []) for c in t.get("coding", []))
        return True

    def _search(self, resource_type: str, params: httpx.QueryParams) -> Dict:
        found = [
            r for r in self.all(resource_type)
            if all(self._matches(r, name, value) for name, value in params.multi_items()
                   if name not in ("_sort", "_include"))
        ]
        sort = params.get("_sort")
        if sort == "-_lastUpdated":
            found.reverse()
        elif sort == "name":
            found.sort(key=lambda r: r.get("name", ""))

        entries = [{"fullUrl": f"{self.base_url}/{resource_type}/{r['id']}",
                    "resource": r, "search": {"mode": "match"}} for r in found]
        included = set()
        for include in params.get_list("_include"):
            field = include.split(":", 1)[1]
            for r in found:
                target = r.get(field, {}).get("reference", "")
                if "/" not in target or target in included:
                    continue
                target_type, target_id = target.rsplit("/", 1)
                resource = self.resources.get(target_type, {}).get(target_id)
                if resource is not None:
                    included.add(target)
                    entries.append({"resource": resource, "search": {"mode": "include"}})
        return {"resourceType": "Bundle", "type": "searchset", "total": len(found), "entry": entries}

    def _transaction(self, bundle: Dict) -> httpx.Response:
        self.transactions.append(bundle)
        if self.fail_transactions:
            return _outcome(500, "Transaction rejected")

        mapping = {}
        pending = []
        for entry in bundle.get("entry", []):
            resource = copy.deepcopy(entry["resource"])
            method = entry["request"]["method"]
            if method == "POST":
                resource["id"] = str(next(self._ids))
            else:
                resource["id"] = entry["request"]["url"].split("/", 1)[1]
                if_match = entry["request"].get("ifMatch")
                current = self.version(resource["resourceType"], resource["id"])
                if if_match and if_match != f'W/"{current}"':
                    return _outcome(412, f"{entry['request']['url']} is at version {current}, not {if_match}")
            if entry.get("fullUrl"):
                mapping[entry["fullUrl"]] = f"{resource['resourceType']}/{resource['id']}"
            pending.append((method, resource))

        response_entries = []
        for method, resource in pending:
            _replace_references(resource, mapping)
            stored = self.add(resource)
            response_entries.append({"response": {
                "status": "201 Created" if method == "POST" else "200 OK",
                "location": f"{stored['resourceType']}/{stored['id']}/_history/{stored['meta']['versionId']}",
            }})
        return httpx.Response(200, json={
            "resourceType": "Bundle", "type": "transaction-response", "entry": response_entries,
        })


def seed_ehr(server: FakeFhirServer) -> None:
    """Patient p1 with SDOH conditions, goals and consents, and the organizations of the area."""
    server.add({"resourceType": "Patient", "id": "p1",
                "name": [{"use": "official", "given": ["Amy"], "family": "Shaw"}]})
    server.add({"resourceType": "Practitioner", "id": "pr1",
                "name": [{"given": ["Ronald"], "family": "Bone"}]})
    server.add({"resourceType": "Endpoint", "id": "ep1", "status": "active", "address": CBRO_BASE})
    server.add({
        "resourceType": "Organization", "id": "cbro-1", "name": "Downtown Food Pantry",
        "type": [{"coding": [{"system": SDOHCC_TEMPORARY_CODES, "code": CBRO_ORGANIZATION_TYPE}]}],
        "endpoint": [{"reference": "Endpoint/ep1"}],
    })
    server.add({
        "resourceType": "Organization", "id": "cbro-2", "name": "Arbor Housing",
        "type": [{"coding": [{"system": SDOHCC_TEMPORARY_CODES, "code": CBRO_ORGANIZATION_TYPE}]}],
    })
    server.add({
        "resourceType": "Organization", "id": "hospital", "name": "General Hospital",
        "type": [{"coding": [{"system": "http://terminology.hl7.org/CodeSystem/organization-type",
                              "code": "prov"}]}],
    })
    server.add({
        "resourceType": "Condition", "id": "c1", "meta": {"profile": [CONDITION_PROFILE]},
        "subject": {"reference": "Patient/p1"},
        "clinicalStatus": {"coding": [{"code": "active"}]},
        "code": {"text": "Food insecurity"},
    })
    server.add({
        "resourceType": "Condition", "id": "c2", "meta": {"profile": [CONDITION_PROFILE]},
        "subject": {"reference": "Patient/p1"},
        "clinicalStatus": {"coding": [{"code": "resolved"}]},
        "code": {"coding": [{"display": "Homelessness"}]},
    })
    server.add({
        "resourceType": "Goal", "id": "g1", "meta": {"profile": [GOAL_PROFILE]},
        "subject": {"reference": "Patient/p1"}, "lifecycleStatus": "active",
        "description": {"text": "Food security"},
    })
    server.add({
        "resourceType": "Goal", "id": "g2", "meta": {"profile": [GOAL_PROFILE]},
        "subject": {"reference": "Patient/p1"}, "lifecycleStatus": "completed",
        "description": {"text": "Stable housing"},
    })
    server.add({
        "resourceType": "Consent", "id": "cs1", "status": "active",
        "patient": {"reference": "Patient/p1"},
        "sourceAttachment": {"title": "Consent to share information"},
    })
    server.add({
        "resourceType": "Consent", "id": "cs2", "status": "inactive",
        "patient": {"reference": "Patient/p1"},
        "category": [{"text": "Old consent"}],
    })


@pytest.fixture
def ehr_server() -> FakeFhirServer:
    server = FakeFhirServer(EHR_BASE)
    seed_ehr(server)
    return server


@pytest.fixture
def cbro_server() -> FakeFhirServer:
    return FakeFhirServer(CBRO_BASE)


@pytest.fixture
def cbro_factory(cbro_server):
    """cbro_client_factory that answers for the seeded Endpoint address only."""
    def factory(address: str) -> FhirClient:
        assert address == CBRO_BASE
        return cbro_server.client()
    return factory


@pytest.fixture
def db_session_factory():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(db_session_factory):
    session = db_session_factory()
    try:
        yield session
    finally:
        session.close()
