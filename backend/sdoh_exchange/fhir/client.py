"""
Generic HL7 FHIR R4 REST client.
Reads, searches, creates, updates and submits transaction Bundles against one FHIR server base URL.
"""
import logging
from typing import Any, Dict, List, Optional, Union

import httpx

logger = logging.getLogger(__name__)

FHIR_JSON = "application/fhir+json"

SearchParams = Dict[str, Union[str, List[str]]]


class FhirClientError(Exception):
    """Raised when a FHIR server cannot be reached or answers with an error status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"HTTP {status_code}: {message}" if status_code else message)
        self.status_code = status_code
        self.message = message


class ResourceNotFoundError(FhirClientError):
    pass


class VersionConflictError(FhirClientError):
    """The server refused a write because the resource changed since it was read (409/412)."""


def _outcome_message(response: httpx.Response) -> str:
    """Diagnostics of an OperationOutcome body, else the raw text."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict) and body.get("resourceType") == "OperationOutcome":
        issues = body.get("issue", [])
        messages = [i.get("diagnostics") or i.get("details", {}).get("text", "") for i in issues]
        return "; ".join(m for m in messages if m) or "OperationOutcome without diagnostics"
    return response.text[:500]


class FhirClient:
    """
    Thin FHIR REST client built on httpx.

    Usage:
        with FhirClient("https://fhir.example.com/r4", token=access_token) as client:
            bundle = client.search("Condition", {"patient": "123"})
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not base_url:
            raise ValueError("FHIR server base URL is not configured")
        self.base_url = base_url.rstrip("/")
        headers = {"Accept": FHIR_JSON}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._http = httpx.Client(
            base_url=self.base_url, headers=headers, timeout=timeout, transport=transport,
        )

    def __enter__(self) -> "FhirClient":
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def _request(self, method: str, url: str, **kwargs) -> Dict:
        logger.debug("FHIR %s %s%s", method, self.base_url, url if url.startswith("/") else f"/{url}")
        try:
            response = self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise FhirClientError(0, f"{method} {url} failed: {exc}") from exc
        if response.status_code in (404, 410):
            raise ResourceNotFoundError(response.status_code, _outcome_message(response))
        if response.status_code in (409, 412):
            raise VersionConflictError(response.status_code, _outcome_message(response))
        if response.is_error:
            raise FhirClientError(response.status_code, _outcome_message(response))
        if not response.content:
            return {}
        return response.json()

    def read(self, resource_type: str, resource_id: str) -> Dict:
        return self._request("GET", f"/{resource_type}/{resource_id}")

    def search(self, resource_type: str, params: Optional[SearchParams] = None) -> Dict:
        """Run a search and return the first page Bundle."""
        return self._request("GET", f"/{resource_type}", params=params or {})

    def search_all(self, resource_type: str, params: Optional[SearchParams] = None) -> Dict:
        """Run a search and merge all result pages into a single searchset Bundle."""
        bundle = self.search(resource_type, params)
        entries = list(bundle.get("entry", []))
        next_url = _next_link(bundle)
        while next_url:
            page = self._request("GET", next_url)
            entries.extend(page.get("entry", []))
            next_url = _next_link(page)
        merged = {k: v for k, v in bundle.items() if k != "link"}
        merged["entry"] = entries
        return merged

    def create(self, resource: Dict) -> Dict:
        return self._request(
            "POST", f"/{resource['resourceType']}",
            json=resource, headers={"Content-Type": FHIR_JSON, "Prefer": "return=representation"},
        )

    def update(self, resource: Dict) -> Dict:
        return self._request(
            "PUT", f"/{resource['resourceType']}/{resource['id']}",
            json=resource, headers={"Content-Type": FHIR_JSON, "Prefer": "return=representation"},
        )

    def transaction(self, bundle: Dict) -> Dict:
        """Submit a transaction Bundle and return the transaction-response Bundle."""
        logger.debug("Submitting transaction with %d entries", len(bundle.get("entry", [])))
        return self._request("POST", "", json=bundle, headers={"Content-Type": FHIR_JSON})


def _next_link(bundle: Dict) -> Optional[str]:
    for link in bundle.get("link", []):
        if link.get("relation") == "next":
            return link.get("url")
    return None
