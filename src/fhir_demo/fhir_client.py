"""Async HTTP client for a FHIR R4 REST server.

This module provides the FhirClient class, which handles:
1. Binding to one server base URL (picked from FhirServer or given directly)
2. Content negotiation (JSON) and the Prefer header for writes
3. The RESTful interactions the demo needs: search, continue (next page),
   create, read, update and delete
4. Turning HTTP failures into FhirAPIError

Concept - FHIR RESTful interactions:
    Every resource type lives under its own path on the server:
    - GET    [base]/Patient?name=Smith   search, returns a Bundle
    - POST   [base]/Patient              create, server assigns the id
    - GET    [base]/Patient/123          read
    - PUT    [base]/Patient/123          update (full replacement)
    - DELETE [base]/Patient/123          delete

    Search results come back in pages. Each Bundle carries a "next" link
    when more results are available; following it returns the next page.

Usage:
    client = FhirClient(FhirServer.HAPI)
    bundle = await client.search(Patient, ["name=Smith"])
    patient = await client.read(Patient, "123")
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict

from fhir_demo.config import FHIR_TIMEOUT
from fhir_demo.models import Bundle, Resource, ResourceT

logger = logging.getLogger(__name__)


class FhirServer(str, Enum):
    """The public test servers the demo knows about."""

    FIRELY = "firely"  # https://fire.ly/ test server
    HAPI = "hapi"  # https://hapi.fhir.org/ test server


FHIR_SERVER_URLS: dict[FhirServer, str] = {
    FhirServer.FIRELY: "https://server.fire.ly/",
    FhirServer.HAPI: "http://hapi.fhir.org/baseR4/",
}


class ResourceFormat(str, Enum):
    JSON = "json"


class ReturnPreference(str, Enum):
    """Value of the Prefer header sent with create and update requests."""

    MINIMAL = "minimal"
    REPRESENTATION = "representation"
    OPERATION_OUTCOME = "OperationOutcome"


_MIME_TYPES = {ResourceFormat.JSON: "application/fhir+json"}


class FhirClientSettings(BaseModel):
    """Fixed per-client settings. Frozen once the client is built."""

    model_config = ConfigDict(frozen=True)

    preferred_format: ResourceFormat = ResourceFormat.JSON
    return_preference: ReturnPreference = ReturnPreference.REPRESENTATION
    timeout: float = FHIR_TIMEOUT


class FhirAPIError(Exception):
    """Raised when a request fails or the server returns an error response."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"HTTP {status_code}: {detail}")


class FhirProtocolError(Exception):
    """Raised when the server answers with something that is not FHIR we expect."""


def _parse_criteria(criteria: list[str] | None) -> list[tuple[str, str]]:
    """Split "name=value" search terms into query parameters.

    Repeated names are kept (FHIR ANDs them), so this is a list of pairs
    rather than a dict.
    """
    params: list[tuple[str, str]] = []
    for term in criteria or []:
        name, sep, value = term.partition("=")
        if not sep:
            raise ValueError(f"Search criterion '{term}' is not of the form name=value")
        params.append((name.strip(), value.strip()))
    return params


class FhirClient:
    """Async client for one FHIR server.

    Attributes:
        base_url: The server base URL, always ending in "/".
        settings: The FhirClientSettings used for every request.
    """

    def __init__(
        self,
        server: FhirServer | str = FhirServer.FIRELY,
        settings: FhirClientSettings | None = None,
    ) -> None:
        # A FhirServer picks from the fixed table; anything else is a raw URL.
        if isinstance(server, FhirServer):
            base_url = FHIR_SERVER_URLS[server]
        else:
            base_url = server
        self.base_url = base_url.rstrip("/") + "/"
        self.settings = settings or FhirClientSettings()

        mime_type = _MIME_TYPES[self.settings.preferred_format]
        self._http = httpx.AsyncClient(
            headers={"Accept": mime_type},
            timeout=httpx.Timeout(self.settings.timeout),
        )

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._http.aclose()

    # --- RESTful interactions ---

    async def search(
        self,
        resource_cls: type[Resource],
        criteria: list[str] | None = None,
    ) -> Bundle | None:
        """Search for resources of ``resource_cls``'s type.

        Args:
            resource_cls: The resource model, e.g. Patient.
            criteria: Search terms such as ["name=Smith", "birthdate=1970"].

        Returns:
            The first page of results, or None if the server sent no Bundle.

        Raises:
            FhirAPIError: If the request fails.
        """
        data = await self._request(
            "GET",
            resource_cls.get_resource_type(),
            params=_parse_criteria(criteria),
        )
        return self._as_bundle(data)

    async def continue_(self, bundle: Bundle) -> Bundle | None:
        """Fetch the page after ``bundle``.

        Returns:
            The next page, or None when ``bundle`` is the last one.
        """
        next_url = bundle.next_link
        if next_url is None:
            return None
        data = await self._request("GET", next_url)
        return self._as_bundle(data)

    async def create(self, resource: ResourceT) -> ResourceT | None:
        """POST a new resource. The server assigns the id.

        Returns:
            The stored resource, or None when the server sent no body
            (e.g. with ReturnPreference.MINIMAL).
        """
        data = await self._request(
            "POST",
            resource.get_resource_type(),
            json_data=resource.to_fhir(),
        )
        return type(resource).model_validate(data) if data else None

    async def read(self, resource_cls: type[ResourceT], resource_id: str) -> ResourceT | None:
        """GET a single resource by id."""
        data = await self._request("GET", f"{resource_cls.get_resource_type()}/{resource_id}")
        return resource_cls.model_validate(data) if data else None

    async def update(self, resource: ResourceT) -> ResourceT | None:
        """PUT ``resource`` as a full replacement of the stored version.

        Raises:
            ValueError: If the resource has no id.
            FhirAPIError: If the request fails.
        """
        if not resource.id:
            raise ValueError("Cannot update a resource without an id")
        data = await self._request(
            "PUT",
            f"{resource.get_resource_type()}/{resource.id}",
            json_data=resource.to_fhir(),
        )
        return type(resource).model_validate(data) if data else None

    async def delete(self, location: str) -> None:
        """DELETE the resource at ``location`` (e.g. "Patient/123")."""
        await self._request("DELETE", location)

    # --- Internals ---

    @staticmethod
    def _as_bundle(data: Any) -> Bundle | None:
        if not isinstance(data, dict) or data.get("resourceType") != "Bundle":
            return None
        return Bundle.model_validate(data)

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: list[tuple[str, str]] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request to the server.

        Args:
            method: HTTP method.
            endpoint: Path relative to base_url, or an absolute URL
                (as found in Bundle paging links).
            params: Query parameters.
            json_data: Resource body for POST/PUT.

        Returns:
            The parsed JSON response, or None for an empty body.

        Raises:
            FhirAPIError: If the request fails or returns a non-2xx status.
        """
        if endpoint.startswith(("http://", "https://")):
            url = endpoint
        else:
            url = f"{self.base_url}{endpoint}"

        headers: dict[str, str] = {}
        if json_data is not None:
            headers["Content-Type"] = _MIME_TYPES[self.settings.preferred_format]
            headers["Prefer"] = f"return={self.settings.return_preference.value}"

        logger.debug("%s %s", method, url)
        try:
            response = await self._http.request(
                method,
                url,
                headers=headers,
                params=params or None,
                json=json_data,
            )
        except httpx.HTTPError as exc:
            raise FhirAPIError(
                status_code=0,
                detail=f"Request to {url} failed: {exc}",
            ) from exc

        if response.status_code >= 400:
            raise FhirAPIError(
                status_code=response.status_code,
                detail=response.text,
            )

        if not response.content:
            return None
        return response.json()
