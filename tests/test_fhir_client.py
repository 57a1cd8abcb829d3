"""Tests for the FHIR REST client.

These tests use httpx's MockTransport to simulate responses from a FHIR
server, so no network access is needed. Each handler inspects the request
the client built and answers with a canned FHIR JSON body.
"""

import json

import httpx
import pytest
from pydantic import ValidationError

from fhir_demo.fhir_client import (
    FHIR_SERVER_URLS,
    FhirAPIError,
    FhirClient,
    FhirClientSettings,
    FhirServer,
    ReturnPreference,
)
from fhir_demo.models import Bundle, HumanName, Patient

BASE_URL = "https://fhir.test/r4/"


def _make_client(handler, **settings: object) -> FhirClient:
    """Create a client whose HTTP layer is served by ``handler``."""
    client = FhirClient(BASE_URL, FhirClientSettings(**settings))  # type: ignore[arg-type]
    client._http = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        headers={"Accept": "application/fhir+json"},
    )
    return client


def _patient_json(patient_id: str = "p1", **extra: object) -> dict[str, object]:
    body: dict[str, object] = {
        "resourceType": "Patient",
        "id": patient_id,
        "name": [{"family": "Ritis", "given": ["Arthur"]}],
        "birthDate": "1970-01-01",
    }
    body.update(extra)
    return body


# --- Construction ---


class TestConstruction:
    """Server selection and fixed settings."""

    def test_server_enum_maps_to_base_url(self) -> None:
        client = FhirClient(FhirServer.HAPI)
        assert client.base_url == "http://hapi.fhir.org/baseR4/"

    def test_default_server_is_firely(self) -> None:
        client = FhirClient()
        assert client.base_url == FHIR_SERVER_URLS[FhirServer.FIRELY]

    def test_raw_url_gets_trailing_slash(self) -> None:
        client = FhirClient("https://example.org/fhir")
        assert client.base_url == "https://example.org/fhir/"

    def test_settings_are_frozen(self) -> None:
        settings = FhirClientSettings()
        with pytest.raises(ValidationError):
            settings.return_preference = ReturnPreference.MINIMAL  # type: ignore[misc]


# --- Search and paging ---


class TestSearch:
    """Tests for search() and continue_()."""

    @pytest.mark.asyncio
    async def test_search_sends_criteria_as_query_params(self) -> None:
        captured: dict[str, object] = {}

        async def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["accept"] = request.headers.get("accept")
            return httpx.Response(
                200,
                json={"resourceType": "Bundle", "type": "searchset", "total": 0},
            )

        client = _make_client(handler)
        bundle = await client.search(Patient, ["name=Smith", "birthdate=1970"])

        assert isinstance(bundle, Bundle)
        assert bundle.total == 0
        assert captured["url"] == f"{BASE_URL}Patient?name=Smith&birthdate=1970"
        assert captured["accept"] == "application/fhir+json"

        await client.close()

    @pytest.mark.asyncio
    async def test_search_rejects_malformed_criterion(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"resourceType": "Bundle"})

        client = _make_client(handler)
        with pytest.raises(ValueError, match="name=value"):
            await client.search(Patient, ["Smith"])

        await client.close()

    @pytest.mark.asyncio
    async def test_search_non_bundle_returns_none(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"resourceType": "OperationOutcome"})

        client = _make_client(handler)
        assert await client.search(Patient) is None

        await client.close()

    @pytest.mark.asyncio
    async def test_continue_follows_next_link(self) -> None:
        next_url = f"{BASE_URL}?_getpages=abc&_getpagesoffset=10"
        requested: list[str] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(
                200,
                json={
                    "resourceType": "Bundle",
                    "entry": [{"resource": _patient_json("p11")}],
                },
            )

        client = _make_client(handler)
        first = Bundle.model_validate(
            {
                "resourceType": "Bundle",
                "link": [
                    {"relation": "self", "url": f"{BASE_URL}Patient"},
                    {"relation": "next", "url": next_url},
                ],
            }
        )

        page = await client.continue_(first)

        assert requested == [next_url]
        assert page is not None
        assert [p.id for p in page.resources_of_type(Patient)] == ["p11"]

        await client.close()

    @pytest.mark.asyncio
    async def test_continue_without_next_link_returns_none(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        client = _make_client(handler)
        last = Bundle.model_validate({"resourceType": "Bundle", "link": []})

        assert await client.continue_(last) is None

        await client.close()


# --- Create / read / update / delete ---


class TestCrud:
    """Tests for the single-resource interactions."""

    @pytest.mark.asyncio
    async def test_create_posts_resource_with_prefer_header(self) -> None:
        captured: dict[str, object] = {}

        async def handler(request: httpx.Request) -> httpx.Response:
            captured["method"] = request.method
            captured["url"] = str(request.url)
            captured["prefer"] = request.headers.get("prefer")
            captured["content_type"] = request.headers.get("content-type")
            captured["body"] = json.loads(request.content)
            return httpx.Response(201, json=_patient_json("new-id"))

        client = _make_client(handler)
        patient = Patient(name=[HumanName(family="Ritis", given=["Arthur"])], birth_date="1970-01-01")

        result = await client.create(patient)

        assert result is not None
        assert result.id == "new-id"
        assert captured["method"] == "POST"
        assert captured["url"] == f"{BASE_URL}Patient"
        assert captured["prefer"] == "return=representation"
        assert captured["content_type"] == "application/fhir+json"
        assert captured["body"] == {
            "resourceType": "Patient",
            "name": [{"family": "Ritis", "given": ["Arthur"]}],
            "birthDate": "1970-01-01",
        }

        await client.close()

    @pytest.mark.asyncio
    async def test_create_with_minimal_return_yields_none(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers.get("prefer") == "return=minimal"
            return httpx.Response(201, headers={"Location": f"{BASE_URL}Patient/x/_history/1"})

        client = _make_client(handler, return_preference=ReturnPreference.MINIMAL)

        assert await client.create(Patient()) is None

        await client.close()

    @pytest.mark.asyncio
    async def test_read_gets_by_id(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert str(request.url) == f"{BASE_URL}Patient/p1"
            return httpx.Response(200, json=_patient_json("p1"))

        client = _make_client(handler)
        patient = await client.read(Patient, "p1")

        assert patient is not None
        assert patient.name[0].family == "Ritis"
        assert patient.birth_date == "1970-01-01"

        await client.close()

    @pytest.mark.asyncio
    async def test_update_puts_full_resource_including_unknown_fields(self) -> None:
        captured: dict[str, object] = {}

        async def handler(request: httpx.Request) -> httpx.Response:
            captured["method"] = request.method
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=captured["body"])

        client = _make_client(handler)
        patient = Patient.model_validate(
            _patient_json("p1", gender="male", meta={"versionId": "1"})
        )

        result = await client.update(patient)

        assert captured["method"] == "PUT"
        assert captured["url"] == f"{BASE_URL}Patient/p1"
        body = captured["body"]
        assert isinstance(body, dict)
        assert body["gender"] == "male"
        assert body["meta"] == {"versionId": "1"}
        assert "telecom" not in body  # empty lists are not valid FHIR JSON
        assert result is not None and result.id == "p1"

        await client.close()

    @pytest.mark.asyncio
    async def test_update_without_id_raises(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        client = _make_client(handler)
        with pytest.raises(ValueError, match="without an id"):
            await client.update(Patient())

        await client.close()

    @pytest.mark.asyncio
    async def test_delete_sends_delete(self) -> None:
        calls: list[tuple[str, str]] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.method, str(request.url)))
            return httpx.Response(204)

        client = _make_client(handler)
        assert await client.delete("Patient/p1") is None
        assert calls == [("DELETE", f"{BASE_URL}Patient/p1")]

        await client.close()


# --- Errors ---


class TestErrors:
    """HTTP and transport failures become FhirAPIError."""

    @pytest.mark.asyncio
    async def test_error_status_raises_api_error(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="Resource Patient/zzz is not known")

        client = _make_client(handler)
        with pytest.raises(FhirAPIError, match="404") as excinfo:
            await client.read(Patient, "zzz")
        assert excinfo.value.status_code == 404
        assert "not known" in excinfo.value.detail

        await client.close()

    @pytest.mark.asyncio
    async def test_transport_failure_raises_api_error_with_status_zero(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _make_client(handler)
        with pytest.raises(FhirAPIError) as excinfo:
            await client.delete("Patient/p1")
        assert excinfo.value.status_code == 0

        await client.close()

    @pytest.mark.asyncio
    async def test_errors_are_not_retried(self) -> None:
        attempts = {"count": 0}

        async def handler(request: httpx.Request) -> httpx.Response:
            attempts["count"] += 1
            return httpx.Response(500, text="Internal Server Error")

        client = _make_client(handler)
        with pytest.raises(FhirAPIError, match="500"):
            await client.search(Patient)
        assert attempts["count"] == 1

        await client.close()
