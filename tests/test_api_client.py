"""Tests for the HTTP transport and the typed backend operations."""

import json

import httpx
import pytest
import pytest_asyncio
import respx

from reglo_client.api.backend import RegloApi
from reglo_client.api.client import COMPANY_HEADER, RegloApiClient, build_url, clean_params
from reglo_client.config import ApiConfig
from reglo_client.errors import (
    BackendAuthError,
    BackendConnectionError,
    BackendRequestError,
    DomainConflict,
)
from reglo_client.schemas.booking_schema import AvailabilitySlotsInput, CreateBookingRequestInput
from reglo_client.schemas.session_schema import AutoscuolaRole

BASE_URL = "https://app.reglo.it/api"

ME = {
    "user": {"id": "u1", "name": "Giulia Bianchi", "email": "giulia.bianchi@example.com"},
    "companies": [{"id": "c1", "name": "Autoscuola Centrale", "autoscuolaRole": "STUDENT"}],
    "activeCompanyId": "c1",
}


@pytest.fixture
def router():
    with respx.mock(base_url=BASE_URL, assert_all_called=False) as router:
        yield router


@pytest_asyncio.fixture
async def client(auth_storage):
    client = RegloApiClient(ApiConfig(base_url=BASE_URL), auth_storage, http=httpx.AsyncClient())
    yield client
    await client.aclose()


@pytest.fixture
def backend(client):
    return RegloApi(client)


class TestUrlHelpers:
    @pytest.mark.parametrize(
        "base, path, expected",
        [
            ("https://app.reglo.it/api", "/api/mobile/me", "https://app.reglo.it/api/mobile/me"),
            ("https://app.reglo.it/api/", "/mobile/me", "https://app.reglo.it/api/mobile/me"),
            ("https://app.reglo.it", "mobile/me", "https://app.reglo.it/mobile/me"),
            ("https://app.reglo.it", "/api/mobile/me", "https://app.reglo.it/api/mobile/me"),
        ],
    )
    def test_build_url(self, base, path, expected):
        assert build_url(base, path) == expected

    def test_clean_params(self):
        assert clean_params({"a": None, "b": 3, "c": True}) == {"b": "3", "c": "true"}
        assert clean_params({"a": None}) is None
        assert clean_params(None) is None


class TestTransport:
    @pytest.mark.asyncio
    async def test_headers_carry_token_and_company(self, router, client, auth_storage):
        auth_storage.set_token("tok")
        auth_storage.set_active_company_id("c1")
        route = router.get("/mobile/me").mock(return_value=httpx.Response(200, json=ME))

        await client.request("GET", "/api/mobile/me")
        headers = route.calls.last.request.headers
        assert headers["Authorization"] == "Bearer tok"
        assert headers[COMPANY_HEADER] == "c1"
        assert "Content-Type" not in headers

    @pytest.mark.asyncio
    async def test_anonymous_request_has_no_auth_header(self, router, client):
        route = router.post("/mobile/auth/login").mock(return_value=httpx.Response(200, json={}))
        await client.request("POST", "/api/mobile/auth/login", json={"email": "x"})
        headers = route.calls.last.request.headers
        assert "Authorization" not in headers
        assert headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_success_envelope_is_unwrapped(self, router, client):
        router.get("/autoscuole/settings").mock(
            return_value=httpx.Response(200, json={"success": True, "data": {"availabilityWeeks": 6}})
        )
        assert await client.request("GET", "/api/autoscuole/settings") == {"availabilityWeeks": 6}

    @pytest.mark.asyncio
    async def test_failed_envelope_raises(self, router, client):
        router.get("/autoscuole/settings").mock(
            return_value=httpx.Response(200, json={"success": False, "message": "Non autorizzato"})
        )
        with pytest.raises(BackendRequestError, match="Non autorizzato"):
            await client.request("GET", "/api/autoscuole/settings")

    @pytest.mark.parametrize(
        "status, error",
        [(401, BackendAuthError), (403, BackendAuthError), (409, DomainConflict), (500, BackendRequestError)],
    )
    @pytest.mark.asyncio
    async def test_status_mapping(self, router, client, status, error):
        router.get("/mobile/me").mock(return_value=httpx.Response(status, json={"message": "no"}))
        with pytest.raises(error, match="no"):
            await client.request("GET", "/api/mobile/me")

    @pytest.mark.asyncio
    async def test_request_error_keeps_status_and_payload(self, router, client):
        router.get("/mobile/me").mock(return_value=httpx.Response(502, text="Bad gateway"))
        with pytest.raises(BackendRequestError) as excinfo:
            await client.request("GET", "/api/mobile/me")
        assert excinfo.value.status == 502
        assert excinfo.value.payload is None
        assert str(excinfo.value) == "backend_error_502"

    @pytest.mark.asyncio
    async def test_connection_failure(self, router, client):
        router.get("/mobile/me").mock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(BackendConnectionError, match="backend_connection_failed"):
            await client.request("GET", "/api/mobile/me")

    @pytest.mark.asyncio
    async def test_timeout(self, router, client):
        router.get("/mobile/me").mock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(BackendConnectionError, match="backend_timeout"):
            await client.request("GET", "/api/mobile/me")


class TestRegloApi:
    @pytest.mark.asyncio
    async def test_me_parses_camel_case(self, router, backend):
        router.get("/mobile/me").mock(return_value=httpx.Response(200, json=ME))
        payload = await backend.me()
        assert payload.active_company_id == "c1"
        assert payload.companies[0].autoscuola_role == AutoscuolaRole.STUDENT

    @pytest.mark.asyncio
    async def test_malformed_payload_is_request_error(self, router, backend):
        router.get("/mobile/me").mock(return_value=httpx.Response(200, json={"companies": []}))
        with pytest.raises(BackendRequestError, match="MePayload"):
            await backend.me()

    @pytest.mark.asyncio
    async def test_list_expected(self, router, backend):
        router.get("/autoscuole/students").mock(return_value=httpx.Response(200, json={"items": []}))
        with pytest.raises(BackendRequestError):
            await backend.get_students()

    @pytest.mark.asyncio
    async def test_appointment_filters_become_query(self, router, backend):
        route = router.get("/autoscuole/appointments").mock(return_value=httpx.Response(200, json=[]))
        await backend.get_appointments(student_id="S1", date_from="2024-05-01")
        params = route.calls.last.request.url.params
        assert params["studentId"] == "S1"
        assert params["from"] == "2024-05-01"
        assert "instructorId" not in params

    @pytest.mark.asyncio
    async def test_booking_request_body_is_camel_case(self, router, backend):
        route = router.post("/autoscuole/booking-requests").mock(
            return_value=httpx.Response(
                200, json={"matched": False, "request": {"id": "r1"}, "suggestion": None}
            )
        )
        result = await backend.create_booking_request(
            CreateBookingRequestInput(
                student_id="S1", preferred_date="2024-05-02", duration_minutes=60, request_id="r1"
            )
        )
        body = json.loads(route.calls.last.request.content)
        assert body == {
            "studentId": "S1",
            "preferredDate": "2024-05-02",
            "durationMinutes": 60,
            "requestId": "r1",
        }
        assert result.request.id == "r1"
        assert result.suggestion is None

    @pytest.mark.asyncio
    async def test_delete_availability_nothing_to_delete(self, router, backend):
        router.delete("/autoscuole/availability/slots").mock(
            return_value=httpx.Response(404, json={"message": "Nessuno slot da eliminare"})
        )
        with pytest.raises(BackendRequestError) as excinfo:
            await backend.delete_availability_slots(
                AvailabilitySlotsInput(
                    owner_type="student", owner_id="S1",
                    starts_at="2024-04-30T00:00:00+00:00", ends_at="2024-04-30T23:59:00+00:00",
                )
            )
        assert excinfo.value.status == 404
