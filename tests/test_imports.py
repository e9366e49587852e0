"""Tests for import chains and module integrity.

Ensures all public modules can be imported without errors, that
re-exports from __init__.py work, and that the offline demo runs.
"""

import pytest


class TestSchemaImports:
    def test_import_session_schema(self):
        from reglo_client.schemas.session_schema import AutoscuolaRole, SessionState, SessionStatus
        assert AutoscuolaRole.STUDENT == "STUDENT"
        assert SessionState.loading().status == SessionStatus.LOADING

    def test_import_booking_schema(self):
        from reglo_client.schemas.booking_schema import Appointment, AppointmentStatus
        appointment = Appointment(id="a1", studentId="S1", startsAt="2024-05-02T09:00Z")
        assert appointment.status == AppointmentStatus.SCHEDULED.value
        assert appointment.to_wire()["startsAt"] == "2024-05-02T09:00Z"

    def test_wire_models_ignore_unknown_fields(self):
        from reglo_client.schemas.waitlist_schema import WaitlistOffer
        offer = WaitlistOffer.model_validate({
            "id": "o1",
            "slot": {"startsAt": "2024-05-04T10:00Z", "endsAt": "2024-05-04T11:00Z"},
            "expiresAt": "2024-05-01T00:00Z",
            "somethingNew": True,
        })
        assert offer.status == "broadcasted"


class TestErrorTaxonomy:
    def test_network_errors(self):
        from reglo_client.errors import (
            BackendAuthError, BackendConnectionError, BackendRequestError, NetworkError,
        )
        assert issubclass(BackendAuthError, NetworkError)
        assert issubclass(BackendConnectionError, NetworkError)
        assert issubclass(BackendRequestError, NetworkError)

    def test_domain_errors_are_not_network_errors(self):
        from reglo_client.errors import (
            DomainConflict, NetworkError, RegloError, StateInconsistency, ValidationError,
        )
        for error in (DomainConflict, StateInconsistency, ValidationError):
            assert issubclass(error, RegloError)
            assert not issubclass(error, NetworkError)


class TestCoordinationPackage:
    def test_reexports(self):
        import reglo_client.coordination as coordination
        for name in coordination.__all__:
            assert getattr(coordination, name) is not None

    def test_in_memory_backend_matches_http_surface(self):
        from reglo_client.api.backend import RegloApi
        from reglo_client.api.in_memory import InMemoryRegloApi
        public = {name for name in vars(RegloApi) if not name.startswith("_")}
        assert public <= set(dir(InMemoryRegloApi))


class TestConsoleDemo:
    @pytest.mark.parametrize("scenario", ["booking", "race", "waitlist", "session", "sheets"])
    @pytest.mark.asyncio
    async def test_scenario_runs(self, scenario, capsys):
        from console_demo import ConsoleDemo
        await ConsoleDemo().run_scenario(scenario)
        assert f"Scenario: {scenario}" in capsys.readouterr().out
