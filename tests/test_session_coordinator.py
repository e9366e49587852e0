"""Tests for session bootstrap, sign-in, company selection and sign-out."""

import pytest

from reglo_client.coordination.push_registration import PushRegistrar
from reglo_client.coordination.session_coordinator import (
    SessionCoordinator,
    resolve_autoscuola_role,
    resolve_session_state,
)
from reglo_client.errors import BackendConnectionError, StateInconsistency
from reglo_client.logging_context import NO_COMPANY, get_company_id
from reglo_client.schemas.session_schema import (
    AutoscuolaRole,
    MePayload,
    SessionStatus,
    SignupInput,
    UserPublic,
)
from tests.conftest import STUDENT_EMAIL, make_company

USER = UserPublic(id="u1", name="Giulia Bianchi", email=STUDENT_EMAIL)


@pytest.fixture
def coordinator(student_api, auth_storage, session_storage):
    return SessionCoordinator(student_api, auth_storage, session_storage)


class TestRoleResolution:
    def test_company_role_wins(self):
        companies = [make_company("c1", AutoscuolaRole.INSTRUCTOR)]
        assert resolve_autoscuola_role("c1", companies, AutoscuolaRole.OWNER) == AutoscuolaRole.INSTRUCTOR

    def test_company_without_role_ignores_payload_role(self):
        companies = [make_company("c1", None)]
        assert resolve_autoscuola_role("c1", companies, AutoscuolaRole.OWNER) is None

    def test_no_active_company_falls_back_to_payload_role(self):
        companies = [make_company("c1", AutoscuolaRole.INSTRUCTOR)]
        assert resolve_autoscuola_role(None, companies, AutoscuolaRole.OWNER) == AutoscuolaRole.OWNER

    def test_unknown_active_company_uses_fallback(self):
        assert resolve_autoscuola_role("c9", [make_company("c1")], None) is None


class TestSessionInvariants:
    def test_company_select_when_no_active_company(self):
        payload = MePayload(user=USER, companies=[make_company("c1"), make_company("c2")])
        state = resolve_session_state(payload)
        assert state.status == SessionStatus.COMPANY_SELECT
        assert state.active_company_id is None

    def test_ready_when_role_resolves(self):
        payload = MePayload(user=USER, companies=[make_company("c1")], active_company_id="c1")
        state = resolve_session_state(payload)
        assert state.status == SessionStatus.READY
        assert state.autoscuola_role == AutoscuolaRole.STUDENT

    def test_no_companies_is_inconsistent(self):
        with pytest.raises(StateInconsistency):
            resolve_session_state(MePayload(user=USER, companies=[]))

    def test_unresolved_role_is_inconsistent(self):
        payload = MePayload(user=USER, companies=[make_company("c1", None)], active_company_id="c1")
        with pytest.raises(StateInconsistency):
            resolve_session_state(payload)

    def test_company_without_role_is_inconsistent_despite_payload_role(self):
        payload = MePayload(
            user=USER,
            companies=[make_company("c1", None)],
            active_company_id="c1",
            autoscuola_role=AutoscuolaRole.OWNER,
        )
        with pytest.raises(StateInconsistency):
            resolve_session_state(payload)


class TestBootstrap:
    @pytest.mark.asyncio
    async def test_no_token_is_unauthenticated(self, coordinator, student_api):
        state = await coordinator.bootstrap()
        assert state.status == SessionStatus.UNAUTHENTICATED
        assert student_api.calls_to("me") == []

    @pytest.mark.asyncio
    async def test_token_restores_ready_session(self, coordinator, student_api, auth_storage):
        student_api.accounts[STUDENT_EMAIL]["active_company_id"] = "c1"
        auth_storage.set_token(student_api.sign_in_as(STUDENT_EMAIL))

        state = await coordinator.bootstrap()
        assert state.status == SessionStatus.READY
        assert state.active_company_id == "c1"
        assert auth_storage.get_active_company_id() == "c1"
        assert get_company_id() == "c1"

    @pytest.mark.asyncio
    async def test_empty_company_list_forces_sign_out(
        self, api, auth_storage, session_storage, store
    ):
        api.add_account("nobody@example.com", "Nessuno", [])
        auth_storage.set_token(api.sign_in_as("nobody@example.com"))
        auth_storage.set_active_company_id("c-gone")
        session_storage.set_selected_student_id("S1")
        coordinator = SessionCoordinator(api, auth_storage, session_storage)

        state = await coordinator.bootstrap()
        assert state.status == SessionStatus.UNAUTHENTICATED
        assert state.user is None
        assert state.companies == []
        assert state.active_company_id is None
        assert state.autoscuola_role is None
        assert store.snapshot() == {}
        assert get_company_id() == NO_COMPANY

    @pytest.mark.asyncio
    async def test_refresh_failure_resets(self, coordinator, student_api, auth_storage):
        auth_storage.set_token("stale-token")
        student_api.fail_next("me", BackendConnectionError("offline"))

        state = await coordinator.bootstrap()
        assert state.status == SessionStatus.UNAUTHENTICATED
        assert auth_storage.get_token() is None


class TestSignIn:
    @pytest.mark.asyncio
    async def test_single_company_is_auto_selected(self, coordinator, student_api, auth_storage):
        toast = await coordinator.sign_in(STUDENT_EMAIL, "reglo")
        assert toast is None
        assert coordinator.state.status == SessionStatus.READY
        assert coordinator.state.active_company_id == "c1"
        assert student_api.calls_to("select_company") == [{"company_id": "c1"}]
        assert auth_storage.get_token() == student_api.token

    @pytest.mark.asyncio
    async def test_multiple_companies_go_to_company_select(self, api, auth_storage, session_storage):
        api.add_account("multi@example.com", "Multi", [make_company("c1"), make_company("c2")])
        coordinator = SessionCoordinator(api, auth_storage, session_storage)

        await coordinator.sign_in("multi@example.com", "reglo")
        assert coordinator.state.status == SessionStatus.COMPANY_SELECT
        assert api.calls_to("select_company") == []

    @pytest.mark.asyncio
    async def test_missing_credentials_never_hit_backend(self, coordinator, student_api):
        toast = await coordinator.sign_in("  ", "")
        assert toast.text == "Inserisci email e password"
        assert student_api.calls == []

    @pytest.mark.asyncio
    async def test_wrong_password_returns_danger_toast(self, coordinator):
        toast = await coordinator.sign_in(STUDENT_EMAIL, "wrong")
        assert toast.tone.value == "danger"
        assert coordinator.state.status == SessionStatus.LOADING

    @pytest.mark.asyncio
    async def test_account_without_companies_is_signed_out(self, api, auth_storage, session_storage):
        api.add_account("nobody@example.com", "Nessuno", [])
        coordinator = SessionCoordinator(api, auth_storage, session_storage)

        toast = await coordinator.sign_in("nobody@example.com", "reglo")
        assert toast.text == "Nessuna autoscuola associata a questo account"
        assert coordinator.state.status == SessionStatus.UNAUTHENTICATED
        assert auth_storage.get_token() is None

    @pytest.mark.asyncio
    async def test_listeners_see_every_state(self, coordinator):
        seen = []
        unsubscribe = coordinator.subscribe(lambda state: seen.append(state.status))
        await coordinator.sign_in(STUDENT_EMAIL, "reglo")
        unsubscribe()
        await coordinator.sign_out()
        assert seen == [SessionStatus.READY]


class TestSignUp:
    @pytest.mark.asyncio
    async def test_password_mismatch(self, coordinator, student_api):
        toast = await coordinator.sign_up(
            SignupInput(
                company_name="Autoscuola Nuova", name="Anna", email="anna@example.com",
                password="secret", confirm_password="other",
            )
        )
        assert toast.text == "Le password non coincidono"
        assert student_api.calls == []

    @pytest.mark.asyncio
    async def test_missing_fields(self, coordinator):
        toast = await coordinator.sign_up(
            SignupInput(company_name="", name="Anna", email="", password="x", confirm_password="x")
        )
        assert "companyName" in toast.text
        assert "email" in toast.text

    @pytest.mark.asyncio
    async def test_signup_creates_owner_session(self, coordinator):
        toast = await coordinator.sign_up(
            SignupInput(
                company_name="Autoscuola Nuova", name="Anna", email="anna@example.com",
                password="secret", confirm_password="secret",
            )
        )
        assert toast is None
        assert coordinator.state.status == SessionStatus.READY
        assert coordinator.state.autoscuola_role == AutoscuolaRole.OWNER


class TestSelectCompany:
    @pytest.mark.asyncio
    async def test_select_company_settles_ready(self, api, auth_storage, session_storage):
        api.add_account(
            "multi@example.com", "Multi",
            [make_company("c1", AutoscuolaRole.INSTRUCTOR), make_company("c2", AutoscuolaRole.OWNER)],
        )
        coordinator = SessionCoordinator(api, auth_storage, session_storage)
        await coordinator.sign_in("multi@example.com", "reglo")

        assert await coordinator.select_company("c2") is None
        assert coordinator.state.status == SessionStatus.READY
        assert coordinator.state.autoscuola_role == AutoscuolaRole.OWNER
        assert auth_storage.get_active_company_id() == "c2"

    @pytest.mark.asyncio
    async def test_unknown_company_rejected_locally(self, api, auth_storage, session_storage):
        api.add_account("multi@example.com", "Multi", [make_company("c1"), make_company("c2")])
        coordinator = SessionCoordinator(api, auth_storage, session_storage)
        await coordinator.sign_in("multi@example.com", "reglo")

        toast = await coordinator.select_company("c9")
        assert toast.tone.value == "danger"
        assert api.calls_to("select_company") == []


class TestSignOut:
    @pytest.mark.asyncio
    async def test_sign_out_clears_even_when_backend_fails(
        self, student_api, auth_storage, session_storage, push_storage, notifications, store
    ):
        registrar = PushRegistrar(student_api, push_storage, notifications)
        coordinator = SessionCoordinator(student_api, auth_storage, session_storage, registrar)
        await coordinator.sign_in(STUDENT_EMAIL, "reglo")
        assert push_storage.get_push_token() == "ExponentPushToken[test]"

        student_api.fail_next("unregister_push_token", BackendConnectionError("offline"))
        student_api.fail_next("logout", BackendConnectionError("offline"))
        await coordinator.sign_out()

        assert coordinator.state.status == SessionStatus.UNAUTHENTICATED
        assert store.snapshot() == {}

    @pytest.mark.asyncio
    async def test_ready_session_registers_push_token(
        self, student_api, auth_storage, session_storage, push_storage, notifications
    ):
        registrar = PushRegistrar(student_api, push_storage, notifications, platform="ios")
        coordinator = SessionCoordinator(student_api, auth_storage, session_storage, registrar)
        await coordinator.sign_in(STUDENT_EMAIL, "reglo")
        assert student_api.push_tokens == {"ExponentPushToken[test]": "ios"}
