"""
Authentication, active company and effective role.

The session moves through::

    loading -> unauthenticated | company_select | ready
    unauthenticated <-> ready            (sign in / sign out)
    company_select -> ready              (select_company)
    any -> unauthenticated               (inconsistent role or company data)

Invariants enforced on every settle:
    company_select  iff  no active company and at least one company
    ready           iff  an active company whose role resolves
    no companies at all  ->  forced sign-out with storage cleared
"""

import logging
from typing import Any, Callable, Optional

from reglo_client.coordination.push_registration import PushRegistrar
from reglo_client.errors import RegloError, StateInconsistency, ValidationError
from reglo_client.logging_context import get_session_logger, set_company_id
from reglo_client.schemas.feedback_schema import Toast
from reglo_client.schemas.session_schema import (
    AutoscuolaRole,
    CompanySummary,
    MePayload,
    SessionState,
    SessionStatus,
    SignupInput,
)
from reglo_client.storage.session_storage import AuthStorage, SessionStorage

logger = get_session_logger(__name__)

StateListener = Callable[[SessionState], None]


def resolve_autoscuola_role(
    active_company_id: Optional[str],
    companies: list[CompanySummary],
    fallback: Optional[AutoscuolaRole] = None,
) -> Optional[AutoscuolaRole]:
    """Role inside the active company.

    The payload-level role is used only when no listed company is active. A
    matching company without a role resolves to None.
    """
    if active_company_id:
        for company in companies:
            if company.id == active_company_id:
                return company.autoscuola_role
    return fallback


def resolve_session_state(payload: MePayload) -> SessionState:
    """Derive the session state from an identity payload.

    Raises:
        StateInconsistency: If there are no companies, or a company is
            active but no role resolves for it.
    """
    if not payload.companies:
        raise StateInconsistency("User has no companies")

    if payload.active_company_id is None:
        return SessionState(
            status=SessionStatus.COMPANY_SELECT,
            user=payload.user,
            companies=list(payload.companies),
            instructor_id=payload.instructor_id,
        )

    role = resolve_autoscuola_role(
        payload.active_company_id, payload.companies, payload.autoscuola_role
    )
    if role is None:
        raise StateInconsistency(
            f"No autoscuola role for active company {payload.active_company_id}"
        )
    return SessionState(
        status=SessionStatus.READY,
        user=payload.user,
        companies=list(payload.companies),
        active_company_id=payload.active_company_id,
        autoscuola_role=role,
        instructor_id=payload.instructor_id,
    )


class SessionCoordinator:
    """Owns the session state and the durable auth storage."""

    def __init__(
        self,
        api: Any,
        auth_storage: AuthStorage,
        session_storage: SessionStorage,
        registrar: Optional[PushRegistrar] = None,
    ) -> None:
        self._api = api
        self._auth = auth_storage
        self._session_storage = session_storage
        self._registrar = registrar
        self._state = SessionState.loading()
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------ #
    # Public operations
    # ------------------------------------------------------------------ #

    async def bootstrap(self) -> SessionState:
        """Restore the session from the persisted credential, if any."""
        if not self._auth.get_token():
            self._set_state(SessionState.unauthenticated())
            return self._state
        return await self.refresh_me()

    async def refresh_me(self) -> SessionState:
        """Re-fetch identity and re-validate; any failure resets the session."""
        try:
            payload = await self._api.me()
            await self._settle(payload)
        except RegloError as exc:
            logger.warning("Failed to restore session: %s", exc)
            self._reset()
        return self._state

    async def sign_in(self, email: str, password: str) -> Optional[Toast]:
        """Exchange credentials for a session. Returns a toast only on failure."""
        if not email.strip() or not password:
            return Toast.danger("Inserisci email e password")
        try:
            payload = await self._api.login(email.strip(), password)
        except RegloError as exc:
            logger.info("Sign-in failed: %s", exc)
            return Toast.danger(str(exc) or "Accesso non riuscito")
        return await self._complete_authentication(payload)

    async def sign_up(self, payload: SignupInput) -> Optional[Toast]:
        try:
            self._validate_signup(payload)
        except ValidationError as exc:
            return Toast.danger(str(exc))
        try:
            auth_payload = await self._api.signup(payload)
        except RegloError as exc:
            logger.info("Sign-up failed: %s", exc)
            return Toast.danger(str(exc) or "Registrazione non riuscita")
        return await self._complete_authentication(auth_payload)

    async def select_company(self, company_id: str) -> Optional[Toast]:
        """Persist the chosen company and re-derive the role from the backend."""
        if all(company.id != company_id for company in self._state.companies):
            return Toast.danger("Autoscuola non disponibile")
        try:
            await self._api.select_company(company_id)
        except RegloError as exc:
            return Toast.danger(str(exc) or "Errore selezionando l'autoscuola")
        self._auth.set_active_company_id(company_id)
        await self.refresh_me()
        return None

    async def sign_out(self) -> None:
        """Best-effort remote cleanup, then an unconditional local reset."""
        if self._registrar is not None:
            try:
                await self._registrar.unregister()
            except RegloError as exc:
                logger.warning("Push unregister failed: %s", exc)
        try:
            await self._api.logout()
        except RegloError as exc:
            logger.warning("Logout failed: %s", exc)
        self._reset()

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    async def _complete_authentication(self, payload: Any) -> Optional[Toast]:
        self._auth.set_token(payload.token)
        self._auth.set_active_company_id(payload.active_company_id)
        try:
            payload = await self._auto_select_single_company(payload)
            await self._settle(payload)
        except StateInconsistency as exc:
            logger.warning("Session inconsistent after sign-in: %s", exc)
            self._reset()
            return Toast.danger("Nessuna autoscuola associata a questo account")
        except RegloError as exc:
            return Toast.danger(str(exc) or "Accesso non riuscito")
        return None

    async def _auto_select_single_company(self, payload: Any) -> Any:
        if payload.active_company_id is not None or len(payload.companies) != 1:
            return payload
        company = payload.companies[0]
        await self._api.select_company(company.id)
        self._auth.set_active_company_id(company.id)
        logger.info("Auto-selected the only company %s", company.id)
        return payload.model_copy(
            update={
                "active_company_id": company.id,
                "autoscuola_role": company.autoscuola_role,
            }
        )

    async def _settle(self, payload: MePayload) -> None:
        state = resolve_session_state(payload)
        self._auth.set_active_company_id(state.active_company_id)
        set_company_id(state.active_company_id)
        self._set_state(state)
        if state.is_ready:
            await self._register_push()

    async def _register_push(self) -> None:
        if self._registrar is None:
            return
        try:
            result = await self._registrar.register()
        except RegloError as exc:
            logger.warning("Push registration failed: %s", exc)
            return
        if not result.registered:
            logger.info("Push registration skipped (%s)", result.reason)

    def _validate_signup(self, payload: SignupInput) -> None:
        missing = [
            name
            for name, value in [
                ("companyName", payload.company_name),
                ("name", payload.name),
                ("email", payload.email),
                ("password", payload.password),
            ]
            if not value or not value.strip()
        ]
        if missing:
            raise ValidationError(f"Campi obbligatori mancanti: {', '.join(missing)}")
        if payload.password != payload.confirm_password:
            raise ValidationError("Le password non coincidono")

    def _reset(self) -> None:
        self._auth.clear()
        self._session_storage.clear()
        set_company_id(None)
        self._set_state(SessionState.unauthenticated())

    def _set_state(self, state: SessionState) -> None:
        old = self._state.status
        self._state = state
        logger.debug("Session: %s -> %s", old.value, state.status.value)
        for listener in list(self._listeners):
            listener(state)
