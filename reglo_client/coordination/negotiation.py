"""
Booking negotiation: request -> suggestion -> accept / alternative / reject.

The first submit opens a negotiation whose server-assigned request id is
the idempotency key: every follow-up call for that negotiation (accept,
alternative) re-sends the same id, so a call retried after a dropped
connection is deduplicated by the backend. NegotiationSession is the only
place that builds those follow-up calls.

Failure semantics:
    transport error       -> danger toast, negotiation untouched (retry)
    slot taken meanwhile  -> info toast, negotiation discarded
    local precondition    -> toast before any network call
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from reglo_client.config import BookingConfig, settings
from reglo_client.coordination.sheet_arbiter import Sheet, SheetArbiter
from reglo_client.errors import DomainConflict, NetworkError, ValidationError
from reglo_client.schemas.booking_schema import (
    Appointment,
    BookingRequest,
    CreateBookingRequestInput,
    CreateBookingRequestResult,
    Suggestion,
)
from reglo_client.schemas.feedback_schema import Toast
from reglo_client.schemas.payment_schema import PaymentProfile

logger = logging.getLogger(__name__)

Reload = Callable[[], Awaitable[Any]]


class PaymentMethodRequired(ValidationError):
    """Automatic payments are on but no payment method is saved."""


@dataclass(frozen=True)
class BookingPreferences:
    """What the student asked for."""
    student_id: str
    preferred_date: str
    duration_minutes: int
    lesson_type: Optional[str] = None
    preferred_start_time: Optional[str] = None
    preferred_end_time: Optional[str] = None
    max_days: Optional[int] = None

    def to_input(self, **overrides: Any) -> CreateBookingRequestInput:
        fields = {
            "student_id": self.student_id,
            "preferred_date": self.preferred_date,
            "duration_minutes": self.duration_minutes,
            "lesson_type": self.lesson_type,
            "preferred_start_time": self.preferred_start_time,
            "preferred_end_time": self.preferred_end_time,
            "max_days": self.max_days,
        }
        fields.update(overrides)
        return CreateBookingRequestInput(**fields)


class NegotiationSession:
    """One open negotiation, bound to its request id."""

    def __init__(
        self,
        api: Any,
        preferences: BookingPreferences,
        request_id: str,
        suggestion: Suggestion,
    ) -> None:
        self._api = api
        self._preferences = preferences
        self._request_id = request_id
        self._suggestion = suggestion
        self._closed = False

    @property
    def request_id(self) -> str:
        return self._request_id

    @property
    def suggestion(self) -> Suggestion:
        return self._suggestion

    @property
    def preferences(self) -> BookingPreferences:
        return self._preferences

    @property
    def closed(self) -> bool:
        return self._closed

    async def accept(self, starts_at: Optional[str] = None) -> CreateBookingRequestResult:
        """Pin the suggested slot. Closes the negotiation on any definitive answer."""
        self._ensure_open()
        prefs = self._preferences
        result = await self._api.create_booking_request(
            CreateBookingRequestInput(
                student_id=prefs.student_id,
                preferred_date=prefs.preferred_date,
                duration_minutes=prefs.duration_minutes,
                lesson_type=prefs.lesson_type,
                selected_starts_at=starts_at or self._suggestion.starts_at,
                request_id=self._request_id,
            )
        )
        self._closed = True
        return result

    async def request_alternative(
        self, exclude_starts_at: Optional[str] = None
    ) -> CreateBookingRequestResult:
        """Ask for another slot, excluding the one currently shown."""
        self._ensure_open()
        result = await self._api.create_booking_request(
            self._preferences.to_input(
                exclude_starts_at=exclude_starts_at or self._suggestion.starts_at,
                request_id=self._request_id,
            )
        )
        if not result.matched and result.suggestion is not None:
            if result.request.id != self._request_id:
                logger.warning(
                    "Backend answered request %s with id %s; keeping the original",
                    self._request_id, result.request.id,
                )
            self._suggestion = result.suggestion
        else:
            self._closed = True
        return result

    def reject(self) -> None:
        self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise ValidationError(f"Negotiation {self._request_id} is closed")


class NegotiationStatus(str, Enum):
    MATCHED = "matched"
    SUGGESTED = "suggested"
    NO_AVAILABILITY = "no_availability"
    EXHAUSTED = "exhausted"
    SLOT_TAKEN = "slot_taken"
    REJECTED = "rejected"
    FAILED = "failed"
    INVALID = "invalid"
    BUSY = "busy"


@dataclass
class NegotiationOutcome:
    status: NegotiationStatus
    toast: Optional[Toast] = None
    request: Optional[BookingRequest] = None
    appointment: Optional[Appointment] = None
    suggestion: Optional[Suggestion] = None

    @property
    def matched(self) -> bool:
        return self.status == NegotiationStatus.MATCHED


class BookingNegotiationCoordinator:
    """Drives one negotiation at a time for the student home."""

    def __init__(
        self,
        api: Any,
        arbiter: SheetArbiter,
        reload: Optional[Reload] = None,
        booking_config: Optional[BookingConfig] = None,
    ) -> None:
        self._api = api
        self._arbiter = arbiter
        self._reload = reload
        self._booking = booking_config or settings.booking
        self._negotiation: Optional[NegotiationSession] = None
        self._busy = False

    @property
    def negotiation(self) -> Optional[NegotiationSession]:
        return self._negotiation

    @property
    def busy(self) -> bool:
        return self._busy

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    async def submit_request(
        self,
        preferences: BookingPreferences,
        payment_profile: Optional[PaymentProfile] = None,
        allowed_durations: Optional[list[int]] = None,
    ) -> NegotiationOutcome:
        if self._busy:
            return NegotiationOutcome(NegotiationStatus.BUSY)
        try:
            self._validate(preferences, payment_profile, allowed_durations)
        except PaymentMethodRequired as exc:
            return NegotiationOutcome(NegotiationStatus.INVALID, toast=Toast.info(str(exc)))
        except ValidationError as exc:
            return NegotiationOutcome(NegotiationStatus.INVALID, toast=Toast.danger(str(exc)))

        if preferences.max_days is None:
            preferences = replace(preferences, max_days=self._booking.max_days)
        open_request_id = self._negotiation.request_id if self._negotiation else None

        self._busy = True
        try:
            try:
                result = await self._api.create_booking_request(
                    preferences.to_input(request_id=open_request_id)
                )
            except DomainConflict as exc:
                logger.info("Booking request refused: %s", exc)
                return NegotiationOutcome(
                    NegotiationStatus.NO_AVAILABILITY,
                    toast=Toast.info(str(exc) or "Nessuna disponibilita per il giorno scelto"),
                )
            except NetworkError as exc:
                return self._failed(exc, "Errore nella richiesta")

            if result.matched:
                return await self._matched(result)

            if result.suggestion is not None:
                self._negotiation = NegotiationSession(
                    self._api, preferences, result.request.id, result.suggestion
                )
                self._show_suggestion()
                logger.info(
                    "Request %s suggested %s", result.request.id, result.suggestion.starts_at
                )
                return NegotiationOutcome(
                    NegotiationStatus.SUGGESTED,
                    request=result.request,
                    suggestion=result.suggestion,
                )

            self._discard()
            return NegotiationOutcome(
                NegotiationStatus.NO_AVAILABILITY,
                toast=Toast.info("Nessuna disponibilita per il giorno scelto"),
                request=result.request,
            )
        finally:
            self._busy = False

    async def accept_suggestion(self, request_id: str, starts_at: str) -> NegotiationOutcome:
        if self._busy:
            return NegotiationOutcome(NegotiationStatus.BUSY)
        negotiation = self._current(request_id)
        if negotiation is None:
            return self._stale_negotiation()

        self._busy = True
        try:
            try:
                result = await negotiation.accept(starts_at)
            except DomainConflict:
                return self._slot_taken()
            except NetworkError as exc:
                return self._failed(exc, "Errore prenotando slot")

            if result.matched:
                return await self._matched(result)
            return self._slot_taken()
        finally:
            self._busy = False

    async def request_alternative(
        self, request_id: str, exclude_starts_at: str
    ) -> NegotiationOutcome:
        if self._busy:
            return NegotiationOutcome(NegotiationStatus.BUSY)
        negotiation = self._current(request_id)
        if negotiation is None:
            return self._stale_negotiation()

        self._busy = True
        try:
            try:
                result = await negotiation.request_alternative(exclude_starts_at)
            except DomainConflict:
                return self._exhausted()
            except NetworkError as exc:
                return self._failed(exc, "Errore nella ricerca alternativa")

            if result.matched:
                return await self._matched(result)
            if result.suggestion is not None:
                return NegotiationOutcome(
                    NegotiationStatus.SUGGESTED,
                    request=result.request,
                    suggestion=negotiation.suggestion,
                )
            return self._exhausted()
        finally:
            self._busy = False

    def reject_suggestion(self) -> NegotiationOutcome:
        """Purely local: forget the negotiation and close its sheet."""
        if self._busy:
            return NegotiationOutcome(NegotiationStatus.BUSY)
        if self._negotiation is not None:
            self._negotiation.reject()
        self._discard()
        return NegotiationOutcome(NegotiationStatus.REJECTED)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _validate(
        self,
        preferences: BookingPreferences,
        payment_profile: Optional[PaymentProfile],
        allowed_durations: Optional[list[int]],
    ) -> None:
        if payment_profile is not None:
            if payment_profile.auto_payments_enabled and not payment_profile.has_payment_method:
                raise PaymentMethodRequired(
                    "Aggiungi un metodo di pagamento dalle impostazioni prima di prenotare."
                )
            if payment_profile.blocked_by_insoluti:
                raise ValidationError(
                    "Hai pagamenti insoluti. Salda prima di prenotare una nuova guida."
                )
        if not preferences.student_id:
            raise ValidationError("Profilo allievo non collegato")
        try:
            datetime.strptime(preferences.preferred_date, "%Y-%m-%d")
        except ValueError:
            raise ValidationError("Data non valida") from None

        durations = allowed_durations or list(self._booking.allowed_durations)
        if preferences.duration_minutes not in durations:
            raise ValidationError("Durata non consentita")

        start, end = preferences.preferred_start_time, preferences.preferred_end_time
        if start and end:
            try:
                start_at = datetime.strptime(start, "%H:%M")
                end_at = datetime.strptime(end, "%H:%M")
            except ValueError:
                raise ValidationError("Orario non valido") from None
            if end_at <= start_at:
                raise ValidationError("Orario non valido")

    def _current(self, request_id: str) -> Optional[NegotiationSession]:
        negotiation = self._negotiation
        if negotiation is None or negotiation.closed or negotiation.request_id != request_id:
            return None
        return negotiation

    def _show_suggestion(self) -> None:
        if self._arbiter.is_open(Sheet.PREFERENCES):
            self._arbiter.request(Sheet.SUGGESTION)
            self._arbiter.close(Sheet.PREFERENCES)
        else:
            self._arbiter.open(Sheet.SUGGESTION)

    def _discard(self) -> None:
        self._negotiation = None
        self._arbiter.close(Sheet.SUGGESTION)

    async def _matched(self, result: CreateBookingRequestResult) -> NegotiationOutcome:
        self._discard()
        self._arbiter.close(Sheet.PREFERENCES)
        logger.info("Request %s matched", result.request.id)
        if self._reload is not None:
            await self._reload()
        return NegotiationOutcome(
            NegotiationStatus.MATCHED,
            toast=Toast.success("Guida prenotata"),
            request=result.request,
            appointment=result.appointment,
        )

    def _slot_taken(self) -> NegotiationOutcome:
        self._discard()
        return NegotiationOutcome(
            NegotiationStatus.SLOT_TAKEN, toast=Toast.info("Slot non più disponibile")
        )

    def _exhausted(self) -> NegotiationOutcome:
        self._discard()
        return NegotiationOutcome(
            NegotiationStatus.EXHAUSTED, toast=Toast.info("Nessuna alternativa disponibile")
        )

    def _stale_negotiation(self) -> NegotiationOutcome:
        return NegotiationOutcome(
            NegotiationStatus.INVALID, toast=Toast.danger("Proposta non più valida")
        )

    def _failed(self, exc: NetworkError, fallback: str) -> NegotiationOutcome:
        logger.warning("Negotiation call failed: %s", exc)
        return NegotiationOutcome(
            NegotiationStatus.FAILED, toast=Toast.danger(str(exc) or fallback)
        )
