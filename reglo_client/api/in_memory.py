"""
In-process Reglo backend.

Same surface as RegloApi, backed by plain dictionaries, for the offline
console demo and the test suite. It keeps the rules the coordinators depend
on: booking requests are idempotent on ``requestId``, a pinned slot can be
taken by someone else, waitlist offers can be claimed first, and deleting
availability with nothing to delete answers "Nessuno slot".

Failures and latency are injectable per method:

    api.fail_next("get_appointments", BackendConnectionError("offline"))
    api.delay_next("get_appointments", 0.05)

A delayed call computes its answer *before* sleeping, so a later call can
overtake it with newer data.
"""

import asyncio
import logging
from collections import defaultdict, deque
from datetime import datetime, timedelta
from typing import Any, Optional

from reglo_client.errors import BackendAuthError, BackendRequestError, DomainConflict
from reglo_client.schemas.booking_schema import (
    Appointment,
    AppointmentStatus,
    AutoscuolaSettings,
    AvailabilitySlot,
    AvailabilitySlotsInput,
    BookingOptions,
    BookingRequest,
    BookingRequestStatus,
    CancelAppointmentResult,
    CreateBookingRequestInput,
    CreateBookingRequestResult,
    SlotsCountResult,
    Student,
    Suggestion,
)
from reglo_client.schemas.payment_schema import PaymentHistoryItem, PaymentProfile
from reglo_client.schemas.session_schema import (
    AuthPayload,
    AutoscuolaRole,
    CompanySummary,
    MePayload,
    SelectCompanyPayload,
    SignupInput,
    UserPublic,
)
from reglo_client.schemas.waitlist_schema import (
    OfferSlot,
    RespondWaitlistOfferInput,
    RespondWaitlistOfferResult,
    WaitlistOffer,
    WaitlistResponse,
)
from reglo_client.utils import normalize_text, parse_iso

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD = "reglo"


class InMemoryRegloApi:
    """Deterministic fake backend with a call log."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        """Forget all data, failures, delays and recorded calls."""
        self.calls: list[tuple[str, dict]] = []
        self._failures: dict[str, deque] = defaultdict(deque)
        self._delays: dict[str, deque] = defaultdict(deque)
        self._counter = 0

        self.accounts: dict[str, dict[str, Any]] = {}
        self.token: Optional[str] = None
        self.current_email: Optional[str] = None

        self.students: dict[str, Student] = {}
        self.appointments: dict[str, Appointment] = {}
        self.open_slots: list[Suggestion] = []
        self.requests: dict[str, dict[str, Any]] = {}
        self.offers: dict[str, WaitlistOffer] = {}
        self.claimed_offers: set[str] = set()
        self.availability: dict[str, AvailabilitySlot] = {}
        self.push_tokens: dict[str, str] = {}

        self.settings = AutoscuolaSettings()
        self.booking_options = BookingOptions(durations=[30, 60, 90, 120], lesson_types=["guida"])
        self.payment_profile = PaymentProfile()
        self.payment_history: list[PaymentHistoryItem] = []

    # ------------------------------------------------------------------ #
    # Seeding and test controls
    # ------------------------------------------------------------------ #

    def add_account(
        self,
        email: str,
        name: str,
        companies: list[CompanySummary],
        active_company_id: Optional[str] = None,
        autoscuola_role: Optional[AutoscuolaRole] = None,
        instructor_id: Optional[str] = None,
        password: str = DEFAULT_PASSWORD,
    ) -> UserPublic:
        user = UserPublic(id=self._next_id("u"), name=name, email=email)
        self.accounts[email] = {
            "password": password,
            "user": user,
            "companies": list(companies),
            "active_company_id": active_company_id,
            "autoscuola_role": autoscuola_role,
            "instructor_id": instructor_id,
        }
        return user

    def sign_in_as(self, email: str) -> str:
        """Open a backend session without a login call; returns the token."""
        self.token = f"token-{self._next_id('t')}"
        self.current_email = email
        return self.token

    def add_student(self, student: Student) -> Student:
        self.students[student.id] = student
        return student

    def add_appointment(self, appointment: Appointment) -> Appointment:
        self.appointments[appointment.id] = appointment
        return appointment

    def add_open_slot(self, starts_at: str, ends_at: str) -> None:
        self.open_slots.append(Suggestion(starts_at=starts_at, ends_at=ends_at))
        self.open_slots.sort(key=lambda slot: parse_iso(slot.starts_at))

    def add_offer(self, offer: WaitlistOffer) -> WaitlistOffer:
        self.offers[offer.id] = offer
        return offer

    def claim_offer(self, offer_id: str) -> None:
        """Another student takes the offered slot first."""
        self.claimed_offers.add(offer_id)

    def take_slot(self, starts_at: str) -> None:
        """Another booking takes the slot starting at ``starts_at``."""
        self.open_slots = [s for s in self.open_slots if s.starts_at != starts_at]

    def fail_next(self, method: str, error: Exception) -> None:
        self._failures[method].append(error)

    def delay_next(self, method: str, seconds: float) -> None:
        self._delays[method].append(seconds)

    def calls_to(self, method: str) -> list[dict]:
        return [kwargs for name, kwargs in self.calls if name == method]

    # ------------------------------------------------------------------ #
    # Auth / identity
    # ------------------------------------------------------------------ #

    async def login(self, email: str, password: str) -> AuthPayload:
        self._enter("login", email=email)
        account = self.accounts.get(email)
        if account is None or account["password"] != password:
            raise BackendAuthError("Credenziali non valide")
        self.token = f"token-{self._next_id('t')}"
        self.current_email = email
        payload = AuthPayload(token=self.token, **self._me_fields(account))
        return await self._respond("login", payload)

    async def signup(self, payload: SignupInput) -> AuthPayload:
        self._enter("signup", email=payload.email)
        if payload.email in self.accounts:
            raise DomainConflict("Email già registrata")
        company = CompanySummary(
            id=self._next_id("c"),
            name=payload.company_name,
            role="admin",
            autoscuola_role=AutoscuolaRole.OWNER,
        )
        self.add_account(payload.email, payload.name, [company], password=payload.password)
        return await self.login(payload.email, payload.password)

    async def logout(self) -> None:
        self._enter("logout")
        self.token = None
        self.current_email = None
        await self._respond("logout", None)

    async def me(self) -> MePayload:
        self._enter("me")
        account = self._account()
        return await self._respond("me", MePayload(**self._me_fields(account)))

    async def select_company(self, company_id: str) -> SelectCompanyPayload:
        self._enter("select_company", company_id=company_id)
        account = self._account()
        company = next((c for c in account["companies"] if c.id == company_id), None)
        if company is None:
            raise BackendRequestError("Autoscuola non trovata", status=404)
        account["active_company_id"] = company_id
        return await self._respond("select_company", SelectCompanyPayload(active_company_id=company_id))

    # ------------------------------------------------------------------ #
    # Students / appointments
    # ------------------------------------------------------------------ #

    async def get_students(self, search: Optional[str] = None) -> list[Student]:
        self._enter("get_students", search=search)
        wanted = normalize_text(search)
        items = [
            s for s in self.students.values()
            if not wanted or wanted in normalize_text(f"{s.first_name} {s.last_name} {s.email or ''}")
        ]
        return await self._respond("get_students", items)

    async def get_appointments(
        self,
        *,
        student_id: Optional[str] = None,
        instructor_id: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> list[Appointment]:
        self._enter(
            "get_appointments",
            student_id=student_id, instructor_id=instructor_id,
            date_from=date_from, date_to=date_to,
        )
        items = []
        for appointment in self.appointments.values():
            if student_id and appointment.student_id != student_id:
                continue
            if instructor_id and appointment.instructor_id != instructor_id:
                continue
            day = appointment.starts_at[:10]
            if date_from and day < date_from:
                continue
            if date_to and day > date_to:
                continue
            items.append(appointment)
        items.sort(key=lambda a: parse_iso(a.starts_at))
        return await self._respond("get_appointments", items)

    async def update_appointment_status(self, appointment_id: str, status: str) -> Appointment:
        self._enter("update_appointment_status", appointment_id=appointment_id, status=status)
        appointment = self._appointment(appointment_id)
        current = appointment.normalized_status
        if current == AppointmentStatus.CANCELLED.value:
            raise DomainConflict("Guida annullata")
        if status == AppointmentStatus.SCHEDULED.value and current != AppointmentStatus.PROPOSAL.value:
            raise DomainConflict("Proposta non più in attesa")
        updated = appointment.model_copy(update={"status": status})
        self.appointments[appointment_id] = updated
        return await self._respond("update_appointment_status", updated)

    async def cancel_appointment(self, appointment_id: str) -> CancelAppointmentResult:
        self._enter("cancel_appointment", appointment_id=appointment_id)
        appointment = self._appointment(appointment_id)
        if appointment.normalized_status == AppointmentStatus.CANCELLED.value:
            raise DomainConflict("Guida già annullata")
        self.appointments[appointment_id] = appointment.model_copy(
            update={"status": AppointmentStatus.CANCELLED.value}
        )
        broadcasted = False
        if appointment.normalized_status != AppointmentStatus.PROPOSAL.value and appointment.ends_at:
            self.add_open_slot(appointment.starts_at, appointment.ends_at)
            broadcasted = True
        return await self._respond(
            "cancel_appointment",
            CancelAppointmentResult(rescheduled=False, broadcasted=broadcasted),
        )

    # ------------------------------------------------------------------ #
    # Settings / payments
    # ------------------------------------------------------------------ #

    async def get_autoscuola_settings(self) -> AutoscuolaSettings:
        self._enter("get_autoscuola_settings")
        return await self._respond("get_autoscuola_settings", self.settings)

    async def get_booking_options(self, student_id: str) -> BookingOptions:
        self._enter("get_booking_options", student_id=student_id)
        return await self._respond("get_booking_options", self.booking_options)

    async def get_payment_profile(self) -> PaymentProfile:
        self._enter("get_payment_profile")
        return await self._respond("get_payment_profile", self.payment_profile)

    async def get_payment_history(self, limit: Optional[int] = None) -> list[PaymentHistoryItem]:
        self._enter("get_payment_history", limit=limit)
        items = self.payment_history if limit is None else self.payment_history[:limit]
        return await self._respond("get_payment_history", items)

    # ------------------------------------------------------------------ #
    # Negotiation / waitlist
    # ------------------------------------------------------------------ #

    async def create_booking_request(
        self, payload: CreateBookingRequestInput
    ) -> CreateBookingRequestResult:
        self._enter("create_booking_request", **payload.model_dump(exclude_none=True))
        entry = self.requests.get(payload.request_id) if payload.request_id else None
        if entry is None:
            request = BookingRequest(
                id=payload.request_id or self._next_id("r"),
                student_id=payload.student_id,
                desired_date=payload.preferred_date,
            )
            entry = {"request": request, "excluded": set(), "appointment": None}
            self.requests[request.id] = entry
        request: BookingRequest = entry["request"]

        if entry["appointment"] is not None:
            # Replayed after a match: answer with the same appointment.
            result = CreateBookingRequestResult(
                matched=True, request=request, appointment=entry["appointment"]
            )
            return await self._respond("create_booking_request", result)

        if payload.exclude_starts_at:
            entry["excluded"].add(payload.exclude_starts_at)

        if payload.selected_starts_at:
            slot = next(
                (s for s in self.open_slots if s.starts_at == payload.selected_starts_at), None
            )
            if slot is None:
                result = CreateBookingRequestResult(matched=False, request=request)
            else:
                result = self._book(entry, payload, slot)
            return await self._respond("create_booking_request", result)

        candidates = self._candidates(payload, entry["excluded"])
        exact = self._exact_match(payload, candidates)
        if exact is not None:
            result = self._book(entry, payload, exact)
        elif candidates:
            result = CreateBookingRequestResult(
                matched=False, request=request, suggestion=candidates[0]
            )
        else:
            result = CreateBookingRequestResult(matched=False, request=request)
        return await self._respond("create_booking_request", result)

    async def get_waitlist_offers(
        self, student_id: str, limit: Optional[int] = None
    ) -> list[WaitlistOffer]:
        self._enter("get_waitlist_offers", student_id=student_id, limit=limit)
        items = [o for o in reversed(list(self.offers.values())) if o.status == "broadcasted"]
        if limit is not None:
            items = items[:limit]
        return await self._respond("get_waitlist_offers", items)

    async def respond_waitlist_offer(
        self, offer_id: str, payload: RespondWaitlistOfferInput
    ) -> RespondWaitlistOfferResult:
        self._enter("respond_waitlist_offer", offer_id=offer_id, response=payload.response)
        offer = self.offers.get(offer_id)
        if offer is None:
            raise BackendRequestError("Offerta non trovata", status=404)

        if payload.response == "decline":
            self.offers[offer_id] = offer.model_copy(update={"status": "declined"})
            response = WaitlistResponse(
                id=self._next_id("wr"), offer_id=offer_id,
                student_id=payload.student_id, status="declined",
            )
            return await self._respond(
                "respond_waitlist_offer", RespondWaitlistOfferResult(accepted=False, response=response)
            )

        if offer_id in self.claimed_offers or offer.status != "broadcasted":
            self.offers[offer_id] = offer.model_copy(update={"status": "closed"})
            response = WaitlistResponse(
                id=self._next_id("wr"), offer_id=offer_id,
                student_id=payload.student_id, status="declined",
            )
            return await self._respond(
                "respond_waitlist_offer", RespondWaitlistOfferResult(accepted=False, response=response)
            )

        appointment = self.add_appointment(
            Appointment(
                id=self._next_id("a"),
                student_id=payload.student_id,
                starts_at=offer.slot.starts_at,
                ends_at=offer.slot.ends_at,
                status=AppointmentStatus.SCHEDULED.value,
            )
        )
        self.offers[offer_id] = offer.model_copy(update={"status": "accepted"})
        response = WaitlistResponse(
            id=self._next_id("wr"), offer_id=offer_id,
            student_id=payload.student_id, status="accepted",
        )
        return await self._respond(
            "respond_waitlist_offer",
            RespondWaitlistOfferResult(accepted=True, response=response, appointment=appointment),
        )

    # ------------------------------------------------------------------ #
    # Availability
    # ------------------------------------------------------------------ #

    async def get_availability_slots(
        self, owner_type: str, owner_id: str, date: str
    ) -> list[AvailabilitySlot]:
        self._enter("get_availability_slots", owner_type=owner_type, owner_id=owner_id, date=date)
        items = [
            s for s in self.availability.values()
            if s.owner_type == owner_type and s.owner_id == owner_id and s.starts_at[:10] == date
        ]
        items.sort(key=lambda s: parse_iso(s.starts_at))
        return await self._respond("get_availability_slots", items)

    async def create_availability_slots(self, payload: AvailabilitySlotsInput) -> SlotsCountResult:
        self._enter("create_availability_slots", **payload.model_dump(exclude_none=True))
        count = 0
        for starts_at, ends_at in self._expand(payload):
            slot = AvailabilitySlot(
                id=self._next_id("av"),
                owner_type=payload.owner_type,
                owner_id=payload.owner_id,
                starts_at=starts_at.isoformat(),
                ends_at=ends_at.isoformat(),
            )
            self.availability[slot.id] = slot
            count += 1
        return await self._respond("create_availability_slots", SlotsCountResult(count=count))

    async def delete_availability_slots(self, payload: AvailabilitySlotsInput) -> SlotsCountResult:
        self._enter("delete_availability_slots", **payload.model_dump(exclude_none=True))
        doomed = [
            slot_id for slot_id, s in self.availability.items()
            if s.owner_type == payload.owner_type and s.owner_id == payload.owner_id
        ]
        if not doomed:
            raise BackendRequestError("Nessuno slot da eliminare", status=404)
        for slot_id in doomed:
            del self.availability[slot_id]
        return await self._respond("delete_availability_slots", SlotsCountResult(count=len(doomed)))

    # ------------------------------------------------------------------ #
    # Push
    # ------------------------------------------------------------------ #

    async def register_push_token(self, token: str, platform: str) -> None:
        self._enter("register_push_token", token=token, platform=platform)
        self.push_tokens[token] = platform
        await self._respond("register_push_token", None)

    async def unregister_push_token(self, token: str) -> None:
        self._enter("unregister_push_token", token=token)
        self.push_tokens.pop(token, None)
        await self._respond("unregister_push_token", None)

    async def aclose(self) -> None:
        return None

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _enter(self, method: str, **kwargs: Any) -> None:
        self.calls.append((method, kwargs))
        if self._failures[method]:
            error = self._failures[method].popleft()
            logger.debug("Injected failure for %s: %s", method, error)
            raise error

    async def _respond(self, method: str, value: Any) -> Any:
        if isinstance(value, list):
            value = [item.model_copy(deep=True) for item in value]
        elif value is not None:
            value = value.model_copy(deep=True)
        if self._delays[method]:
            await asyncio.sleep(self._delays[method].popleft())
        else:
            await asyncio.sleep(0)
        return value

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter}"

    def _account(self) -> dict[str, Any]:
        if self.token is None or self.current_email not in self.accounts:
            raise BackendAuthError("Sessione scaduta")
        return self.accounts[self.current_email]

    def _me_fields(self, account: dict[str, Any]) -> dict[str, Any]:
        return {
            "user": account["user"],
            "companies": account["companies"],
            "active_company_id": account["active_company_id"],
            "autoscuola_role": account["autoscuola_role"],
            "instructor_id": account["instructor_id"],
        }

    def _appointment(self, appointment_id: str) -> Appointment:
        appointment = self.appointments.get(appointment_id)
        if appointment is None:
            raise BackendRequestError("Guida non trovata", status=404)
        return appointment

    def _candidates(
        self, payload: CreateBookingRequestInput, excluded: set[str]
    ) -> list[Suggestion]:
        window_start = parse_iso(f"{payload.preferred_date}T00:00:00")
        window_end = window_start + timedelta(days=payload.max_days or 4)
        duration = timedelta(minutes=payload.duration_minutes)
        return [
            slot for slot in self.open_slots
            if slot.starts_at not in excluded
            and window_start <= parse_iso(slot.starts_at) < window_end
            and parse_iso(slot.ends_at) - parse_iso(slot.starts_at) == duration
        ]

    def _exact_match(
        self, payload: CreateBookingRequestInput, candidates: list[Suggestion]
    ) -> Optional[Suggestion]:
        if not payload.preferred_start_time:
            return None
        wanted = parse_iso(f"{payload.preferred_date}T{payload.preferred_start_time}:00")
        return next((s for s in candidates if parse_iso(s.starts_at) == wanted), None)

    def _book(
        self, entry: dict[str, Any], payload: CreateBookingRequestInput, slot: Suggestion
    ) -> CreateBookingRequestResult:
        self.take_slot(slot.starts_at)
        appointment = self.add_appointment(
            Appointment(
                id=self._next_id("a"),
                student_id=payload.student_id,
                type=payload.lesson_type or "guida",
                starts_at=slot.starts_at,
                ends_at=slot.ends_at,
                status=AppointmentStatus.SCHEDULED.value,
            )
        )
        request = entry["request"].model_copy(update={"status": BookingRequestStatus.MATCHED.value})
        entry["request"] = request
        entry["appointment"] = appointment
        return CreateBookingRequestResult(matched=True, request=request, appointment=appointment)

    def _expand(self, payload: AvailabilitySlotsInput) -> list[tuple[datetime, datetime]]:
        first_start = parse_iso(payload.starts_at)
        first_end = parse_iso(payload.ends_at)
        days = set(payload.days_of_week or [])
        ranges = []
        for offset in range(7 * (payload.weeks or 1)):
            start = first_start + timedelta(days=offset)
            if days and (start.weekday() + 1) % 7 not in days:
                continue
            ranges.append((start, first_end + timedelta(days=offset)))
        return ranges
