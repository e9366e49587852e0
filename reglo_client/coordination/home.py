"""
Screen-level coordinators for the student and instructor home.

Each home owns what its screen renders: the loaded snapshot (through a
DataLoader), the current toast and, for students, the sheet arbiter shared
by the negotiation, waitlist and proposal coordinators. Push intents reach
the student home through the channel it subscribes to on start().
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional

from reglo_client.config import BookingConfig, settings
from reglo_client.coordination.appointments import (
    find_linked_student,
    instructor_agenda,
    lesson_history,
    lessons_on_day,
    upcoming_lessons,
)
from reglo_client.coordination.availability import AvailabilityCoordinator
from reglo_client.coordination.data_loader import DataLoader, DateWindow, LoadOwner, LoadResult
from reglo_client.coordination.negotiation import (
    BookingNegotiationCoordinator,
    BookingPreferences,
    NegotiationOutcome,
)
from reglo_client.coordination.proposals import ProposalCoordinator
from reglo_client.coordination.push_bridge import (
    PushIntentBridge,
    PushIntentChannel,
    PushIntentKind,
    PushIntentRouter,
)
from reglo_client.coordination.sheet_arbiter import Sheet, SheetArbiter
from reglo_client.coordination.waitlist import WaitlistCoordinator
from reglo_client.errors import DomainConflict, RegloError
from reglo_client.schemas.booking_schema import Appointment, AppointmentStatus, Student
from reglo_client.schemas.feedback_schema import Toast
from reglo_client.schemas.session_schema import UserPublic
from reglo_client.storage.session_storage import SessionStorage
from reglo_client.utils import parse_iso, utc_now

logger = logging.getLogger(__name__)

INSTRUCTOR_STATUSES = frozenset({
    AppointmentStatus.CHECKED_IN.value,
    AppointmentStatus.COMPLETED.value,
    AppointmentStatus.NO_SHOW.value,
})


def _local_time_label(value: Optional[str]) -> Optional[str]:
    """Day and time of ``value`` in the device timezone, or None if unparseable."""
    if not value:
        return None
    try:
        return parse_iso(value).astimezone().strftime("%d/%m %H:%M")
    except ValueError:
        logger.warning("Unparseable reschedule time %r", value)
        return None


class StudentHomeCoordinator:
    """Everything the student home screen shows and does."""

    def __init__(
        self,
        api: Any,
        user: UserPublic,
        channel: PushIntentChannel,
        session_storage: SessionStorage,
        bridge: Optional[PushIntentBridge] = None,
        booking_config: Optional[BookingConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._api = api
        self._user = user
        self._channel = channel
        self._session_storage = session_storage
        self._bridge = bridge
        self._booking = booking_config or settings.booking
        self._clock = clock
        self._unsubscribe: Optional[Callable[[], None]] = None

        self.arbiter = SheetArbiter()
        self.loader = DataLoader(api, LoadOwner.STUDENT, self._booking)
        self.student: Optional[Student] = None
        self.negotiation: Optional[BookingNegotiationCoordinator] = None
        self.waitlist: Optional[WaitlistCoordinator] = None
        self.proposals: Optional[ProposalCoordinator] = None
        self.availability: Optional[AvailabilityCoordinator] = None
        self.toast: Optional[Toast] = None
        self.cancelling_id: Optional[str] = None
        self.history_limit = self._booking.history_page_size
        self.selected_lesson: Optional[Appointment] = None

        self._router = PushIntentRouter()
        self._router.on(PushIntentKind.SLOT_FILL_OFFER, self._on_slot_fill_offer)
        self._router.on(PushIntentKind.APPOINTMENT_CANCELLED, self._on_appointment_cancelled)
        self._router.on(PushIntentKind.APPOINTMENT_PROPOSAL, self._on_appointment_proposal)

    @property
    def student_id(self) -> Optional[str]:
        return self.student.id if self.student else None

    @property
    def started(self) -> bool:
        return self._unsubscribe is not None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> bool:
        """Link the student record, subscribe to push intents and load everything."""
        student = await self._resolve_student()
        if student is None:
            if self.toast is None:
                self.toast = Toast.danger("Profilo allievo non collegato")
            return False
        self._bind(student)
        self._unsubscribe = self._channel.subscribe(self._router.dispatch)

        _, _, preset_toast = await asyncio.gather(
            self.reload(), self.waitlist.fetch_offer(), self.availability.load_preset()
        )
        if preset_toast is not None and self.toast is None:
            self.toast = preset_toast
        if self._bridge is not None:
            await self._bridge.dispatch_pending()
        return True

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def reload(self) -> LoadResult:
        if self.student is None:
            return LoadResult.FAILED
        result = await self.loader.load(self.student.id)
        if result == LoadResult.APPLIED:
            data = self.loader.data
            self.proposals.sync(data.appointments)
            if data.settings is not None:
                self.availability.set_weeks(data.settings.availability_weeks)
        elif result == LoadResult.FAILED:
            self.toast = self.loader.toast
        return result

    async def refresh(self) -> None:
        """Pull to refresh."""
        if self.student is None:
            return
        await asyncio.gather(self.reload(), self.waitlist.fetch_offer())

    async def on_app_active(self) -> None:
        """Back in the foreground: reload, refresh the waitlist, then pending intents."""
        await self.refresh()
        if self._bridge is not None:
            await self._bridge.dispatch_pending()

    # ------------------------------------------------------------------ #
    # Views
    # ------------------------------------------------------------------ #

    @property
    def appointments(self) -> list[Appointment]:
        return self.loader.data.appointments if self.loader.data else []

    def upcoming(self) -> list[Appointment]:
        return upcoming_lessons(self.appointments, self._clock())

    def next_lesson(self) -> Optional[Appointment]:
        items = self.upcoming()
        return items[0] if items else None

    def history(self) -> list[Appointment]:
        return lesson_history(self.appointments, self._clock(), self.history_limit)

    def has_more_history(self) -> bool:
        return len(lesson_history(self.appointments, self._clock())) > self.history_limit

    def load_more_history(self) -> None:
        self.history_limit += self._booking.history_page_size

    # ------------------------------------------------------------------ #
    # Sheets
    # ------------------------------------------------------------------ #

    def open_preferences(self) -> None:
        self.arbiter.open(Sheet.PREFERENCES)

    def close_preferences(self) -> None:
        self.arbiter.close(Sheet.PREFERENCES)

    def open_history_details(self, appointment_id: str) -> Optional[Appointment]:
        lesson = next((a for a in self.appointments if a.id == appointment_id), None)
        if lesson is None:
            return None
        self.selected_lesson = lesson
        self.arbiter.open(Sheet.HISTORY_DETAILS)
        return lesson

    def close_history_details(self) -> None:
        self.selected_lesson = None
        self.arbiter.close(Sheet.HISTORY_DETAILS)

    # ------------------------------------------------------------------ #
    # Actions
    # ------------------------------------------------------------------ #

    async def submit_booking(
        self,
        preferred_date: str,
        duration_minutes: int,
        lesson_type: Optional[str] = None,
        preferred_start_time: Optional[str] = None,
        preferred_end_time: Optional[str] = None,
    ) -> NegotiationOutcome:
        data = self.loader.data
        options = data.booking_options if data else None
        outcome = await self.negotiation.submit_request(
            BookingPreferences(
                student_id=self.student.id,
                preferred_date=preferred_date,
                duration_minutes=duration_minutes,
                lesson_type=lesson_type,
                preferred_start_time=preferred_start_time,
                preferred_end_time=preferred_end_time,
            ),
            payment_profile=data.payment_profile if data else None,
            allowed_durations=options.durations if options and options.durations else None,
        )
        if outcome.toast is not None:
            self.toast = outcome.toast
        return outcome

    async def cancel_appointment(self, appointment_id: str) -> Optional[Toast]:
        if self.cancelling_id is not None or self.student is None:
            return None
        self.cancelling_id = appointment_id
        try:
            try:
                result = await self._api.cancel_appointment(appointment_id)
            except DomainConflict as exc:
                self.toast = Toast.info(str(exc) or "Guida non più annullabile")
                return self.toast
            except RegloError as exc:
                logger.warning("Cancelling %s failed: %s", appointment_id, exc)
                self.toast = Toast.danger(str(exc) or "Errore durante annullamento")
                return self.toast

            when = _local_time_label(result.new_starts_at) if result.rescheduled else None
            if when is not None:
                self.toast = Toast.success(f"Guida annullata e riprogrammata: {when}")
            elif result.broadcasted:
                self.toast = Toast.success("Guida annullata. Slot offerto agli allievi in attesa")
            else:
                self.toast = Toast.success("Guida annullata")
            await self.refresh()
            return self.toast
        finally:
            self.cancelling_id = None

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _resolve_student(self) -> Optional[Student]:
        try:
            students = await self._api.get_students()
        except RegloError as exc:
            logger.warning("Loading students failed: %s", exc)
            self.toast = Toast.danger(str(exc) or "Errore nel caricamento studenti")
            return None
        student = find_linked_student(students, self._user.email, self._user.name)
        if student is not None:
            self._session_storage.set_selected_student_id(student.id)
        return student

    def _bind(self, student: Student) -> None:
        self.student = student
        self.negotiation = BookingNegotiationCoordinator(
            self._api, self.arbiter, reload=self.reload, booking_config=self._booking
        )
        self.waitlist = WaitlistCoordinator(
            self._api, self.arbiter, student.id,
            reload=self.reload, clock=self._clock, booking_config=self._booking,
        )
        self.proposals = ProposalCoordinator(
            self._api, self.arbiter, reload=self.reload, clock=self._clock
        )
        self.availability = AvailabilityCoordinator(
            self._api, student.id, weeks=self._booking.availability_weeks, clock=self._clock
        )

    async def _on_slot_fill_offer(self) -> None:
        await self.waitlist.fetch_offer()

    async def _on_appointment_cancelled(self) -> None:
        await self.reload()
        self.toast = Toast.info("Una guida è stata annullata")

    async def _on_appointment_proposal(self) -> None:
        await self.reload()
        self.proposals.force_surface()


class InstructorHomeCoordinator:
    """Agenda of one instructor, with lesson status updates."""

    def __init__(
        self,
        api: Any,
        instructor_id: Optional[str],
        booking_config: Optional[BookingConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._api = api
        self._instructor_id = instructor_id
        self._clock = clock
        self.loader = DataLoader(api, LoadOwner.INSTRUCTOR, booking_config)
        self.window: Optional[DateWindow] = None
        self.toast: Optional[Toast] = None
        self.updating_id: Optional[str] = None

    @property
    def linked(self) -> bool:
        return bool(self._instructor_id)

    async def load(self, window: Optional[DateWindow] = None) -> LoadResult:
        if not self._instructor_id:
            self.toast = Toast.danger("Profilo istruttore mancante")
            return LoadResult.FAILED
        if window is not None:
            self.window = window
        result = await self.loader.load(self._instructor_id, self.window)
        if result == LoadResult.FAILED:
            self.toast = self.loader.toast
        return result

    @property
    def appointments(self) -> list[Appointment]:
        return self.loader.data.appointments if self.loader.data else []

    def agenda(self) -> list[Appointment]:
        return instructor_agenda(self.appointments, self._clock())

    def today(self) -> list[Appointment]:
        return lessons_on_day(self.appointments, self._clock())

    async def update_status(self, appointment_id: str, status: str) -> Optional[Toast]:
        if self.updating_id is not None:
            return None
        if status not in INSTRUCTOR_STATUSES:
            self.toast = Toast.danger("Stato non valido")
            return self.toast
        self.updating_id = appointment_id
        try:
            try:
                await self._api.update_appointment_status(appointment_id, status)
            except DomainConflict as exc:
                self.toast = Toast.info(str(exc) or "Guida già aggiornata")
                return self.toast
            except RegloError as exc:
                logger.warning("Status update for %s failed: %s", appointment_id, exc)
                self.toast = Toast.danger(str(exc) or "Errore aggiornando stato")
                return self.toast
            self.toast = Toast.success("Stato aggiornato")
            await self.load()
            return self.toast
        finally:
            self.updating_id = None
