"""
Shared "load the current state for a student or instructor" operation.

Every screen-level coordinator reloads through one DataLoader. Loads can
overlap (pull-to-refresh, push intents, returning to foreground); the
generation guard makes the most recently *issued* load the only one whose
result is applied, whatever order the responses arrive in.

Usage:
    loader = DataLoader(api)
    result = await loader.load("student-1")
    if result == LoadResult.APPLIED:
        render(loader.data.appointments)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from reglo_client.config import BookingConfig, settings
from reglo_client.coordination.race_guard import GenerationGuard
from reglo_client.errors import RegloError
from reglo_client.schemas.booking_schema import Appointment, AutoscuolaSettings, BookingOptions
from reglo_client.schemas.feedback_schema import Toast
from reglo_client.schemas.payment_schema import PaymentHistoryItem, PaymentProfile

logger = logging.getLogger(__name__)


class LoadOwner(str, Enum):
    STUDENT = "student"
    INSTRUCTOR = "instructor"


class LoadResult(str, Enum):
    """Outcome of one load call."""
    APPLIED = "applied"
    STALE = "stale"  # superseded by a newer load; discarded silently
    FAILED = "failed"


@dataclass(frozen=True)
class DateWindow:
    """Inclusive date range used to scope appointment loads."""
    date_from: str
    date_to: str

    @property
    def key(self) -> str:
        return f"{self.date_from}..{self.date_to}"


@dataclass
class LoadedData:
    """Everything a home screen renders, applied atomically."""
    appointments: list[Appointment] = field(default_factory=list)
    settings: Optional[AutoscuolaSettings] = None
    payment_profile: Optional[PaymentProfile] = None
    payment_history: list[PaymentHistoryItem] = field(default_factory=list)
    booking_options: Optional[BookingOptions] = None


class DataLoader:
    """Loads appointments, settings and payment data for one owner."""

    def __init__(
        self,
        api: Any,
        owner: LoadOwner = LoadOwner.STUDENT,
        booking_config: Optional[BookingConfig] = None,
    ) -> None:
        self._api = api
        self._owner = owner
        self._booking = booking_config or settings.booking
        self._guard = GenerationGuard()
        self.data: Optional[LoadedData] = None
        self.loading: bool = False
        self.window_loading: bool = False
        self.applied_window: Optional[DateWindow] = None
        self.toast: Optional[Toast] = None

    @property
    def latest_sequence(self) -> int:
        return self._guard.latest

    async def load(self, owner_id: str, window: Optional[DateWindow] = None) -> LoadResult:
        """
        Fetch and apply the owner's current state.

        Args:
            owner_id: Student id or instructor id, depending on the loader owner.
            window: Optional date window; a change of window raises the
                separate ``window_loading`` indicator.

        Returns:
            APPLIED when this call's data is now current, STALE when a newer
            call was issued before it resolved, FAILED on a network error.
        """
        sequence = self._guard.issue()
        self.loading = True
        self.window_loading = window is not None and window != self.applied_window
        self.toast = None

        try:
            batch = await asyncio.gather(*self._parallel_reads(owner_id, window))
        except RegloError as exc:
            return self._fail(sequence, exc)

        if not self._guard.is_current(sequence):
            logger.debug("Discarding stale load #%s for %s", sequence, owner_id)
            return LoadResult.STALE

        loaded = self._assemble(owner_id, batch)

        if self._needs_booking_options(loaded):
            try:
                loaded.booking_options = await self._api.get_booking_options(owner_id)
            except RegloError as exc:
                return self._fail(sequence, exc)
            if not self._guard.is_current(sequence):
                logger.debug("Discarding stale load #%s after booking options", sequence)
                return LoadResult.STALE

        self.data = loaded
        self.applied_window = window
        self.loading = False
        self.window_loading = False
        logger.debug(
            "Applied load #%s for %s: %d appointments",
            sequence, owner_id, len(loaded.appointments),
        )
        return LoadResult.APPLIED

    def _parallel_reads(self, owner_id: str, window: Optional[DateWindow]) -> list:
        date_from = window.date_from if window else None
        date_to = window.date_to if window else None
        if self._owner == LoadOwner.INSTRUCTOR:
            return [
                self._api.get_appointments(
                    instructor_id=owner_id, date_from=date_from, date_to=date_to
                ),
                self._api.get_autoscuola_settings(),
            ]
        return [
            self._api.get_appointments(student_id=owner_id, date_from=date_from, date_to=date_to),
            self._api.get_autoscuola_settings(),
            self._api.get_payment_profile(),
            self._api.get_payment_history(self._booking.payment_history_limit),
        ]

    def _assemble(self, owner_id: str, batch: list) -> LoadedData:
        appointments: list[Appointment] = batch[0]
        if self._owner == LoadOwner.INSTRUCTOR:
            return LoadedData(
                appointments=[a for a in appointments if a.instructor_id == owner_id],
                settings=batch[1],
            )
        return LoadedData(
            appointments=[a for a in appointments if a.student_id == owner_id],
            settings=batch[1],
            payment_profile=batch[2],
            payment_history=batch[3],
        )

    def _needs_booking_options(self, loaded: LoadedData) -> bool:
        return (
            self._owner == LoadOwner.STUDENT
            and loaded.settings is not None
            and loaded.settings.student_booking_enabled
        )

    def _fail(self, sequence: int, exc: RegloError) -> LoadResult:
        if not self._guard.is_current(sequence):
            logger.debug("Ignoring failure of stale load #%s: %s", sequence, exc)
            return LoadResult.STALE
        logger.warning("Load #%s failed: %s", sequence, exc)
        self.loading = False
        self.window_loading = False
        self.toast = Toast.danger(str(exc) or "Errore nel caricamento")
        return LoadResult.FAILED
