"""
Student weekly availability preset.

The preset is read back from the next seven days of slots: the weekdays
that have at least one usable slot, the earliest start and the latest end.
Saving replaces the recurring slots over ``availability_weeks`` weeks.

Weekdays use the backend numbering: 0 is Sunday, 6 is Saturday.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any, Callable, Optional

from reglo_client.errors import BackendRequestError, DomainConflict, RegloError, ValidationError
from reglo_client.schemas.booking_schema import AvailabilitySlot, AvailabilitySlotsInput
from reglo_client.schemas.feedback_schema import Toast
from reglo_client.utils import parse_iso, to_date_string, utc_now

logger = logging.getLogger(__name__)

OWNER_STUDENT = "student"
ALL_WEEKDAYS = [0, 1, 2, 3, 4, 5, 6]
PRESET_DAYS = 7


def backend_weekday(value: datetime) -> int:
    """Python weekday (Monday=0) to backend weekday (Sunday=0)."""
    return (value.weekday() + 1) % 7


@dataclass
class AvailabilityPreset:
    days: list[int] = field(default_factory=list)
    start: time = time(9, 0)
    end: time = time(18, 0)


def derive_preset(days: list[tuple[datetime, list[AvailabilitySlot]]]) -> AvailabilityPreset:
    """Build the preset from ``(day, slots)`` pairs; no usable slot gives the default."""
    day_set: set[int] = set()
    starts: list[time] = []
    ends: list[time] = []
    for day, slots in days:
        usable = sorted(
            (slot for slot in slots if slot.status != "cancelled"),
            key=lambda slot: parse_iso(slot.starts_at),
        )
        if not usable:
            continue
        tz = day.tzinfo
        first = parse_iso(usable[0].starts_at).astimezone(tz)
        last = parse_iso(usable[-1].ends_at).astimezone(tz)
        day_set.add(backend_weekday(day))
        starts.append(first.time().replace(second=0, microsecond=0))
        ends.append(last.time().replace(second=0, microsecond=0))

    if not day_set:
        return AvailabilityPreset(days=[])
    return AvailabilityPreset(days=sorted(day_set), start=min(starts), end=max(ends))


class AvailabilityCoordinator:
    """Loads and saves one student's recurring availability."""

    def __init__(
        self,
        api: Any,
        student_id: str,
        weeks: int = 4,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._api = api
        self._student_id = student_id
        self._weeks = weeks
        self._clock = clock
        self.preset = AvailabilityPreset()
        self.saving = False

    def set_weeks(self, weeks: int) -> None:
        self._weeks = weeks

    async def load_preset(self) -> Optional[Toast]:
        anchor = self._anchor()
        dates = [anchor + timedelta(days=offset) for offset in range(PRESET_DAYS)]
        try:
            responses = await asyncio.gather(*[
                self._api.get_availability_slots(OWNER_STUDENT, self._student_id, to_date_string(day))
                for day in dates
            ])
        except RegloError as exc:
            logger.warning("Loading availability preset failed: %s", exc)
            return Toast.danger(str(exc) or "Errore caricando disponibilita")
        self.preset = derive_preset(list(zip(dates, responses)))
        return None

    async def save(self, days: list[int], start: time, end: time) -> Toast:
        if self.saving:
            return Toast.info("Salvataggio in corso")
        try:
            self._validate(days, end, start)
        except ValidationError as exc:
            return Toast.danger(str(exc))

        anchor = self._anchor()
        self.saving = True
        try:
            await self._clear_existing(anchor)
            await self._api.create_availability_slots(
                AvailabilitySlotsInput(
                    owner_type=OWNER_STUDENT,
                    owner_id=self._student_id,
                    starts_at=self._at(anchor, start).isoformat(),
                    ends_at=self._at(anchor, end).isoformat(),
                    days_of_week=sorted(set(days)),
                    weeks=self._weeks,
                )
            )
        except RegloError as exc:
            logger.warning("Saving availability failed: %s", exc)
            return Toast.danger(str(exc) or "Errore salvando disponibilita")
        finally:
            self.saving = False

        await self.load_preset()
        return Toast.success("Disponibilita salvata")

    async def _clear_existing(self, anchor: datetime) -> None:
        try:
            await self._api.delete_availability_slots(
                AvailabilitySlotsInput(
                    owner_type=OWNER_STUDENT,
                    owner_id=self._student_id,
                    starts_at=anchor.isoformat(),
                    ends_at=self._at(anchor, time(23, 59)).isoformat(),
                    days_of_week=ALL_WEEKDAYS,
                    weeks=self._weeks,
                )
            )
        except (BackendRequestError, DomainConflict) as exc:
            if "nessuno slot" not in str(exc).lower():
                raise
            logger.debug("No existing availability to clear")

    def _validate(self, days: list[int], end: time, start: time) -> None:
        if not days:
            raise ValidationError("Seleziona almeno un giorno")
        if any(day not in ALL_WEEKDAYS for day in days):
            raise ValidationError("Giorno non valido")
        if end <= start:
            raise ValidationError("Orario non valido")

    def _anchor(self) -> datetime:
        return self._clock().replace(hour=0, minute=0, second=0, microsecond=0)

    @staticmethod
    def _at(anchor: datetime, at: time) -> datetime:
        return anchor.replace(hour=at.hour, minute=at.minute)
