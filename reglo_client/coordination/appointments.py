"""Derived appointment views shown on the home screens."""

from datetime import datetime
from typing import Optional

from reglo_client.schemas.booking_schema import Appointment, AppointmentStatus, Student
from reglo_client.utils import normalize_text, parse_iso

UPCOMING_STATUSES = frozenset({
    AppointmentStatus.SCHEDULED.value,
    AppointmentStatus.CONFIRMED.value,
    AppointmentStatus.CHECKED_IN.value,
})


def upcoming_lessons(appointments: list[Appointment], now: datetime) -> list[Appointment]:
    """Confirmed lessons that have not started yet, soonest first."""
    items = [
        a for a in appointments
        if a.normalized_status in UPCOMING_STATUSES and parse_iso(a.starts_at) >= now
    ]
    return sorted(items, key=lambda a: parse_iso(a.starts_at))


def lesson_history(
    appointments: list[Appointment], now: datetime, limit: Optional[int] = None
) -> list[Appointment]:
    """Lessons that already started, most recent first."""
    items = sorted(
        (a for a in appointments if parse_iso(a.starts_at) < now),
        key=lambda a: parse_iso(a.starts_at),
        reverse=True,
    )
    return items if limit is None else items[:limit]


def pending_proposal(appointments: list[Appointment], now: datetime) -> Optional[Appointment]:
    """The earliest future appointment still waiting for the student's answer."""
    proposals = [
        a for a in appointments
        if a.normalized_status == AppointmentStatus.PROPOSAL.value
        and parse_iso(a.starts_at) >= now
    ]
    if not proposals:
        return None
    return min(proposals, key=lambda a: parse_iso(a.starts_at))


def find_linked_student(students: list[Student], email: str, name: Optional[str]) -> Optional[Student]:
    """Match the signed-in user to a student record, by email then by full name."""
    wanted_email = normalize_text(email)
    if wanted_email:
        for student in students:
            if normalize_text(student.email) == wanted_email:
                return student

    wanted_name = normalize_text(name)
    if not wanted_name:
        return None
    for student in students:
        full_name = f"{normalize_text(student.first_name)} {normalize_text(student.last_name)}"
        if full_name == wanted_name:
            return student
    return None


def instructor_agenda(appointments: list[Appointment], now: datetime) -> list[Appointment]:
    """Everything not cancelled from now on, soonest first."""
    items = [
        a for a in appointments
        if a.normalized_status != AppointmentStatus.CANCELLED.value
        and parse_iso(a.starts_at) >= now
    ]
    return sorted(items, key=lambda a: parse_iso(a.starts_at))


def lessons_on_day(appointments: list[Appointment], day: datetime) -> list[Appointment]:
    return [
        a for a in appointments
        if parse_iso(a.starts_at).astimezone(day.tzinfo).date() == day.date()
    ]
