"""Booking negotiation, appointment and availability data models."""

from enum import Enum
from typing import Optional

from pydantic import Field

from reglo_client.schemas.base_schema import WireModel


class AppointmentStatus(str, Enum):
    """Lifecycle of a lesson appointment."""
    PROPOSAL = "proposal"
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"


class BookingRequestStatus(str, Enum):
    PENDING = "pending"
    MATCHED = "matched"
    CANCELLED = "cancelled"


class Student(WireModel):
    id: str
    company_id: Optional[str] = None
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    status: str = "active"


class Suggestion(WireModel):
    """One candidate slot offered by the backend for a booking request."""
    starts_at: str
    ends_at: str


class BookingRequest(WireModel):
    id: str
    student_id: Optional[str] = None
    desired_date: Optional[str] = None
    status: str = BookingRequestStatus.PENDING.value


class Appointment(WireModel):
    id: str
    student_id: str
    instructor_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    type: str = "guida"
    starts_at: str
    ends_at: Optional[str] = None
    status: str = AppointmentStatus.SCHEDULED.value
    notes: Optional[str] = None

    @property
    def normalized_status(self) -> str:
        return (self.status or "").strip().lower()


class CreateBookingRequestInput(WireModel):
    student_id: str
    preferred_date: str
    duration_minutes: int
    lesson_type: Optional[str] = None
    preferred_start_time: Optional[str] = None
    preferred_end_time: Optional[str] = None
    max_days: Optional[int] = None
    selected_starts_at: Optional[str] = None
    exclude_starts_at: Optional[str] = None
    request_id: Optional[str] = None


class CreateBookingRequestResult(WireModel):
    """Either a matched appointment or an unmatched request with an optional suggestion."""
    matched: bool
    request: BookingRequest
    appointment: Optional[Appointment] = None
    suggestion: Optional[Suggestion] = None


class CancelAppointmentResult(WireModel):
    rescheduled: bool
    new_starts_at: Optional[str] = None
    broadcasted: Optional[bool] = None


class BookingOptions(WireModel):
    """Durations and lesson types a student may request."""
    durations: list[int] = Field(default_factory=list)
    lesson_types: list[str] = Field(default_factory=list)


class AutoscuolaSettings(WireModel):
    availability_weeks: int = 4
    auto_payments_enabled: bool = False
    student_booking_enabled: bool = True


class AvailabilitySlot(WireModel):
    id: str
    owner_type: str
    owner_id: str
    starts_at: str
    ends_at: str
    status: str = "open"


class AvailabilitySlotsInput(WireModel):
    owner_type: str
    owner_id: str
    starts_at: str
    ends_at: str
    days_of_week: Optional[list[int]] = None
    weeks: Optional[int] = None


class SlotsCountResult(WireModel):
    count: int = 0
