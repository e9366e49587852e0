"""Shared test fixtures and helpers."""

from datetime import datetime, timezone
from typing import Optional

import pytest

from reglo_client.api.in_memory import InMemoryRegloApi
from reglo_client.config import BookingConfig
from reglo_client.coordination.push_bridge import NotificationCenter
from reglo_client.coordination.sheet_arbiter import SheetArbiter
from reglo_client.schemas.booking_schema import Appointment, AppointmentStatus, Student
from reglo_client.schemas.session_schema import AutoscuolaRole, CompanySummary
from reglo_client.schemas.waitlist_schema import OfferSlot, WaitlistOffer
from reglo_client.storage.secure_store import MemorySecureStore
from reglo_client.storage.session_storage import AuthStorage, PushStorage, SessionStorage

NOW = datetime(2024, 4, 30, 8, 0, tzinfo=timezone.utc)
STUDENT_EMAIL = "giulia.bianchi@example.com"


def fixed_clock() -> datetime:
    return NOW


class FakeNotifications(NotificationCenter):
    """Scriptable notification service."""

    def __init__(
        self,
        device: bool = True,
        permission: bool = True,
        token: Optional[str] = "ExponentPushToken[test]",
        last_response: Optional[dict] = None,
    ) -> None:
        self.device = device
        self.permission = permission
        self.token = token
        self.last_response = last_response
        self.cleared = 0

    def is_device(self) -> bool:
        return self.device

    async def request_permission(self) -> bool:
        return self.permission

    async def get_push_token(self) -> Optional[str]:
        return self.token

    async def get_last_response_data(self) -> Optional[dict]:
        return self.last_response

    async def clear_last_response(self) -> None:
        self.last_response = None
        self.cleared += 1


def make_company(
    company_id: str = "c1",
    role: Optional[AutoscuolaRole] = AutoscuolaRole.STUDENT,
    name: str = "Autoscuola Centrale",
) -> CompanySummary:
    return CompanySummary(id=company_id, name=name, autoscuola_role=role)


def make_appointment(
    appointment_id: str,
    starts_at: str,
    status: str = AppointmentStatus.SCHEDULED.value,
    student_id: str = "S1",
    instructor_id: Optional[str] = "i1",
    ends_at: Optional[str] = None,
) -> Appointment:
    return Appointment(
        id=appointment_id,
        student_id=student_id,
        instructor_id=instructor_id,
        starts_at=starts_at,
        ends_at=ends_at,
        status=status,
    )


def make_offer(
    offer_id: str = "o1",
    starts_at: str = "2024-05-04T10:00Z",
    ends_at: str = "2024-05-04T11:00Z",
    expires_at: str = "2024-05-01T00:00Z",
) -> WaitlistOffer:
    return WaitlistOffer(
        id=offer_id,
        slot=OfferSlot(starts_at=starts_at, ends_at=ends_at),
        expires_at=expires_at,
    )


@pytest.fixture
def api():
    return InMemoryRegloApi()


@pytest.fixture
def student_api(api):
    """Backend with one student account linked to student S1."""
    api.add_account(STUDENT_EMAIL, "Giulia Bianchi", [make_company()])
    api.add_student(
        Student(id="S1", company_id="c1", first_name="Giulia", last_name="Bianchi", email=STUDENT_EMAIL)
    )
    return api


@pytest.fixture
def store():
    return MemorySecureStore()


@pytest.fixture
def auth_storage(store):
    return AuthStorage(store)


@pytest.fixture
def session_storage(store):
    return SessionStorage(store)


@pytest.fixture
def push_storage(store):
    return PushStorage(store)


@pytest.fixture
def arbiter():
    return SheetArbiter()


@pytest.fixture
def booking_config():
    return BookingConfig(
        allowed_durations=(30, 60, 90, 120),
        max_days=4,
        waitlist_offer_limit=1,
        history_page_size=2,
        payment_history_limit=80,
        availability_weeks=4,
    )


@pytest.fixture
def notifications():
    return FakeNotifications()
