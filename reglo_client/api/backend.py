"""Typed backend operations consumed by the coordinators.

Each method issues one request through ``RegloApiClient`` and parses the
response into the matching pydantic model. A malformed response is a
backend failure, reported as ``BackendRequestError``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, TypeVar

import pydantic
from pydantic import BaseModel

from reglo_client.api.client import RegloApiClient
from reglo_client.errors import BackendRequestError
from reglo_client.schemas.booking_schema import (
    Appointment,
    AutoscuolaSettings,
    AvailabilitySlot,
    AvailabilitySlotsInput,
    BookingOptions,
    CancelAppointmentResult,
    CreateBookingRequestInput,
    CreateBookingRequestResult,
    SlotsCountResult,
    Student,
)
from reglo_client.schemas.payment_schema import PaymentHistoryItem, PaymentProfile
from reglo_client.schemas.session_schema import (
    AuthPayload,
    MePayload,
    SelectCompanyPayload,
    SignupInput,
)
from reglo_client.schemas.waitlist_schema import (
    RespondWaitlistOfferInput,
    RespondWaitlistOfferResult,
    WaitlistOffer,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _parse(model: type[M], payload: Any) -> M:
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise BackendRequestError(f"Unexpected {model.__name__} payload", payload=payload) from exc


def _parse_list(model: type[M], payload: Any) -> list[M]:
    if not isinstance(payload, list):
        raise BackendRequestError(f"Expected a list of {model.__name__}", payload=payload)
    return [_parse(model, item) for item in payload]


class RegloApi:
    """Reglo mobile and autoscuole endpoints."""

    def __init__(self, client: RegloApiClient) -> None:
        self.client = client

    async def aclose(self) -> None:
        await self.client.aclose()

    # --- auth / identity ---

    async def login(self, email: str, password: str) -> AuthPayload:
        data = await self.client.request(
            "POST", "/api/mobile/auth/login", json={"email": email, "password": password}
        )
        return _parse(AuthPayload, data)

    async def signup(self, payload: SignupInput) -> AuthPayload:
        data = await self.client.request("POST", "/api/mobile/auth/signup", json=payload.to_wire())
        return _parse(AuthPayload, data)

    async def logout(self) -> None:
        await self.client.request("POST", "/api/mobile/auth/logout")

    async def me(self) -> MePayload:
        return _parse(MePayload, await self.client.request("GET", "/api/mobile/me"))

    async def select_company(self, company_id: str) -> SelectCompanyPayload:
        data = await self.client.request(
            "POST", "/api/mobile/auth/select-company", json={"companyId": company_id}
        )
        return _parse(SelectCompanyPayload, data)

    # --- students / appointments ---

    async def get_students(self, search: Optional[str] = None) -> list[Student]:
        data = await self.client.request(
            "GET", "/api/autoscuole/students", params={"search": search}
        )
        return _parse_list(Student, data)

    async def get_appointments(
        self,
        *,
        student_id: Optional[str] = None,
        instructor_id: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> list[Appointment]:
        data = await self.client.request(
            "GET",
            "/api/autoscuole/appointments",
            params={
                "studentId": student_id,
                "instructorId": instructor_id,
                "from": date_from,
                "to": date_to,
            },
        )
        return _parse_list(Appointment, data)

    async def update_appointment_status(self, appointment_id: str, status: str) -> Appointment:
        data = await self.client.request(
            "PATCH",
            f"/api/autoscuole/appointments/{appointment_id}/status",
            json={"status": status},
        )
        return _parse(Appointment, data)

    async def cancel_appointment(self, appointment_id: str) -> CancelAppointmentResult:
        data = await self.client.request(
            "POST", f"/api/autoscuole/appointments/{appointment_id}/cancel"
        )
        return _parse(CancelAppointmentResult, data)

    # --- settings / payments ---

    async def get_autoscuola_settings(self) -> AutoscuolaSettings:
        return _parse(
            AutoscuolaSettings, await self.client.request("GET", "/api/autoscuole/settings")
        )

    async def get_booking_options(self, student_id: str) -> BookingOptions:
        data = await self.client.request(
            "GET", "/api/autoscuole/booking-options", params={"studentId": student_id}
        )
        return _parse(BookingOptions, data)

    async def get_payment_profile(self) -> PaymentProfile:
        return _parse(
            PaymentProfile, await self.client.request("GET", "/api/mobile/payments/profile")
        )

    async def get_payment_history(self, limit: Optional[int] = None) -> list[PaymentHistoryItem]:
        data = await self.client.request(
            "GET", "/api/mobile/payments/history", params={"limit": limit}
        )
        return _parse_list(PaymentHistoryItem, data)

    # --- negotiation / waitlist ---

    async def create_booking_request(
        self, payload: CreateBookingRequestInput
    ) -> CreateBookingRequestResult:
        data = await self.client.request(
            "POST", "/api/autoscuole/booking-requests", json=payload.to_wire()
        )
        return _parse(CreateBookingRequestResult, data)

    async def get_waitlist_offers(
        self, student_id: str, limit: Optional[int] = None
    ) -> list[WaitlistOffer]:
        data = await self.client.request(
            "GET",
            "/api/autoscuole/waitlist/offers",
            params={"studentId": student_id, "limit": limit},
        )
        return _parse_list(WaitlistOffer, data)

    async def respond_waitlist_offer(
        self, offer_id: str, payload: RespondWaitlistOfferInput
    ) -> RespondWaitlistOfferResult:
        data = await self.client.request(
            "POST",
            f"/api/autoscuole/waitlist/offers/{offer_id}/respond",
            json=payload.to_wire(),
        )
        return _parse(RespondWaitlistOfferResult, data)

    # --- availability ---

    async def get_availability_slots(
        self, owner_type: str, owner_id: str, date: str
    ) -> list[AvailabilitySlot]:
        data = await self.client.request(
            "GET",
            "/api/autoscuole/availability/slots",
            params={"ownerType": owner_type, "ownerId": owner_id, "date": date},
        )
        return _parse_list(AvailabilitySlot, data)

    async def create_availability_slots(self, payload: AvailabilitySlotsInput) -> SlotsCountResult:
        data = await self.client.request(
            "POST", "/api/autoscuole/availability/slots", json=payload.to_wire()
        )
        return _parse(SlotsCountResult, data)

    async def delete_availability_slots(self, payload: AvailabilitySlotsInput) -> SlotsCountResult:
        data = await self.client.request(
            "DELETE", "/api/autoscuole/availability/slots", json=payload.to_wire()
        )
        return _parse(SlotsCountResult, data)

    # --- push ---

    async def register_push_token(self, token: str, platform: str) -> None:
        await self.client.request(
            "POST", "/api/mobile/push/register", json={"token": token, "platform": platform}
        )

    async def unregister_push_token(self, token: str) -> None:
        await self.client.request("POST", "/api/mobile/push/unregister", json={"token": token})
