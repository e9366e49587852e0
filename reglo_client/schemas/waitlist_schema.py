"""Waitlist offer data models."""

from typing import Optional

from reglo_client.schemas.base_schema import WireModel
from reglo_client.schemas.booking_schema import Appointment


class OfferSlot(WireModel):
    starts_at: str
    ends_at: str


class WaitlistOffer(WireModel):
    """A freed slot offered to waiting students until it expires."""
    id: str
    slot: OfferSlot
    expires_at: str
    status: str = "broadcasted"


class WaitlistResponse(WireModel):
    id: Optional[str] = None
    offer_id: Optional[str] = None
    student_id: Optional[str] = None
    status: str


class RespondWaitlistOfferInput(WireModel):
    student_id: str
    response: str


class RespondWaitlistOfferResult(WireModel):
    accepted: bool
    response: WaitlistResponse
    appointment: Optional[Appointment] = None
