"""Payment profile data models consumed by the student home."""

from typing import Optional

from pydantic import Field

from reglo_client.schemas.base_schema import WireModel


class OutstandingPayment(WireModel):
    appointment_id: str
    amount: float = 0.0
    status: str = "insoluto"


class PaymentProfile(WireModel):
    auto_payments_enabled: bool = False
    has_payment_method: bool = False
    blocked_by_insoluti: bool = False
    outstanding: list[OutstandingPayment] = Field(default_factory=list)


class PaymentHistoryItem(WireModel):
    appointment_id: str
    amount: float = 0.0
    status: str
    paid_at: Optional[str] = None
