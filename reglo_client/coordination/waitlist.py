"""Waitlist offers: a freed slot offered to the student until it expires."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from reglo_client.config import BookingConfig, settings
from reglo_client.coordination.race_guard import GenerationGuard
from reglo_client.coordination.sheet_arbiter import Sheet, SheetArbiter
from reglo_client.errors import DomainConflict, NetworkError, RegloError
from reglo_client.schemas.booking_schema import Appointment
from reglo_client.schemas.feedback_schema import Toast
from reglo_client.schemas.waitlist_schema import RespondWaitlistOfferInput, WaitlistOffer
from reglo_client.utils import parse_iso, utc_now

logger = logging.getLogger(__name__)

Clock = Callable[[], Any]
Reload = Callable[[], Awaitable[Any]]


class OfferStatus(str, Enum):
    ACCEPTED = "accepted"
    TAKEN = "taken"
    DECLINED = "declined"
    FAILED = "failed"
    BUSY = "busy"
    UNKNOWN = "unknown"


@dataclass
class OfferOutcome:
    status: OfferStatus
    toast: Optional[Toast] = None
    appointment: Optional[Appointment] = None


class WaitlistCoordinator:
    """Holds at most one current offer for a student."""

    def __init__(
        self,
        api: Any,
        arbiter: SheetArbiter,
        student_id: str,
        reload: Optional[Reload] = None,
        clock: Clock = utc_now,
        booking_config: Optional[BookingConfig] = None,
    ) -> None:
        self._api = api
        self._arbiter = arbiter
        self._student_id = student_id
        self._reload = reload
        self._clock = clock
        self._booking = booking_config or settings.booking
        self._offer: Optional[WaitlistOffer] = None
        self._in_flight = False
        self._guard = GenerationGuard()

    @property
    def offer(self) -> Optional[WaitlistOffer]:
        return self._offer

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def fetch_offer(self) -> Optional[WaitlistOffer]:
        """Refresh the current offer and surface it if the slot is free.

        A failed fetch keeps whatever offer was already known. Only the
        latest issued fetch is applied; older responses are dropped.
        """
        sequence = self._guard.issue()
        try:
            offers = await self._api.get_waitlist_offers(
                self._student_id, limit=self._booking.waitlist_offer_limit
            )
        except RegloError as exc:
            logger.warning("Waitlist fetch failed: %s", exc)
            return self._offer

        if not self._guard.is_current(sequence):
            logger.debug("Discarding stale waitlist fetch %d", sequence)
            return self._offer

        self._offer = offers[0] if offers else None
        if self._offer is None:
            self._arbiter.close(Sheet.WAITLIST)
        elif self._is_expired(self._offer):
            logger.debug("Offer %s already expired; not surfacing", self._offer.id)
            self._arbiter.close(Sheet.WAITLIST)
        else:
            self._arbiter.request(Sheet.WAITLIST)
        return self._offer

    async def accept_offer(self, offer_id: str) -> OfferOutcome:
        if self._in_flight:
            return OfferOutcome(OfferStatus.BUSY)
        if self._offer is None or self._offer.id != offer_id:
            return OfferOutcome(OfferStatus.UNKNOWN, toast=Toast.info("Offerta non più disponibile"))

        self._in_flight = True
        try:
            try:
                result = await self._api.respond_waitlist_offer(
                    offer_id,
                    RespondWaitlistOfferInput(student_id=self._student_id, response="accept"),
                )
            except DomainConflict:
                outcome = OfferOutcome(
                    OfferStatus.TAKEN, toast=Toast.info("Slot non più disponibile")
                )
            except NetworkError as exc:
                logger.warning("Accepting offer %s failed: %s", offer_id, exc)
                return OfferOutcome(
                    OfferStatus.FAILED, toast=Toast.danger(str(exc) or "Errore accettando l'offerta")
                )
            else:
                if result.accepted:
                    outcome = OfferOutcome(
                        OfferStatus.ACCEPTED,
                        toast=Toast.success("Guida prenotata"),
                        appointment=result.appointment,
                    )
                else:
                    outcome = OfferOutcome(
                        OfferStatus.TAKEN, toast=Toast.info("Slot non più disponibile")
                    )

            self._dismiss()
            if outcome.status == OfferStatus.ACCEPTED and self._reload is not None:
                await self._reload()
            await self.fetch_offer()
            return outcome
        finally:
            self._in_flight = False

    async def decline_offer(self, offer_id: str) -> OfferOutcome:
        if self._in_flight:
            return OfferOutcome(OfferStatus.BUSY)
        if self._offer is None or self._offer.id != offer_id:
            return OfferOutcome(OfferStatus.UNKNOWN)

        self._in_flight = True
        try:
            try:
                await self._api.respond_waitlist_offer(
                    offer_id,
                    RespondWaitlistOfferInput(student_id=self._student_id, response="decline"),
                )
            except DomainConflict as exc:
                logger.info("Offer %s already closed: %s", offer_id, exc)
            except NetworkError as exc:
                logger.warning("Declining offer %s failed: %s", offer_id, exc)
                return OfferOutcome(
                    OfferStatus.FAILED, toast=Toast.danger(str(exc) or "Errore rifiutando l'offerta")
                )
            self._dismiss()
            await self.fetch_offer()
            return OfferOutcome(OfferStatus.DECLINED, toast=Toast.info("Offerta rifiutata"))
        finally:
            self._in_flight = False

    def _dismiss(self) -> None:
        self._offer = None
        self._arbiter.close(Sheet.WAITLIST)

    def _is_expired(self, offer: WaitlistOffer) -> bool:
        try:
            return parse_iso(offer.expires_at) <= self._clock()
        except ValueError:
            return False
