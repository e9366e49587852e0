"""Instructor proposals waiting for the student's answer."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from reglo_client.coordination.appointments import pending_proposal
from reglo_client.coordination.sheet_arbiter import Sheet, SheetArbiter
from reglo_client.errors import DomainConflict, NetworkError
from reglo_client.schemas.booking_schema import Appointment, AppointmentStatus
from reglo_client.schemas.feedback_schema import Toast
from reglo_client.utils import utc_now

logger = logging.getLogger(__name__)

Reload = Callable[[], Awaitable[Any]]


class ProposalStatus(str, Enum):
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CONFLICT = "conflict"
    FAILED = "failed"
    BUSY = "busy"
    UNKNOWN = "unknown"


@dataclass
class ProposalOutcome:
    status: ProposalStatus
    toast: Optional[Toast] = None


class ProposalCoordinator:
    """Tracks the pending proposal derived from the last applied load."""

    def __init__(
        self,
        api: Any,
        arbiter: SheetArbiter,
        reload: Optional[Reload] = None,
        clock: Callable[[], Any] = utc_now,
    ) -> None:
        self._api = api
        self._arbiter = arbiter
        self._reload = reload
        self._clock = clock
        self._proposal: Optional[Appointment] = None
        self._in_flight_id: Optional[str] = None
        self._dismissed_id: Optional[str] = None

    @property
    def proposal(self) -> Optional[Appointment]:
        return self._proposal

    @property
    def in_flight_id(self) -> Optional[str]:
        return self._in_flight_id

    def sync(self, appointments: list[Appointment]) -> Optional[Appointment]:
        """Pick up the pending proposal after a load and surface it if possible."""
        self._proposal = pending_proposal(appointments, self._clock())
        if self._proposal is None:
            self._arbiter.close(Sheet.PROPOSAL)
        elif self._proposal.id != self._dismissed_id:
            self._arbiter.request(Sheet.PROPOSAL)
        return self._proposal

    def force_surface(self) -> bool:
        """Surface on a push intent even if the sheet was dismissed before."""
        if self._proposal is None:
            return False
        self._dismissed_id = None
        return self._arbiter.request(Sheet.PROPOSAL)

    def dismiss(self) -> None:
        """Hide the sheet without answering; later loads keep it hidden."""
        if self._proposal is not None:
            self._dismissed_id = self._proposal.id
        self._arbiter.close(Sheet.PROPOSAL)

    async def accept_proposal(self, appointment_id: str) -> ProposalOutcome:
        return await self._respond(
            appointment_id,
            accept=True,
            done=Toast.success("Proposta accettata"),
            fallback="Errore accettando la proposta",
        )

    async def decline_proposal(self, appointment_id: str) -> ProposalOutcome:
        return await self._respond(
            appointment_id,
            accept=False,
            done=Toast.info("Proposta rifiutata"),
            fallback="Errore rifiutando la proposta",
        )

    async def _respond(
        self, appointment_id: str, accept: bool, done: Toast, fallback: str
    ) -> ProposalOutcome:
        if self._in_flight_id is not None:
            return ProposalOutcome(ProposalStatus.BUSY)
        if self._proposal is None or self._proposal.id != appointment_id:
            return ProposalOutcome(ProposalStatus.UNKNOWN)

        self._in_flight_id = appointment_id
        try:
            try:
                if accept:
                    await self._api.update_appointment_status(
                        appointment_id, AppointmentStatus.SCHEDULED.value
                    )
                else:
                    await self._api.cancel_appointment(appointment_id)
            except DomainConflict as exc:
                logger.info("Proposal %s no longer pending: %s", appointment_id, exc)
                self._clear()
                return ProposalOutcome(
                    ProposalStatus.CONFLICT,
                    toast=Toast.info("Proposta non più disponibile"),
                )
            except NetworkError as exc:
                logger.warning("Answering proposal %s failed: %s", appointment_id, exc)
                return ProposalOutcome(ProposalStatus.FAILED, toast=Toast.danger(str(exc) or fallback))

            self._clear()
            if self._reload is not None:
                await self._reload()
            return ProposalOutcome(
                ProposalStatus.ACCEPTED if accept else ProposalStatus.DECLINED, toast=done
            )
        finally:
            self._in_flight_id = None

    def _clear(self) -> None:
        self._proposal = None
        self._arbiter.close(Sheet.PROPOSAL)
