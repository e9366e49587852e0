from reglo_client.coordination.data_loader import DataLoader, DateWindow, LoadOwner, LoadResult
from reglo_client.coordination.home import InstructorHomeCoordinator, StudentHomeCoordinator
from reglo_client.coordination.negotiation import (
    BookingNegotiationCoordinator,
    BookingPreferences,
    NegotiationSession,
    NegotiationStatus,
)
from reglo_client.coordination.proposals import ProposalCoordinator
from reglo_client.coordination.push_bridge import (
    NotificationCenter,
    PushIntentBridge,
    PushIntentChannel,
    PushIntentKind,
)
from reglo_client.coordination.push_registration import PushRegistrar
from reglo_client.coordination.session_coordinator import SessionCoordinator
from reglo_client.coordination.sheet_arbiter import Sheet, SheetArbiter
from reglo_client.coordination.waitlist import WaitlistCoordinator

__all__ = [
    "SessionCoordinator",
    "DataLoader",
    "DateWindow",
    "LoadOwner",
    "LoadResult",
    "BookingNegotiationCoordinator",
    "BookingPreferences",
    "NegotiationSession",
    "NegotiationStatus",
    "WaitlistCoordinator",
    "ProposalCoordinator",
    "PushIntentChannel",
    "PushIntentBridge",
    "PushIntentKind",
    "NotificationCenter",
    "PushRegistrar",
    "Sheet",
    "SheetArbiter",
    "StudentHomeCoordinator",
    "InstructorHomeCoordinator",
]
