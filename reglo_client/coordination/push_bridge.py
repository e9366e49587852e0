"""
Bridge from push notifications to in-app reactions.

Two delivery paths:
1. Foreground: a received notification is parsed and published at once on
   the in-memory channel.
2. Background / cold start: a tapped notification's intent is persisted;
   on the next foreground resolution it is consumed (read and cleared) and
   published. With nothing persisted, the OS's last notification response
   is used instead and cleared as well.

The channel is an explicit object owned by the composition root and handed
to coordinators by reference. Each intent is delivered at most once.
"""

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from reglo_client.storage.session_storage import PushStorage

logger = logging.getLogger(__name__)

IntentListener = Callable[[str], Awaitable[None]]
Reaction = Callable[[], Awaitable[None]]


class PushIntentKind(str, Enum):
    SLOT_FILL_OFFER = "slot_fill_offer"
    APPOINTMENT_CANCELLED = "appointment_cancelled"
    APPOINTMENT_PROPOSAL = "appointment_proposal"


def extract_intent(data: Any) -> Optional[str]:
    """Read the intent token from a notification data payload.

    Examples:
        >>> extract_intent({"kind": "slot_fill_offer"})
        'slot_fill_offer'
        >>> extract_intent({"type": 3}) is None
        True
    """
    if not isinstance(data, dict):
        return None
    for key in ("kind", "intent", "type"):
        if key in data and data[key] is not None:
            value = data[key]
            return value if isinstance(value, str) else None
    return None


class PushIntentChannel:
    """Publish/subscribe channel for intents."""

    def __init__(self) -> None:
        self._listeners: list[IntentListener] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: IntentListener) -> Callable[[], None]:
        """Add a listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def publish(self, intent: Optional[str]) -> None:
        if not intent:
            return
        for listener in list(self._listeners):
            try:
                await listener(intent)
            except Exception:
                logger.exception("Push intent listener failed for '%s'", intent)


class PushIntentRouter:
    """Maps intent kinds to reactions. Unknown kinds are dropped."""

    def __init__(self) -> None:
        self._reactions: dict[str, Reaction] = {}

    def on(self, kind: PushIntentKind, reaction: Reaction) -> None:
        self._reactions[kind.value] = reaction

    async def dispatch(self, intent: str) -> None:
        reaction = self._reactions.get(intent)
        if reaction is None:
            logger.debug("No reaction registered for push intent '%s'", intent)
            return
        logger.info("Handling push intent '%s'", intent)
        await reaction()


class NotificationCenter:
    """Boundary to the OS notification service.

    The base class behaves like a host without push support (emulator,
    web, headless runs); platform adapters override what they support.
    """

    platform: str = "android"

    def is_device(self) -> bool:
        return False

    async def request_permission(self) -> bool:
        return False

    async def get_push_token(self) -> Optional[str]:
        return None

    async def get_last_response_data(self) -> Optional[dict]:
        return None

    async def clear_last_response(self) -> None:
        return None


class PushIntentBridge:
    """Routes notification events to the channel or to durable storage."""

    def __init__(
        self,
        channel: PushIntentChannel,
        storage: PushStorage,
        notifications: NotificationCenter,
    ) -> None:
        self._channel = channel
        self._storage = storage
        self._notifications = notifications
        self._foreground = False

    @property
    def foreground(self) -> bool:
        return self._foreground

    def set_foreground(self, active: bool) -> None:
        self._foreground = active

    async def handle_notification_received(self, data: Any) -> Optional[str]:
        """A notification arrived while the app is running."""
        intent = extract_intent(data)
        await self._channel.publish(intent)
        return intent

    async def handle_notification_tapped(self, data: Any) -> Optional[str]:
        """The user tapped a notification.

        In the foreground the intent is published directly; otherwise it is
        kept for the next foreground resolution.
        """
        intent = extract_intent(data)
        if not intent:
            return None
        if self._foreground:
            await self._channel.publish(intent)
        else:
            self._storage.save_pending_intent(intent)
            logger.debug("Stored pending push intent '%s'", intent)
        return intent

    async def consume_pending_or_launch_intent(self) -> Optional[str]:
        pending = self._storage.pop_pending_intent()
        if pending:
            return pending
        data = await self._notifications.get_last_response_data()
        intent = extract_intent(data)
        if intent:
            await self._notifications.clear_last_response()
        return intent

    async def dispatch_pending(self) -> Optional[str]:
        """Consume whatever intent is waiting and publish it once."""
        intent = await self.consume_pending_or_launch_intent()
        await self._channel.publish(intent)
        return intent
