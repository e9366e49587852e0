"""Device push token registration with the backend."""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from reglo_client.coordination.push_bridge import NotificationCenter
from reglo_client.storage.session_storage import PushStorage

logger = logging.getLogger(__name__)


@dataclass
class RegistrationResult:
    registered: bool
    reason: Optional[str] = None


class PushRegistrar:
    """Registers and unregisters this device's push token."""

    def __init__(
        self,
        api: Any,
        storage: PushStorage,
        notifications: NotificationCenter,
        platform: str = "android",
    ) -> None:
        self._api = api
        self._storage = storage
        self._notifications = notifications
        self._platform = platform

    async def register(self) -> RegistrationResult:
        if not self._notifications.is_device():
            return RegistrationResult(registered=False, reason="not_a_device")
        if not await self._notifications.request_permission():
            return RegistrationResult(registered=False, reason="permission_denied")
        token = await self._notifications.get_push_token()
        if not token:
            return RegistrationResult(registered=False, reason="token_unavailable")

        await self._api.register_push_token(token, self._platform)
        self._storage.set_push_token(token)
        logger.info("Push token registered (%s)", self._platform)
        return RegistrationResult(registered=True)

    async def unregister(self) -> None:
        """Tell the backend to forget the stored token; the local copy is always dropped."""
        token = self._storage.get_push_token()
        if not token:
            return
        try:
            await self._api.unregister_push_token(token)
        finally:
            self._storage.set_push_token(None)
