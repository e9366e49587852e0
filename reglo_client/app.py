"""
Composition root: builds storage, API, session and push plumbing once and
hands the same objects to every coordinator.

Usage:
    app = RegloApp()
    state = await app.start()
    if state.is_ready:
        home = await app.open_home()
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional, Union

from reglo_client.api.backend import RegloApi
from reglo_client.api.client import RegloApiClient
from reglo_client.config import AppConfig, settings
from reglo_client.coordination.data_loader import DateWindow
from reglo_client.coordination.home import InstructorHomeCoordinator, StudentHomeCoordinator
from reglo_client.coordination.push_bridge import (
    NotificationCenter,
    PushIntentBridge,
    PushIntentChannel,
)
from reglo_client.coordination.push_registration import PushRegistrar
from reglo_client.coordination.session_coordinator import SessionCoordinator
from reglo_client.schemas.session_schema import AutoscuolaRole, SessionState
from reglo_client.storage.secure_store import FileSecureStore, SecureStore
from reglo_client.storage.session_storage import AuthStorage, PushStorage, SessionStorage
from reglo_client.utils import utc_now

logger = logging.getLogger(__name__)

Home = Union[StudentHomeCoordinator, InstructorHomeCoordinator]


class RegloApp:
    """Owns the long-lived collaborators of one running client."""

    def __init__(
        self,
        api: Any = None,
        store: Optional[SecureStore] = None,
        notifications: Optional[NotificationCenter] = None,
        config: Optional[AppConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config or settings
        self.clock = clock
        self.store = store or FileSecureStore(self.config.storage.path)
        self.auth_storage = AuthStorage(self.store)
        self.session_storage = SessionStorage(self.store)
        self.push_storage = PushStorage(self.store)
        self.api = api or RegloApi(RegloApiClient(self.config.api, self.auth_storage))
        self.notifications = notifications or NotificationCenter()

        self.channel = PushIntentChannel()
        self.bridge = PushIntentBridge(self.channel, self.push_storage, self.notifications)
        self.registrar = PushRegistrar(
            self.api, self.push_storage, self.notifications, self.config.push.platform
        )
        self.session = SessionCoordinator(
            self.api, self.auth_storage, self.session_storage, self.registrar
        )
        self.home: Optional[Home] = None

    @property
    def state(self) -> SessionState:
        return self.session.state

    async def start(self) -> SessionState:
        self.bridge.set_foreground(True)
        return await self.session.bootstrap()

    async def open_home(self, window: Optional[DateWindow] = None) -> Optional[Home]:
        """Open the home that matches the effective role, or None if not ready."""
        state = self.session.state
        if not state.is_ready:
            return None
        self.close_home()
        if state.autoscuola_role == AutoscuolaRole.STUDENT:
            return await self.open_student_home()
        home = InstructorHomeCoordinator(
            self.api, state.instructor_id, booking_config=self.config.booking, clock=self.clock
        )
        self.home = home
        await home.load(window)
        return home

    async def open_student_home(self) -> Optional[StudentHomeCoordinator]:
        state = self.session.state
        if not state.is_ready or state.user is None:
            return None
        home = StudentHomeCoordinator(
            self.api,
            state.user,
            self.channel,
            self.session_storage,
            bridge=self.bridge,
            booking_config=self.config.booking,
            clock=self.clock,
        )
        self.home = home
        await home.start()
        return home

    def close_home(self) -> None:
        if isinstance(self.home, StudentHomeCoordinator):
            self.home.stop()
        self.home = None

    async def on_foreground(self) -> None:
        self.bridge.set_foreground(True)
        if isinstance(self.home, StudentHomeCoordinator) and self.home.started:
            await self.home.on_app_active()
        elif isinstance(self.home, InstructorHomeCoordinator):
            await self.home.load()
        else:
            # Nobody subscribed yet; the intent stays stored for the student home.
            logger.debug("No home open, pending push intent left in storage")

    def on_background(self) -> None:
        self.bridge.set_foreground(False)

    async def sign_out(self) -> None:
        self.close_home()
        await self.session.sign_out()

    async def aclose(self) -> None:
        await self.api.aclose()
