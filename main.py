"""
Reglo client entry point.

Restores the persisted session against the configured backend and prints
where the app would land. With credentials it signs in first.

Usage:
    Restore session:  python main.py
    Sign in:          python main.py login <email> <password>
    Offline demo:     python main.py console
"""

import asyncio
import logging
import sys

from reglo_client.app import RegloApp
from reglo_client.config import settings
from reglo_client.schemas.session_schema import SessionStatus

logger = logging.getLogger(__name__)


async def _run_session(argv: list[str]) -> None:
    """Bootstrap, optionally sign in, and open the home for the resolved role."""
    app = RegloApp()
    try:
        state = await app.start()
        if len(argv) == 3 and argv[0] == "login":
            toast = await app.session.sign_in(argv[1], argv[2])
            if toast is not None:
                logger.error("Sign-in failed: %s", toast.text)
                return
            state = app.state

        logger.info("Session status: %s", state.status.value)
        if state.status == SessionStatus.COMPANY_SELECT:
            for company in state.companies:
                logger.info("  company %s: %s", company.id, company.name)
            return
        if not state.is_ready:
            return

        home = await app.open_home()
        logger.info(
            "Home for %s in %s: %d appointments",
            state.autoscuola_role.value, state.active_company_id, len(home.appointments),
        )
        if home.toast is not None:
            logger.info("Toast [%s]: %s", home.toast.tone.value, home.toast.text)
    finally:
        app.close_home()
        await app.aclose()


def _run_console_mode() -> None:
    """Start the offline console demo (no backend required)."""
    from console_demo import main as console_main

    sys.argv = sys.argv[:1]
    console_main()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode()
    else:
        logger.info("Starting %s against %s", settings.app_name, settings.api.base_url)
        asyncio.run(_run_session(sys.argv[1:]))
