"""
Offline console demo: runs the coordination scenarios against the in-memory
backend. No network, no device, no credentials.

Usage:
    python console_demo.py
    python console_demo.py --scenario booking
    python console_demo.py --scenario race
"""

import argparse
import asyncio
from datetime import datetime, timezone

from reglo_client.api.in_memory import DEFAULT_PASSWORD, InMemoryRegloApi
from reglo_client.app import RegloApp
from reglo_client.config import settings
from reglo_client.coordination.data_loader import DataLoader, LoadOwner
from reglo_client.coordination.home import StudentHomeCoordinator
from reglo_client.schemas.booking_schema import Appointment, AppointmentStatus, Student
from reglo_client.schemas.session_schema import AutoscuolaRole, CompanySummary
from reglo_client.schemas.waitlist_schema import OfferSlot, WaitlistOffer
from reglo_client.storage.secure_store import MemorySecureStore

BLUE = "\033[94m"
GREEN = "\033[92m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

DEMO_NOW = datetime(2024, 4, 30, 8, 0, tzinfo=timezone.utc)
STUDENT_EMAIL = "giulia.bianchi@example.com"
COMPANY = CompanySummary(
    id="c1", name="Autoscuola Centrale", autoscuola_role=AutoscuolaRole.STUDENT
)


def demo_clock() -> datetime:
    return DEMO_NOW


def build_demo_backend() -> InMemoryRegloApi:
    """One driving school, one student, a few open slots."""
    api = InMemoryRegloApi()
    api.add_account(STUDENT_EMAIL, "Giulia Bianchi", [COMPANY])
    api.add_student(
        Student(id="S1", company_id="c1", first_name="Giulia", last_name="Bianchi", email=STUDENT_EMAIL)
    )
    api.add_open_slot("2024-05-02T09:00Z", "2024-05-02T10:00Z")
    api.add_open_slot("2024-05-03T15:00Z", "2024-05-03T16:00Z")
    api.add_appointment(
        Appointment(
            id="a-past", student_id="S1", instructor_id="i1",
            starts_at="2024-04-20T10:00Z", ends_at="2024-04-20T11:00Z",
            status=AppointmentStatus.COMPLETED.value,
        )
    )
    return api


class ConsoleDemo:
    """Runs one scripted scenario and narrates what the coordinators did."""

    SCENARIOS = ("booking", "race", "waitlist", "session", "sheets")

    def __init__(self) -> None:
        self.api = build_demo_backend()
        self.store = MemorySecureStore()
        self.app = RegloApp(api=self.api, store=self.store, clock=demo_clock)

    def say(self, text: str) -> None:
        print(f"{GREEN}{BOLD}[app]{RESET} {GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def show_toast(self, toast) -> None:
        if toast is None:
            return
        color = {"success": GREEN, "info": BLUE, "danger": RED}[toast.tone.value]
        print(f"{color}  [toast:{toast.tone.value}] {toast.text}{RESET}")

    async def run_scenario(self, scenario: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  {settings.app_name.upper()} - Scenario: {scenario}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        await getattr(self, f"_scenario_{scenario}")()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{DIM}  Backend calls: {', '.join(name for name, _ in self.api.calls)}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    async def _sign_in_student(self) -> StudentHomeCoordinator:
        await self.app.start()
        self.show_toast(await self.app.session.sign_in(STUDENT_EMAIL, DEFAULT_PASSWORD))
        self.system_log(f"Session: {self.app.state.status.value} ({self.app.state.autoscuola_role})")
        home = await self.app.open_home()
        self.system_log(f"Linked student: {home.student_id}")
        return home

    # ------------------------------------------------------------------ #
    # Scenarios
    # ------------------------------------------------------------------ #

    async def _scenario_booking(self) -> None:
        home = await self._sign_in_student()
        home.open_preferences()
        outcome = await home.submit_booking("2024-05-01", 60)
        self.say(f"Request {outcome.request.id}: {outcome.status.value}")
        self.system_log(f"Suggested {outcome.suggestion.starts_at}, sheet={home.arbiter.active.value}")

        accepted = await home.negotiation.accept_suggestion(
            outcome.request.id, outcome.suggestion.starts_at
        )
        self.show_toast(accepted.toast)
        self.say(f"Appointment {accepted.appointment.id} {accepted.appointment.status} "
                 f"at {accepted.appointment.starts_at}")
        self.system_log(f"Upcoming lessons: {[a.starts_at for a in home.upcoming()]}")
        self.system_log(f"Sheet trace: {' -> '.join(home.arbiter.get_sheet_trace())}")

    async def _scenario_race(self) -> None:
        loader = DataLoader(self.api, LoadOwner.STUDENT)
        self.api.delay_next("get_appointments", 0.05)
        first = asyncio.create_task(loader.load("S1"))
        await asyncio.sleep(0.01)
        self.api.add_appointment(
            Appointment(id="a-new", student_id="S1", starts_at="2024-05-06T09:00Z")
        )
        second = asyncio.create_task(loader.load("S1"))
        results = await asyncio.gather(first, second)
        self.say(f"Load #1: {results[0].value}, load #2: {results[1].value}")
        self.system_log(f"Applied appointments: {[a.id for a in loader.data.appointments]}")

    async def _scenario_waitlist(self) -> None:
        self.api.add_offer(
            WaitlistOffer(
                id="o1",
                slot=OfferSlot(starts_at="2024-05-04T10:00Z", ends_at="2024-05-04T11:00Z"),
                expires_at="2024-05-01T00:00Z",
            )
        )
        home = await self._sign_in_student()
        self.system_log(f"Offer {home.waitlist.offer.id}, active sheet: {home.arbiter.active.value}")
        self.api.claim_offer("o1")
        outcome = await home.waitlist.accept_offer("o1")
        self.show_toast(outcome.toast)
        self.say(f"Offer outcome: {outcome.status.value}; current offer: {home.waitlist.offer}")

    async def _scenario_session(self) -> None:
        self.api.add_account("nobody@example.com", "Senza Autoscuola", [])
        self.store.set_item("reglo_token", self.api.sign_in_as("nobody@example.com"))
        self.store.set_item("reglo_active_company_id", "c-gone")
        state = await self.app.start()
        self.say(f"Session: {state.status.value}, companies={state.companies}")
        self.system_log(f"Storage after reset: {self.store.snapshot()}")

    async def _scenario_sheets(self) -> None:
        self.api.add_offer(
            WaitlistOffer(
                id="o2",
                slot=OfferSlot(starts_at="2024-05-04T10:00Z", ends_at="2024-05-04T11:00Z"),
                expires_at="2024-05-01T00:00Z",
            )
        )
        home = await self._sign_in_student()
        self.system_log(f"Active sheet: {home.arbiter.active.value}")

        self.api.add_appointment(
            Appointment(
                id="p1", student_id="S1", instructor_id="i1",
                starts_at="2024-05-05T09:00Z", ends_at="2024-05-05T10:00Z",
                status=AppointmentStatus.PROPOSAL.value,
            )
        )
        await self.app.bridge.handle_notification_received({"kind": "appointment_proposal"})
        self.system_log(f"After proposal push: active={home.arbiter.active.value}, "
                        f"pending={sorted(s.value for s in home.arbiter.pending)}")

        outcome = await home.waitlist.decline_offer("o2")
        self.show_toast(outcome.toast)
        self.say(f"After declining the offer the proposal surfaces: {home.arbiter.active.value}")
        self.system_log(f"Sheet trace: {' -> '.join(home.arbiter.get_sheet_trace())}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline coordination demo")
    parser.add_argument(
        "--scenario",
        choices=ConsoleDemo.SCENARIOS,
        default=None,
        help="Run a single scenario instead of all of them",
    )
    args = parser.parse_args()

    for scenario in [args.scenario] if args.scenario else ConsoleDemo.SCENARIOS:
        asyncio.run(ConsoleDemo().run_scenario(scenario))


if __name__ == "__main__":
    main()
