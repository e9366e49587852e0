"""Tests for the weekly availability preset."""

from datetime import datetime, time, timezone

import pytest

from reglo_client.coordination.availability import (
    ALL_WEEKDAYS,
    AvailabilityCoordinator,
    AvailabilityPreset,
    backend_weekday,
    derive_preset,
)
from reglo_client.errors import BackendConnectionError
from reglo_client.schemas.booking_schema import AvailabilitySlot
from reglo_client.schemas.feedback_schema import ToastTone
from tests.conftest import fixed_clock


def slot(starts_at, ends_at, status="open"):
    return AvailabilitySlot(
        id=starts_at, owner_type="student", owner_id="S1",
        starts_at=starts_at, ends_at=ends_at, status=status,
    )


@pytest.fixture
def availability(api):
    return AvailabilityCoordinator(api, "S1", weeks=1, clock=fixed_clock)


class TestBackendWeekday:
    def test_sunday_is_zero(self):
        assert backend_weekday(datetime(2024, 5, 5, tzinfo=timezone.utc)) == 0

    def test_monday_is_one(self):
        assert backend_weekday(datetime(2024, 5, 6, tzinfo=timezone.utc)) == 1


class TestDerivePreset:
    def test_days_and_bounds(self):
        wednesday = datetime(2024, 5, 1, tzinfo=timezone.utc)
        friday = datetime(2024, 5, 3, tzinfo=timezone.utc)
        preset = derive_preset([
            (wednesday, [slot("2024-05-01T10:00Z", "2024-05-01T12:00Z")]),
            (friday, [
                slot("2024-05-03T15:00Z", "2024-05-03T19:00Z"),
                slot("2024-05-03T08:30Z", "2024-05-03T09:30Z"),
            ]),
        ])
        assert preset == AvailabilityPreset(days=[3, 5], start=time(8, 30), end=time(19, 0))

    def test_cancelled_slots_are_ignored(self):
        day = datetime(2024, 5, 1, tzinfo=timezone.utc)
        preset = derive_preset([(day, [slot("2024-05-01T10:00Z", "2024-05-01T12:00Z", "cancelled")])])
        assert preset.days == []

    def test_empty_input(self):
        assert derive_preset([]).days == []


class TestSave:
    @pytest.mark.asyncio
    async def test_first_save_tolerates_nothing_to_clear(self, api, availability):
        toast = await availability.save([1, 3], time(9, 0), time(12, 0))

        assert toast.tone == ToastTone.SUCCESS
        assert toast.text == "Disponibilita salvata"
        assert availability.preset == AvailabilityPreset(days=[1, 3], start=time(9, 0), end=time(12, 0))
        deleted = api.calls_to("delete_availability_slots")[0]
        assert deleted["days_of_week"] == ALL_WEEKDAYS
        created = api.calls_to("create_availability_slots")[0]
        assert created["days_of_week"] == [1, 3]
        assert created["weeks"] == 1
        assert availability.saving is False

    @pytest.mark.asyncio
    async def test_second_save_replaces_slots(self, api, availability):
        await availability.save([1, 3], time(9, 0), time(12, 0))
        await availability.save([5], time(14, 0), time(16, 0))

        assert availability.preset.days == [5]
        assert len(api.availability) == 1

    @pytest.mark.asyncio
    async def test_weeks_follow_settings(self, api, availability):
        availability.set_weeks(2)
        await availability.save([3], time(9, 0), time(10, 0))
        assert api.calls_to("create_availability_slots")[0]["weeks"] == 2
        assert len(api.availability) == 2

    @pytest.mark.parametrize(
        "days, start, end, message",
        [
            ([], time(9, 0), time(10, 0), "Seleziona almeno un giorno"),
            ([7], time(9, 0), time(10, 0), "Giorno non valido"),
            ([1], time(10, 0), time(10, 0), "Orario non valido"),
        ],
    )
    @pytest.mark.asyncio
    async def test_validation(self, api, availability, days, start, end, message):
        toast = await availability.save(days, start, end)
        assert toast.text == message
        assert api.calls == []

    @pytest.mark.asyncio
    async def test_clear_failure_aborts_save(self, api, availability):
        api.fail_next("delete_availability_slots", BackendConnectionError("offline"))
        toast = await availability.save([1], time(9, 0), time(10, 0))
        assert toast.tone == ToastTone.DANGER
        assert api.calls_to("create_availability_slots") == []


class TestLoadPreset:
    @pytest.mark.asyncio
    async def test_reads_seven_days(self, api, availability):
        assert await availability.load_preset() is None
        dates = [call["date"] for call in api.calls_to("get_availability_slots")]
        assert sorted(dates) == [
            "2024-04-30", "2024-05-01", "2024-05-02", "2024-05-03",
            "2024-05-04", "2024-05-05", "2024-05-06",
        ]

    @pytest.mark.asyncio
    async def test_failure_returns_toast_and_keeps_preset(self, api, availability):
        api.fail_next("get_availability_slots", BackendConnectionError("offline"))
        toast = await availability.load_preset()
        assert toast.tone == ToastTone.DANGER
        assert availability.preset == AvailabilityPreset()
