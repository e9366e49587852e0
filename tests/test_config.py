"""Tests for configuration loading and validation."""

from dataclasses import replace

import pytest

from reglo_client.config import (
    ApiConfig,
    AppConfig,
    BookingConfig,
    PushConfig,
    _safe_float,
    _safe_int,
    _safe_int_list,
    _validate_config,
)


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        _validate_config(AppConfig())  # should not raise

    def test_empty_base_url(self):
        config = replace(AppConfig(), api=replace(ApiConfig(), base_url="  "))
        with pytest.raises(ValueError, match="REGLO_API_BASE_URL"):
            _validate_config(config)

    def test_non_positive_timeout(self):
        config = replace(AppConfig(), api=replace(ApiConfig(), read_timeout_sec=0))
        with pytest.raises(ValueError, match="REGLO_API_READ_TIMEOUT"):
            _validate_config(config)

    def test_empty_durations(self):
        config = replace(AppConfig(), booking=replace(BookingConfig(), allowed_durations=()))
        with pytest.raises(ValueError, match="REGLO_BOOKING_DURATIONS"):
            _validate_config(config)

    def test_negative_duration(self):
        config = replace(AppConfig(), booking=replace(BookingConfig(), allowed_durations=(60, -30)))
        with pytest.raises(ValueError, match="must be positive"):
            _validate_config(config)

    @pytest.mark.parametrize(
        "field_name, env_name",
        [
            ("max_days", "REGLO_BOOKING_MAX_DAYS"),
            ("waitlist_offer_limit", "REGLO_WAITLIST_OFFER_LIMIT"),
            ("history_page_size", "REGLO_HISTORY_PAGE_SIZE"),
            ("availability_weeks", "REGLO_AVAILABILITY_WEEKS"),
        ],
    )
    def test_limits_must_be_positive(self, field_name, env_name):
        booking = replace(BookingConfig(), **{field_name: 0})
        with pytest.raises(ValueError, match=env_name):
            _validate_config(replace(AppConfig(), booking=booking))

    def test_unknown_push_platform(self):
        config = replace(AppConfig(), push=PushConfig(platform="windows"))
        with pytest.raises(ValueError, match="REGLO_PUSH_PLATFORM"):
            _validate_config(config)


class TestEnvParsing:
    def test_safe_int_parsing(self):
        assert _safe_int("NONEXISTENT_VAR_12345", "42") == 42

    def test_safe_float_parsing(self):
        assert _safe_float("NONEXISTENT_VAR_12345", "3.14") == pytest.approx(3.14)

    def test_safe_int_reads_env(self, monkeypatch):
        monkeypatch.setenv("REGLO_TEST_INT", "7")
        assert _safe_int("REGLO_TEST_INT", "1") == 7

    def test_safe_int_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("REGLO_TEST_INT", "seven")
        with pytest.raises(ValueError, match="REGLO_TEST_INT"):
            _safe_int("REGLO_TEST_INT", "1")

    def test_safe_int_list(self, monkeypatch):
        monkeypatch.setenv("REGLO_TEST_LIST", "30, 60,,90")
        assert _safe_int_list("REGLO_TEST_LIST", "") == (30, 60, 90)

    def test_safe_int_list_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("REGLO_TEST_LIST", "30,an hour")
        with pytest.raises(ValueError, match="REGLO_TEST_LIST"):
            _safe_int_list("REGLO_TEST_LIST", "")
