"""Tests for shared utility functions and the logging context."""

import logging
from datetime import date, time, timedelta

import pytest

from reglo_client.logging_context import (
    NO_COMPANY,
    CompanyIdFilter,
    get_company_id,
    get_session_logger,
    set_company_id,
)
from reglo_client.utils import normalize_text, parse_iso, to_date_string, to_time_string


class TestNormalizeText:
    def test_lowercases_and_trims(self):
        assert normalize_text("  Mario ROSSI ") == "mario rossi"

    def test_collapses_whitespace(self):
        assert normalize_text("Mario \t  Rossi") == "mario rossi"

    def test_none_is_empty(self):
        assert normalize_text(None) == ""


class TestParseIso:
    def test_z_suffix(self):
        assert parse_iso("2024-05-02T09:00Z").utcoffset() == timedelta(0)

    def test_naive_is_utc(self):
        assert parse_iso("2024-05-02T09:00:00") == parse_iso("2024-05-02T09:00:00+00:00")

    def test_offset_preserved(self):
        parsed = parse_iso("2024-05-02T11:00:00+02:00")
        assert parsed == parse_iso("2024-05-02T09:00Z")

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_iso("tomorrow")


class TestFormatting:
    def test_date_string(self):
        assert to_date_string(date(2024, 5, 2)) == "2024-05-02"

    def test_time_string(self):
        assert to_time_string(time(9, 5)) == "09:05"


class TestCompanyContext:
    def test_default_is_no_company(self):
        set_company_id(None)
        assert get_company_id() == NO_COMPANY

    def test_filter_tags_records(self):
        set_company_id("c1")
        record = logging.LogRecord("reglo", logging.INFO, __file__, 1, "msg", None, None)
        assert CompanyIdFilter().filter(record)
        assert record.company_id == "c1"
        set_company_id(None)

    def test_filter_attached_once(self):
        first = get_session_logger("reglo.test.context")
        second = get_session_logger("reglo.test.context")
        assert first is second
        assert sum(isinstance(f, CompanyIdFilter) for f in first.filters) == 1
