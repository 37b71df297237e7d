"""Spreadsheet cell parsing tests."""

from __future__ import annotations

from datetime import date, datetime, time

import pytest

from journal_engine.parsing import (
    DateFormat,
    excel_serial_to_date,
    is_ambiguous_date,
    parse_date,
    parse_number,
    parse_time,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("1500", 1500.0),
        ("₹1,234.50", 1234.5),
        ("(1,250.75)", -1250.75),
        ("12.5%", 12.5),
        ("#DIV/0!", 0.0),
        ("#N/A", 0.0),
        ("", 0.0),
        (None, 0.0),
        (42, 42.0),
        (float("nan"), 0.0),
        ("abc", 0.0),
    ],
)
def test_parse_number_tolerates_spreadsheet_noise(value, expected):
    assert parse_number(value) == pytest.approx(expected)


def test_excel_serial_uses_1899_epoch():
    assert excel_serial_to_date(45292) == date(2024, 1, 1)
    assert excel_serial_to_date(12) is None


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-01-15", date(2024, 1, 15)),
        ("2024-01-15T09:30:00", date(2024, 1, 15)),
        ("15/01/2024", date(2024, 1, 15)),
        ("12/25/2024", date(2024, 12, 25)),
        ("15-Jan-2024", date(2024, 1, 15)),
        ("15 January 2024", date(2024, 1, 15)),
        ("Jan 15, 2024", date(2024, 1, 15)),
        ("45292", date(2024, 1, 1)),
        (45292, date(2024, 1, 1)),
        (datetime(2024, 3, 5, 10, 0), date(2024, 3, 5)),
    ],
)
def test_parse_date_auto(value, expected):
    assert parse_date(value) == expected


def test_ambiguous_numeric_dates_resolve_day_first():
    assert parse_date("03/04/2024") == date(2024, 4, 3)
    assert is_ambiguous_date("03/04/2024")
    assert not is_ambiguous_date("13/04/2024")
    assert not is_ambiguous_date("04/04/2024")


def test_format_hint_overrides_day_first_default():
    assert parse_date("03/04/2024", DateFormat.MDY_SLASH) == date(2024, 3, 4)
    assert parse_date("03.04.2024", DateFormat.DMY_DOT) == date(2024, 4, 3)


def test_year_less_text_dates_use_default_year():
    assert parse_date("24 Jul", DateFormat.DMY_TEXT_NO_YEAR, default_year=2023) == date(2023, 7, 24)
    assert parse_date("24 Jul", default_year=2022) == date(2022, 7, 24)


def test_hint_mismatch_falls_back_to_auto():
    assert parse_date("2024-02-29", DateFormat.DMY_SLASH) == date(2024, 2, 29)


def test_unparseable_dates_are_none():
    assert parse_date("") is None
    assert parse_date("not a date") is None
    assert parse_date("31/02/2024") is None


@pytest.mark.parametrize(
    "value, expected",
    [
        ("09:15:30", time(9, 15, 30)),
        ("2024-01-15 14:05:00", time(14, 5, 0)),
        ("2:30 PM", time(14, 30)),
        ("12:10 am", time(0, 10)),
        (0.5, time(12, 0)),
        (None, None),
        ("n/a", None),
    ],
)
def test_parse_time(value, expected):
    assert parse_time(value) == expected
