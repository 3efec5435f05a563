"""Tests for display formatting."""
from datetime import datetime

from timekeeper.formatting import (
    format_currency,
    format_date,
    format_datetime,
    format_duration,
    format_duration_short,
    format_percentage,
    format_time,
)


def test_format_duration():
    assert format_duration(0) == "0:00"
    assert format_duration(125) == "2:05"
    assert format_duration(3725) == "1:02:05"
    assert format_duration(-5) == "0:00:00"


def test_format_duration_short():
    assert format_duration_short(300) == "5m"
    assert format_duration_short(5400) == "1h 30m"


def test_format_currency():
    assert format_currency(1234.5) == "$1,234.50"
    assert format_currency(0) == "$0.00"


def test_dates_and_fallbacks():
    moment = datetime(2024, 1, 10, 9, 5)
    assert format_time(moment) == "09:05"
    assert format_date(moment) == "Jan 10, 2024"
    assert format_datetime(moment) == "Jan 10, 2024 09:05"
    assert format_time(None) == "--:--"
    assert format_date("garbage") == "--"
    assert format_datetime(None) == "--"


def test_format_percentage():
    assert format_percentage(66.666) == "66.7%"
