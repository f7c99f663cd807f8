import pytest

from coindrafts.common.units import (
    DAY_MS,
    HOUR_MS,
    MINUTE_MS,
    format_percent_change,
    format_price,
    format_price_micros,
    format_relative_time,
    from_micros,
    micros_to_ms,
    ms_to_micros,
    to_micros,
)

NOW = 1_700_000_000_000


@pytest.mark.parametrize(
    "price, expected",
    [
        (84714, "$84,714.00"),
        (1000, "$1,000.00"),
        (2.5, "$2.50"),
        (1, "$1.00"),
        (0.05, "$0.0500"),
        (0.01, "$0.0100"),
        (0.000012, "$0.000012"),
    ],
)
def test_format_price_tiers(price, expected):
    assert format_price(price) == expected


def test_format_price_micros():
    assert format_price_micros(84_714_000_000) == "$84,714.00"
    assert format_price_micros(12) == "$0.000012"


def test_format_percent_change_signs():
    assert format_percent_change(5) == "+5.00%"
    assert format_percent_change(-5) == "-5.00%"
    assert format_percent_change(0) == "+0.00%"


def test_to_micros_handles_strings_and_floats():
    assert to_micros("84714.1") == 84_714_100_000
    assert to_micros(84714.1) == 84_714_100_000
    assert to_micros(0.1) == 100_000
    assert to_micros(3) == 3_000_000
    assert to_micros("0.0000005") == 1


@pytest.mark.parametrize("value", [True, "abc", "nan", float("inf"), None])
def test_to_micros_rejects_non_numeric(value):
    with pytest.raises(ValueError):
        to_micros(value)


def test_from_micros():
    assert from_micros(1_500_000) == pytest.approx(1.5)


def test_timestamp_conversions():
    assert micros_to_ms(1_700_000_000_123_456) == 1_700_000_000_123
    assert ms_to_micros(1_700_000_000_123) == 1_700_000_000_123_000
    assert micros_to_ms(ms_to_micros(NOW)) == NOW


@pytest.mark.parametrize(
    "age_ms, expected",
    [
        (30_000, "Just now"),
        (MINUTE_MS, "1 minute ago"),
        (5 * MINUTE_MS, "5 minutes ago"),
        (HOUR_MS, "1 hour ago"),
        (3 * HOUR_MS, "3 hours ago"),
        (DAY_MS, "1 day ago"),
        (2 * DAY_MS, "2 days ago"),
    ],
)
def test_format_relative_time_recent(age_ms, expected):
    assert format_relative_time(ms_to_micros(NOW - age_ms), now=NOW) == expected


def test_format_relative_time_old_dates_show_calendar_date():
    assert format_relative_time(ms_to_micros(NOW - 30 * DAY_MS), now=NOW) == "2023-10-15"


@pytest.mark.parametrize("value", [None, "", 0, "not-a-number", 631_152_000_000_000])
def test_format_relative_time_unknown(value):
    assert format_relative_time(value, now=NOW) == "Unknown"
