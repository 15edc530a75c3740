from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from context_snapshot.time_expression import as_utc, format_relative_time, parse_time_expression

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("expr", "delta"),
    [
        ("30m", timedelta(minutes=30)),
        ("2h", timedelta(hours=2)),
        ("3d", timedelta(days=3)),
        ("1w", timedelta(weeks=1)),
        ("5H", timedelta(hours=5)),
        ("0m", timedelta(0)),
        (" 12d ", timedelta(days=12)),
    ],
)
def test_relative_expressions_subtract_from_now(expr: str, delta: timedelta) -> None:
    assert parse_time_expression(expr, now=NOW) == NOW - delta


@pytest.mark.unit
def test_relative_expression_defaults_to_current_time() -> None:
    before = datetime.now(UTC)
    cutoff = parse_time_expression("1h")
    after = datetime.now(UTC)

    assert cutoff is not None
    assert before - timedelta(hours=1) <= cutoff <= after - timedelta(hours=1)


@pytest.mark.unit
@pytest.mark.parametrize("expr", ["bogus", "", None, "1d2h", "5y", "-1h", "h", "1.5h", "yesterday"])
def test_unparseable_expressions_return_none(expr: str | None) -> None:
    assert parse_time_expression(expr, now=NOW) is None


@pytest.mark.unit
def test_iso_date_is_midnight_utc() -> None:
    assert parse_time_expression("2024-01-15") == datetime(2024, 1, 15, tzinfo=UTC)


@pytest.mark.unit
def test_iso_datetime_with_offset_is_converted_to_utc() -> None:
    parsed = parse_time_expression("2024-01-15T10:00:00+02:00")

    assert parsed == datetime(2024, 1, 15, 8, 0, tzinfo=UTC)
    assert parsed is not None
    assert parsed.utcoffset() == timedelta(0)


@pytest.mark.unit
def test_huge_relative_amount_is_unparseable() -> None:
    assert parse_time_expression("99999999999w", now=NOW) is None


@pytest.mark.unit
def test_as_utc_reads_naive_values_as_utc() -> None:
    assert as_utc(datetime(2024, 1, 1, 5)) == datetime(2024, 1, 1, 5, tzinfo=UTC)
    assert as_utc(datetime(2024, 1, 1, 5, tzinfo=timezone(timedelta(hours=5)))) == datetime(2024, 1, 1, tzinfo=UTC)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("ago", "expected"),
    [
        (timedelta(seconds=20), "just now"),
        (timedelta(minutes=5), "5m ago"),
        (timedelta(hours=3, minutes=10), "3h ago"),
        (timedelta(days=2), "2d ago"),
        (timedelta(days=30), "2024-05-02"),
    ],
)
def test_format_relative_time(ago: timedelta, expected: str) -> None:
    assert format_relative_time(NOW - ago, now=NOW) == expected
