from datetime import datetime, timezone

import pytest

from intervals import duration_ms, format_duration, overlaps, parse_datetime, to_local


def test_overlaps_touching_endpoints_collide():
    a_start, a_end = datetime(2025, 6, 1, 9), datetime(2025, 6, 1, 11)
    assert overlaps(a_start, a_end, datetime(2025, 6, 1, 11), datetime(2025, 6, 1, 13))
    assert overlaps(datetime(2025, 6, 1, 7), datetime(2025, 6, 1, 9), a_start, a_end)


def test_overlaps_disjoint_and_contained():
    a_start, a_end = datetime(2025, 6, 1, 9), datetime(2025, 6, 1, 11)
    assert not overlaps(a_start, a_end, datetime(2025, 6, 1, 11, 1), datetime(2025, 6, 1, 12))
    assert overlaps(a_start, a_end, datetime(2025, 6, 1, 9, 30), datetime(2025, 6, 1, 10))
    assert overlaps(datetime(2025, 6, 1, 8), datetime(2025, 6, 1, 12), a_start, a_end)


def test_duration_ms():
    assert duration_ms(datetime(2025, 1, 1, 8), datetime(2025, 1, 1, 10, 30)) == 9_000_000
    assert duration_ms(datetime(2025, 1, 1, 10), datetime(2025, 1, 1, 9)) == -3_600_000


@pytest.mark.parametrize("ms, expected", [
    (72_000_000, "20h"),
    (5_400_000, "1h 30m"),
    (2_700_000, "45m"),
    (0, "0m"),
    (-3_600_000, "-1h"),
])
def test_format_duration(ms, expected):
    assert format_duration(ms) == expected


def test_parse_datetime_converts_utc_to_club_time():
    # Europe/Berlin is UTC+2 in summer
    assert parse_datetime("2025-07-01T08:00:00Z") == datetime(2025, 7, 1, 10, 0)
    assert parse_datetime("2025-07-01T08:00:00") == datetime(2025, 7, 1, 8, 0)


def test_parse_datetime_rejects_garbage():
    with pytest.raises(ValueError):
        parse_datetime("")
    with pytest.raises(ValueError):
        parse_datetime("next tuesday")
    with pytest.raises(ValueError):
        parse_datetime(None)


def test_to_local_passes_naive_values_through():
    naive = datetime(2025, 1, 1, 12)
    assert to_local(naive) is naive
    assert to_local(datetime(2025, 1, 1, 12, tzinfo=timezone.utc)) == datetime(2025, 1, 1, 13)
