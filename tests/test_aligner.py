from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from dataflow.candle_aggregation.aligner import SUPPORTED_MINUTES, aligned_start, is_supported

NOW = datetime(2024, 3, 15, 13, 47, 23, 500000, tzinfo=timezone.utc)


def utc(hour, minute=0, day=15):
    return datetime(2024, 3, day, hour, minute, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "minutes, expected",
    [
        (1, utc(13, 48)),
        (5, utc(13, 45)),
        (10, utc(13, 40)),
        (15, utc(13, 45)),
        (30, utc(13, 30)),
        (60, utc(13)),
        (120, utc(14)),
        (240, utc(12)),
        (360, utc(12)),
        (720, utc(12)),
        (1440, utc(0)),
    ],
)
def test_alignment_rules(minutes, expected):
    assert aligned_start(NOW, minutes) == expected


def test_two_hour_from_even_hour_moves_to_next_even_hour():
    assert aligned_start(utc(14, 10), 120) == utc(16)


def test_already_aligned_minute_is_kept():
    assert aligned_start(utc(13, 45), 15) == utc(13, 45)


def test_unsupported_duration_returns_now():
    assert aligned_start(NOW, 7) == NOW
    assert not is_supported(7)


def test_naive_now_is_read_as_utc():
    assert aligned_start(NOW.replace(tzinfo=None), 60) == utc(13)


@pytest.mark.parametrize("minutes", sorted(SUPPORTED_MINUTES))
def test_idempotent_and_on_boundary(minutes):
    first = aligned_start(NOW, minutes)
    assert aligned_start(NOW, minutes) == first
    assert first.tzinfo is not None
    assert first.timestamp() % (minutes * 60) == 0


def test_reference_zone_changes_wall_clock_boundaries():
    kolkata = ZoneInfo("Asia/Kolkata")

    # 13:47 UTC is 19:17 IST
    assert aligned_start(NOW, 60, kolkata) == utc(13, 30)
    assert aligned_start(NOW, 1440, kolkata) == datetime(2024, 3, 14, 18, 30, tzinfo=timezone.utc)


def test_step_back_crosses_daylight_saving_gap():
    new_york = ZoneInfo("America/New_York")
    # 03:30 EDT, the first hour after the spring-forward gap
    now = datetime(2024, 3, 10, 7, 30, tzinfo=timezone.utc)

    start = aligned_start(now, 240, new_york)

    assert start == datetime(2024, 3, 10, 5, 0, tzinfo=timezone.utc)
    assert start.astimezone(new_york).hour == 0
