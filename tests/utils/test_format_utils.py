from datetime import datetime, timedelta, timezone

import pytest

from herald.util.format_utils import (
    EMBED_FIELD_LIMIT,
    UNKNOWN,
    channel_mention,
    ensure_utc,
    format_time_in_server,
    humanize_timestamp,
    join_lines,
    role_mention,
    truncate,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_truncate():
    assert truncate("short") == "short"
    assert len(truncate("y" * 2000)) == EMBED_FIELD_LIMIT
    assert truncate("abcdef", limit=3) == "abc"


def test_join_lines_drops_whole_lines():
    assert join_lines(["ab", "cd", "ef"]) == "ab\ncd\nef"
    assert join_lines(["ab", "cd", "ef"], limit=5) == "ab\ncd"
    assert join_lines(["ab", "cd", "ef"], limit=4) == "ab"
    assert join_lines(["toolong"], limit=3) == ""
    assert join_lines([]) == ""


def test_ensure_utc_treats_naive_as_utc():
    naive = datetime(2024, 1, 1, 8, 30)
    plus_two = datetime(2024, 1, 1, 10, 30, tzinfo=timezone(timedelta(hours=2)))

    assert ensure_utc(naive) == datetime(2024, 1, 1, 8, 30, tzinfo=timezone.utc)
    assert ensure_utc(plus_two).hour == 8


def test_humanize_timestamp():
    assert humanize_timestamp(datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)) == "2024-01-02 03:04:05 UTC"
    assert humanize_timestamp(None) == UNKNOWN


@pytest.mark.parametrize(
    "elapsed, expected",
    [
        (timedelta(minutes=30), "0 hours"),
        (timedelta(hours=23, minutes=59), "23 hours"),
        (timedelta(days=1), "1 days, 0 hours"),
        (timedelta(days=40, hours=6), "40 days, 6 hours"),
    ],
)
def test_format_time_in_server(elapsed, expected):
    assert format_time_in_server(NOW - elapsed, NOW) == expected


def test_format_time_in_server_edge_cases():
    assert format_time_in_server(None, NOW) == UNKNOWN
    # Clock skew never produces a negative duration
    assert format_time_in_server(NOW + timedelta(hours=1), NOW) == "0 hours"


def test_mentions():
    assert channel_mention("123") == "<#123>"
    assert role_mention("456") == "<@&456>"
