from datetime import datetime, timedelta, timezone

from utils.datetime_utils import ensure_utc, parse_rfc3339, synced_within, to_rfc3339_utc, utc_now


def test_parse_rfc3339_zulu_and_offsets():
    assert parse_rfc3339("2024-03-01T12:00:00Z") == datetime(2024, 3, 1, 12, tzinfo=timezone.utc)
    assert parse_rfc3339("2024-03-01T14:00:00+02:00") == datetime(2024, 3, 1, 12, tzinfo=timezone.utc)


def test_parse_rfc3339_pads_fractional_seconds():
    parsed = parse_rfc3339("2024-03-01T12:00:00.5Z")
    assert parsed.microsecond == 500000
    assert parsed.tzinfo == timezone.utc


def test_parse_rfc3339_rejects_blank_and_garbage():
    assert parse_rfc3339(None) is None
    assert parse_rfc3339("   ") is None
    assert parse_rfc3339("next tuesday") is None


def test_to_rfc3339_utc_drops_microseconds_and_converts():
    moment = datetime(2024, 3, 1, 14, 0, 0, 123456, tzinfo=timezone(timedelta(hours=2)))
    assert to_rfc3339_utc(moment) == "2024-03-01T12:00:00Z"
    assert to_rfc3339_utc(None) is None


def test_naive_datetimes_are_read_as_utc():
    naive = datetime(2024, 3, 1, 12)
    assert ensure_utc(naive) == datetime(2024, 3, 1, 12, tzinfo=timezone.utc)
    assert to_rfc3339_utc(naive) == "2024-03-01T12:00:00Z"
    assert ensure_utc(None) is None


def test_utc_now_is_aware():
    assert utc_now().tzinfo == timezone.utc


def test_synced_within_trailing_window():
    now = datetime(2024, 3, 31, 12, tzinfo=timezone.utc)
    assert synced_within(now - timedelta(days=30), 30, now)
    assert not synced_within(now - timedelta(days=30, seconds=1), 30, now)
    assert synced_within(datetime(2024, 3, 30, 12), 1, now)
    assert not synced_within(None, 30, now)
