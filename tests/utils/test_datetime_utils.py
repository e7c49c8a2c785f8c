"""
Tests for datetime utilities.

Stored timestamps come back naive from SQLite and aware from
PostgreSQL; both must serialize as UTC with a 'Z' suffix.
"""
from datetime import datetime, timedelta, timezone

from chat_relay.utils.datetime_utils import ensure_utc, to_iso_utc, utc_now


class TestUtcNow:

    def test_returns_timezone_aware_datetime(self):
        assert utc_now().tzinfo == timezone.utc

    def test_returns_current_time(self):
        before = datetime.now(timezone.utc)
        result = utc_now()
        after = datetime.now(timezone.utc)

        assert before <= result <= after


class TestEnsureUtc:

    def test_naive_value_is_taken_as_utc(self):
        """SQLite hands back naive datetimes; the wall time must not shift."""
        result = ensure_utc(datetime(2025, 12, 16, 11, 30, 0, 123456))

        assert result == datetime(2025, 12, 16, 11, 30, 0, 123456, tzinfo=timezone.utc)

    def test_other_offsets_are_converted(self):
        utc_plus_8 = timezone(timedelta(hours=8))

        result = ensure_utc(datetime(2025, 12, 16, 19, 30, tzinfo=utc_plus_8))

        assert result.tzinfo == timezone.utc
        assert (result.hour, result.minute) == (11, 30)

    def test_none(self):
        assert ensure_utc(None) is None


class TestToIsoUtc:

    def test_naive_and_aware_serialize_alike(self):
        naive = datetime(2025, 12, 16, 11, 30, 0, 123456)
        aware = naive.replace(tzinfo=timezone.utc)

        assert to_iso_utc(naive) == to_iso_utc(aware) == "2025-12-16T11:30:00.123456Z"

    def test_without_microseconds(self):
        assert to_iso_utc(datetime(2025, 12, 16, 11, 30)) == "2025-12-16T11:30:00Z"

    def test_non_utc_offset(self):
        utc_minus_5 = timezone(timedelta(hours=-5))

        assert to_iso_utc(datetime(2025, 12, 16, 6, 30, tzinfo=utc_minus_5)) == "2025-12-16T11:30:00Z"

    def test_none(self):
        assert to_iso_utc(None) is None

    def test_parses_back(self):
        now = utc_now()

        parsed = datetime.fromisoformat(to_iso_utc(now).replace("Z", "+00:00"))

        assert parsed == now
