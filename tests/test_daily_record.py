"""Tests for DailyRecord and date-key helpers."""

import json
from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from typingstats.core.daily_record import (
    DailyRecord,
    date_key,
    date_key_days_ago,
    display_string,
    parse_date_key,
    short_display_string,
    today_key,
)
from typingstats.core.errors import InvariantViolation


class TestDateHelpers:
    """Test date-key formatting and parsing."""

    def test_date_key_from_naive_datetime(self):
        assert date_key(datetime(2024, 1, 5, 23, 59)) == "2024-01-05"

    def test_date_key_from_date(self):
        assert date_key(date(2024, 12, 27)) == "2024-12-27"

    def test_date_key_uses_local_time_zone(self):
        aware = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
        assert date_key(aware) == aware.astimezone().strftime("%Y-%m-%d")

    def test_today_key_with_explicit_now(self):
        assert today_key(datetime(2024, 3, 1, 8, 0)) == "2024-03-01"

    def test_days_ago_crosses_month_and_year(self):
        now = datetime(2024, 1, 1, 0, 30)
        assert date_key_days_ago(0, now) == "2024-01-01"
        assert date_key_days_ago(1, now) == "2023-12-31"
        assert date_key_days_ago(31, now) == "2023-12-01"

    def test_parse_date_key(self):
        assert parse_date_key("2024-02-29") == date(2024, 2, 29)
        assert parse_date_key("2023-02-29") is None
        assert parse_date_key("yesterday") is None

    def test_display_strings(self):
        assert display_string("2024-12-27") == "Dec 27"
        assert short_display_string("2024-12-26") == "12/26"

    def test_display_strings_pass_through_invalid(self):
        assert display_string("bogus") == "bogus"
        assert short_display_string("bogus") == "bogus"


class TestDailyRecord:
    """Test DailyRecord behaviour."""

    def test_new_record(self):
        when = datetime(2024, 1, 1, 9, 30)
        record = DailyRecord.new(when)
        assert record.id == "2024-01-01"
        assert record.created_at == when
        assert record.modified_at == when
        assert record.total_keystrokes == 0
        assert record.total_words == 0

    def test_increment_uses_given_device(self):
        record = DailyRecord.new(datetime(2024, 1, 1))
        record.increment("deviceA", 5)
        record.increment("deviceA")
        assert record.counter.count("deviceA") == 6
        assert record.total_keystrokes == 6

    def test_increment_refreshes_modified_at(self):
        when = datetime(2024, 1, 1, tzinfo=timezone.utc)
        record = DailyRecord.new(when)
        record.increment("deviceA")
        assert record.modified_at > when
        assert record.created_at == when

    def test_add_words(self):
        record = DailyRecord.new(datetime(2024, 1, 1))
        record.add_words("deviceA", 3)
        assert record.total_words == 3
        assert record.total_keystrokes == 0

    def test_merge_same_day(self):
        record = DailyRecord.new(datetime(2024, 1, 1))
        record.increment("deviceA", 5)

        incoming = DailyRecord.new(datetime(2024, 1, 1, 18, 0))
        incoming.increment("deviceB", 3)

        record.merge(incoming)
        assert record.counter.counts == {"deviceA": 5, "deviceB": 3}
        assert record.total_keystrokes == 8

    def test_merge_combines_words(self):
        record = DailyRecord.new(datetime(2024, 1, 1))
        record.add_words("deviceA", 2)
        incoming = DailyRecord.new(datetime(2024, 1, 1))
        incoming.add_words("deviceB", 4)
        record.merge(incoming)
        assert record.total_words == 6

    def test_merge_different_day_rejected(self):
        record = DailyRecord.new(datetime(2024, 1, 1))
        record.increment("deviceA", 5)
        other = DailyRecord.new(datetime(2024, 1, 2))
        other.increment("deviceB", 3)

        with pytest.raises(InvariantViolation):
            record.merge(other)
        assert record.total_keystrokes == 5

    def test_merge_is_idempotent(self):
        record = DailyRecord.new(datetime(2024, 1, 1))
        record.increment("deviceA", 5)
        incoming = DailyRecord.new(datetime(2024, 1, 1))
        incoming.increment("deviceB", 3)

        record.merge(incoming)
        record.merge(incoming)
        assert record.total_keystrokes == 8

    def test_id_is_immutable(self):
        record = DailyRecord.new(datetime(2024, 1, 1))
        with pytest.raises(ValidationError):
            record.id = "2024-01-02"

    def test_created_at_is_immutable(self):
        record = DailyRecord.new(datetime(2024, 1, 1))
        with pytest.raises(ValidationError):
            record.created_at = datetime(2020, 1, 1)


class TestDailyRecordEncoding:
    """Test the JSON wire form."""

    def test_round_trip_preserves_totals_and_breakdown(self):
        record = DailyRecord.new(datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc))
        record.increment("deviceA", 120)
        record.increment("deviceB", 30)
        record.add_words("deviceA", 20)

        decoded = DailyRecord.from_json(record.to_json())

        assert decoded.id == record.id
        assert decoded.total_keystrokes == 150
        assert decoded.counter.counts == {"deviceA": 120, "deviceB": 30}
        assert decoded.words.counts == {"deviceA": 20}
        assert decoded.created_at == record.created_at

    def test_wire_field_names(self):
        record = DailyRecord.new(datetime(2024, 1, 1, tzinfo=timezone.utc))
        record.increment("deviceA", 1)
        payload = json.loads(record.to_json())
        assert set(payload) == {"id", "counter", "words", "createdAt", "modifiedAt"}
        assert payload["counter"] == {"counts": {"deviceA": 1}}

    def test_decode_without_words_field(self):
        payload = {
            "id": "2024-01-01",
            "counter": {"counts": {"deviceA": 7}},
            "createdAt": "2024-01-01T08:00:00+00:00",
            "modifiedAt": "2024-01-01T09:00:00+00:00",
        }
        record = DailyRecord.model_validate(payload)
        assert record.total_keystrokes == 7
        assert record.total_words == 0

    def test_decode_ignores_unknown_fields(self):
        payload = json.dumps({
            "id": "2024-01-01",
            "counter": {"counts": {}},
            "createdAt": "2024-01-01T08:00:00+00:00",
            "modifiedAt": "2024-01-01T08:00:00+00:00",
            "schema": 2,
            "streak": 14,
        })
        assert DailyRecord.from_json(payload).id == "2024-01-01"

    def test_decode_rejects_invalid_id(self):
        payload = json.dumps({
            "id": "not-a-date",
            "counter": {"counts": {}},
            "createdAt": "2024-01-01T08:00:00+00:00",
            "modifiedAt": "2024-01-01T08:00:00+00:00",
        })
        with pytest.raises(ValidationError):
            DailyRecord.from_json(payload)

    def test_decode_rejects_garbage(self):
        with pytest.raises(ValidationError):
            DailyRecord.from_json("{not json")

    def test_modified_at_after_merge(self):
        earlier = datetime.now(timezone.utc) - timedelta(days=1)
        record = DailyRecord.new(earlier)
        record.merge(DailyRecord.new(earlier))
        assert record.modified_at > earlier
