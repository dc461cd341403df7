"""Tests for weekly availability decoding."""

from __future__ import annotations

import json
from datetime import date

from ekklesia.counseling.availability import WEEKDAYS, WeeklyAvailability, weekday_name


class TestWeekdayName:
    def test_monday(self):
        assert weekday_name(date(2024, 3, 4)) == "Segunda"

    def test_sunday_is_first(self):
        assert weekday_name(date(2024, 3, 3)) == "Domingo"
        assert WEEKDAYS[0] == "Domingo"

    def test_saturday(self):
        assert weekday_name(date(2024, 3, 9)) == "Sábado"


class TestDecode:
    def test_mapping(self):
        availability = WeeklyAvailability.decode({"Segunda": ["09:00", "10:00"]})
        assert availability.get("Segunda") == ("09:00", "10:00")
        assert availability.get("Terça") == ()

    def test_json_string(self):
        availability = WeeklyAvailability.decode(json.dumps({"Quarta": ["14:00"]}))
        assert availability.get("Quarta") == ("14:00",)

    def test_double_encoded_string(self):
        raw = json.dumps(json.dumps({"Quinta": ["08:00"]}))
        assert WeeklyAvailability.decode(raw).get("Quinta") == ("08:00",)

    def test_malformed_string_is_empty(self):
        assert not WeeklyAvailability.decode("{not json")

    def test_none_is_empty(self):
        assert WeeklyAvailability.decode(None).days() == []

    def test_non_mapping_is_empty(self):
        assert not WeeklyAvailability.decode(["09:00"])

    def test_malformed_entry_skipped(self):
        availability = WeeklyAvailability.decode({"Segunda": "09:00", "Terça": ["10:00"]})
        assert availability.get("Segunda") == ()
        assert availability.get("Terça") == ("10:00",)

    def test_unknown_weekday_ignored(self):
        availability = WeeklyAvailability.decode({"Monday": ["09:00"]})
        assert not availability

    def test_duplicates_removed_keeping_order(self):
        availability = WeeklyAvailability.decode({"Sexta": ["10:00", "09:00", "10:00"]})
        assert availability.get("Sexta") == ("10:00", "09:00")

    def test_decode_is_idempotent(self):
        availability = WeeklyAvailability({"Segunda": ["09:00"]})
        assert WeeklyAvailability.decode(availability) is availability


class TestQueries:
    def test_for_date(self):
        availability = WeeklyAvailability({"Segunda": ["09:00"]})
        assert availability.for_date(date(2024, 3, 4)) == ("09:00",)
        assert availability.for_date(date(2024, 3, 5)) == ()

    def test_days_in_week_order(self):
        availability = WeeklyAvailability({"Sexta": ["09:00"], "Segunda": ["09:00"], "Terça": []})
        assert availability.days() == ["Segunda", "Sexta"]

    def test_to_dict_round_trip(self):
        raw = {"Segunda": ["09:00", "10:00"]}
        assert WeeklyAvailability.decode(raw).to_dict() == raw

    def test_equality(self):
        assert WeeklyAvailability({"Segunda": ["09:00"]}) == WeeklyAvailability.decode('{"Segunda": ["09:00"]}')
