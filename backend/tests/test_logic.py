"""
Tests for the server-side business logic.
"""
from datetime import date, timedelta

import pytest

from development import fallback_snapshot
from errors import ValidationError
from logic import (
    DEMO_USER_ID,
    check_medication,
    create_mood_entry,
    get_pregnancy_record,
    stage_update_with_development,
    update_pregnancy_stage,
)

TODAY = date(2026, 1, 1)


class TestUpdatePregnancyStage:
    def test_creates_then_replaces(self):
        assert get_pregnancy_record(DEMO_USER_ID) is None

        created = update_pregnancy_stage(DEMO_USER_ID, "week", "10", today=TODAY)
        updated = update_pregnancy_stage(DEMO_USER_ID, "month", "4", today=TODAY)

        assert created.id == updated.id == 1
        assert updated.currentWeek == 17
        assert updated.dueDate == TODAY + timedelta(weeks=23)
        assert updated.createdAt == created.createdAt
        assert updated.updatedAt >= created.updatedAt
        assert get_pregnancy_record(DEMO_USER_ID) == updated

    def test_invalid_stage_leaves_record_untouched(self):
        update_pregnancy_stage(DEMO_USER_ID, "week", "10", today=TODAY)
        with pytest.raises(ValidationError):
            update_pregnancy_stage(DEMO_USER_ID, "trimester", "9", today=TODAY)
        assert get_pregnancy_record(DEMO_USER_ID).currentWeek == 10

    def test_stage_update_with_development(self):
        record, snapshot = stage_update_with_development(DEMO_USER_ID, "trimester", "2", "fr")
        assert record.currentWeek == 20
        assert snapshot.week == 20
        assert snapshot.language == "fr"


class TestMoodAndMedication:
    def test_mood_needs_record(self):
        assert create_mood_entry(DEMO_USER_ID, "good") is None

    def test_mood_uses_current_week(self):
        update_pregnancy_stage(DEMO_USER_ID, "week", "30", today=TODAY)
        entry = create_mood_entry(DEMO_USER_ID, "low", "Tired")
        assert entry.week == 30
        assert entry.note == "Tired"

    def test_medication_lookup_is_case_insensitive(self):
        assert check_medication(DEMO_USER_ID, "IBUPROFEN").isSafe is False
        assert check_medication(DEMO_USER_ID, "Prenatal Vitamins").isSafe is True


class TestFallbackSnapshot:
    def test_milestone_weeks(self):
        assert fallback_snapshot(1).description == "Fertilization occurs"
        assert "trimester 2" in fallback_snapshot(18).imageDescription

    def test_generic_week(self):
        snapshot = fallback_snapshot(30, "de")
        assert snapshot.language == "de"
        assert snapshot.size == "Cabbage"
        assert snapshot.keyDevelopments

    def test_week_clamped(self):
        assert fallback_snapshot(55).week == 40
