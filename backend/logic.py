# Business logic - pregnancy stage updates and the glue features around them
from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

from development import fallback_snapshot
from models import (
    DevelopmentSnapshot,
    MedicationCheck,
    MoodEntry,
    PregnancyRecord,
    medication_checks,
    mood_entries,
    next_id,
    pregnancy_records,
    utcnow,
)
from stage import normalize

logger = logging.getLogger(__name__)

# No auth layer: every request acts as the demo user
DEMO_USER_ID = 1

MEDICATION_SAFETY: Dict[str, Dict] = {
    "acetaminophen": {"isSafe": True, "notes": "Generally considered safe during pregnancy when used as directed."},
    "ibuprofen": {"isSafe": False, "notes": "Not recommended during pregnancy, especially in the third trimester."},
    "prenatal vitamins": {"isSafe": True, "notes": "Recommended during pregnancy to support maternal and fetal health."},
}
UNKNOWN_MEDICATION_NOTES = "Information not available. Please consult your healthcare provider."


def get_pregnancy_record(user_id: int) -> Optional[PregnancyRecord]:
    """Get the stored pregnancy record for a user"""
    return pregnancy_records.get(user_id)


def update_pregnancy_stage(
    user_id: int,
    stage_type: str,
    stage_value: str,
    today: Optional[date] = None,
) -> PregnancyRecord:
    """
    Normalize the stage and replace the user's record.
    Raises ValidationError for malformed descriptors.
    """
    result = normalize(stage_type, stage_value, today)
    now = utcnow()
    existing = pregnancy_records.get(user_id)

    if existing:
        record = existing.with_week(result.currentWeek, today, updatedAt=now)
    else:
        record = PregnancyRecord(
            id=next_id("pregnancy"),
            userId=user_id,
            currentWeek=result.currentWeek,
            dueDate=result.dueDate,
            createdAt=now,
            updatedAt=now,
        )

    pregnancy_records[user_id] = record  # replace, never append
    logger.info("User %s pregnancy stage set to week %s (%s=%s)", user_id, record.currentWeek, stage_type, stage_value)
    return record


def get_baby_development(week: int, language: str = "en") -> DevelopmentSnapshot:
    """Development content for a week in the requested language"""
    return fallback_snapshot(week, language)


def stage_update_with_development(
    user_id: int,
    stage_type: str,
    stage_value: str,
    language: str = "en",
) -> Tuple[PregnancyRecord, DevelopmentSnapshot]:
    """Update the stage and return the matching development snapshot in one step"""
    record = update_pregnancy_stage(user_id, stage_type, stage_value)
    return record, get_baby_development(record.currentWeek, language)


def get_mood_entries(user_id: int) -> List[MoodEntry]:
    return list(mood_entries.get(user_id, []))


def create_mood_entry(user_id: int, mood: str, note: str = "") -> Optional[MoodEntry]:
    """Log a mood against the current week. Returns None when no stage has been set yet."""
    record = pregnancy_records.get(user_id)
    if not record:
        return None
    entry = MoodEntry(
        id=next_id("mood"),
        userId=user_id,
        week=record.currentWeek,
        mood=mood,
        note=note or "",
    )
    mood_entries.setdefault(user_id, []).append(entry)
    return entry


def get_medication_checks(user_id: int) -> List[MedicationCheck]:
    return list(medication_checks.get(user_id, []))


def check_medication(user_id: int, medication_name: str) -> MedicationCheck:
    """Look the medication up in the safety table; unknown names get isSafe=None"""
    known = MEDICATION_SAFETY.get(medication_name.strip().lower())
    check = MedicationCheck(
        id=next_id("medication"),
        userId=user_id,
        medicationName=medication_name,
        isSafe=known["isSafe"] if known else None,
        notes=known["notes"] if known else UNKNOWN_MEDICATION_NOTES,
    )
    medication_checks.setdefault(user_id, []).append(check)
    return check
