# Seed data - baseline in-memory state for the demo user
from models import medication_checks, mood_entries, pregnancy_records, reset_ids


def seed_data():
    """Reset server state: no pregnancy record, no mood entries, no medication checks"""
    pregnancy_records.clear()
    mood_entries.clear()
    medication_checks.clear()
    reset_ids()
