# Record precedence - which of two candidate pregnancy records should be displayed
from datetime import datetime
from typing import Optional

from models import OLDEST, PregnancyRecord


def effective_timestamp(record: PregnancyRecord) -> datetime:
    """
    The time a record speaks for: localTimestamp for user-specified records,
    updatedAt for server records (oldest possible when the server sent none).
    """
    if record.is_user_specified:
        return record.provenance.localTimestamp
    return record.updatedAt or OLDEST


def prefer_record(
    current: Optional[PregnancyRecord],
    incoming: Optional[PregnancyRecord],
) -> Optional[PregnancyRecord]:
    """
    Keep `current` only when it is strictly newer than `incoming`; ties go to
    `incoming`. Arrival order never matters, only the timestamps.
    """
    if current is None:
        return incoming
    if incoming is None:
        return current
    if effective_timestamp(current) > effective_timestamp(incoming):
        return current
    return incoming


def should_replace(cached: Optional[PregnancyRecord], incoming: PregnancyRecord) -> bool:
    """True when `incoming` may overwrite what is cached"""
    return prefer_record(cached, incoming) is incoming
