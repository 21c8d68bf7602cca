# Data models and in-memory server state
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from stage import clamp_week, due_date_for_week

SERVER = "server"
USER_SPECIFIED = "userSpecified"
PROVENANCE_SOURCES = (SERVER, USER_SPECIFIED)

MOODS = ("great", "good", "okay", "low", "stressed")

# Sorts before any real timestamp
OLDEST = datetime.min.replace(tzinfo=timezone.utc)

# In-memory storage (single demo user, keyed by userId)
pregnancy_records: Dict[int, 'PregnancyRecord'] = {}
mood_entries: Dict[int, List['MoodEntry']] = {}
medication_checks: Dict[int, List['MedicationCheck']] = {}
_id_counters: Dict[str, int] = {}


def next_id(kind: str) -> int:
    """Sequential ids per entity kind"""
    _id_counters[kind] = _id_counters.get(kind, 0) + 1
    return _id_counters[kind]


def reset_ids():
    _id_counters.clear()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (or epoch milliseconds) into an aware UTC datetime"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date(value: Any) -> Optional[date]:
    """Parse a date; full timestamps are cut down to their calendar day"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) > 10:
        parsed = parse_datetime(text)
        return parsed.date() if parsed else None
    return date.fromisoformat(text)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Provenance:
    """Client-only overlay: where a cached record came from and when it was stored locally"""
    source: str  # "server" | "userSpecified"
    localTimestamp: datetime

    def __post_init__(self):
        if self.source not in PROVENANCE_SOURCES:
            raise ValueError(f"Unknown provenance source: {self.source!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {"source": self.source, "localTimestamp": _iso(self.localTimestamp)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Provenance':
        return cls(source=data["source"], localTimestamp=parse_datetime(data["localTimestamp"]))


@dataclass(frozen=True)
class PregnancyRecord:
    """The single pregnancy record of a user session"""
    currentWeek: int
    dueDate: date
    id: Optional[int] = None
    userId: Optional[int] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    provenance: Optional[Provenance] = None

    def __post_init__(self):
        if not 1 <= self.currentWeek <= 40:
            raise ValueError(f"currentWeek must be within 1-40, got {self.currentWeek}")

    @property
    def is_user_specified(self) -> bool:
        return self.provenance is not None and self.provenance.source == USER_SPECIFIED

    def with_week(self, week: int, today: Optional[date] = None, **changes) -> 'PregnancyRecord':
        """Copy with a new week; dueDate is always recomputed alongside it"""
        week = clamp_week(week)
        return replace(self, currentWeek=week, dueDate=due_date_for_week(week, today), **changes)

    def with_provenance(self, source: str, local_timestamp: Optional[datetime] = None) -> 'PregnancyRecord':
        return replace(self, provenance=Provenance(source, local_timestamp or utcnow()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.userId,
            "currentWeek": self.currentWeek,
            "dueDate": self.dueDate.isoformat(),
            "createdAt": _iso(self.createdAt),
            "updatedAt": _iso(self.updatedAt),
            "provenance": self.provenance.to_dict() if self.provenance else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PregnancyRecord':
        provenance = data.get("provenance")
        return cls(
            currentWeek=int(data["currentWeek"]),
            dueDate=parse_date(data["dueDate"]),
            id=data.get("id"),
            userId=data.get("userId"),
            createdAt=parse_datetime(data.get("createdAt")),
            updatedAt=parse_datetime(data.get("updatedAt")),
            provenance=Provenance.from_dict(provenance) if provenance else None,
        )


def default_pregnancy_record(today: Optional[date] = None) -> PregnancyRecord:
    """Shown when neither the server nor the cache has anything: week 1"""
    return PregnancyRecord(currentWeek=1, dueDate=due_date_for_week(1, today))


@dataclass
class DevelopmentSnapshot:
    """Baby development content for one (week, language)"""
    week: int
    language: str
    description: str
    keyDevelopments: List[str] = field(default_factory=list)
    funFact: Optional[str] = None
    size: Optional[str] = None
    imageDescription: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "week": self.week,
            "language": self.language,
            "description": self.description,
            "keyDevelopments": list(self.keyDevelopments),
            "funFact": self.funFact,
            "size": self.size,
            "imageDescription": self.imageDescription,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DevelopmentSnapshot':
        return cls(
            week=int(data["week"]),
            language=data.get("language") or "en",
            description=data.get("description") or "",
            keyDevelopments=list(data.get("keyDevelopments") or []),
            funFact=data.get("funFact"),
            size=data.get("size"),
            imageDescription=data.get("imageDescription"),
        )


@dataclass
class MoodEntry:
    """Mood logged by the user, tagged with the pregnancy week at the time"""
    id: int
    userId: int
    week: int
    mood: str
    note: str = ""
    createdAt: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.userId,
            "week": self.week,
            "mood": self.mood,
            "note": self.note,
            "createdAt": _iso(self.createdAt),
        }


@dataclass
class MedicationCheck:
    """Result of a medication safety lookup"""
    id: int
    userId: int
    medicationName: str
    isSafe: Optional[bool]
    notes: str
    createdAt: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.userId,
            "medicationName": self.medicationName,
            "isSafe": self.isSafe,
            "notes": self.notes,
            "createdAt": _iso(self.createdAt),
        }
