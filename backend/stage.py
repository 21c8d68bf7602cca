# Stage normalizer - week/month/trimester descriptor -> canonical week + due date
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Optional, Union

from errors import ValidationError

MIN_WEEK = 1
MAX_WEEK = 40
STAGE_TYPES = ("week", "month", "trimester")

# One canonical month constant for every call site (month 4 -> week 17)
WEEKS_PER_MONTH = 4.3

# Representative week in the middle of each trimester
TRIMESTER_WEEKS: Dict[int, int] = {1: 7, 2: 20, 3: 33}


@dataclass(frozen=True)
class StageResult:
    """Output of normalize(): the canonical week and the due date derived from it"""
    currentWeek: int
    dueDate: date


def clamp_week(week: int) -> int:
    """Clamp a week number into [1, 40]"""
    return max(MIN_WEEK, min(MAX_WEEK, week))


def due_date_for_week(week: int, today: Optional[date] = None) -> date:
    """Due date under the fixed 40-week model: today + (40 - week) weeks"""
    today = today or date.today()
    return today + timedelta(weeks=MAX_WEEK - week)


def _parse_number(stage_value: Union[str, int, float]) -> float:
    if isinstance(stage_value, bool):
        raise ValidationError(f"stageValue must be a number, got {stage_value!r}")
    if isinstance(stage_value, (int, float)):
        number = float(stage_value)
    else:
        text = str(stage_value).strip()
        try:
            number = float(text)
        except ValueError:
            raise ValidationError(f"stageValue must be a number, got {stage_value!r}") from None
    if not math.isfinite(number):
        raise ValidationError(f"stageValue must be a finite number, got {stage_value!r}")
    return number


def week_for_stage(stage_type: str, stage_value: Union[str, int, float]) -> int:
    """Convert a stage descriptor into the canonical week (1-40)"""
    if stage_type not in STAGE_TYPES:
        raise ValidationError(
            f"stageType must be one of {', '.join(STAGE_TYPES)}, got {stage_type!r}"
        )
    number = _parse_number(stage_value)

    if stage_type == "week":
        return clamp_week(int(number))  # parseInt semantics: truncate toward zero
    if stage_type == "month":
        return clamp_week(math.floor(number * WEEKS_PER_MONTH + 0.5))

    trimester = int(number)
    if trimester != number or trimester not in TRIMESTER_WEEKS:
        raise ValidationError(f"trimester must be 1, 2 or 3, got {stage_value!r}")
    return TRIMESTER_WEEKS[trimester]


def normalize(
    stage_type: str,
    stage_value: Union[str, int, float],
    today: Optional[date] = None,
) -> StageResult:
    """
    Normalize a user-chosen stage into (currentWeek, dueDate).
    Pure function: same inputs and same `today` always give the same result.
    """
    week = week_for_stage(stage_type, stage_value)
    return StageResult(currentWeek=week, dueDate=due_date_for_week(week, today))


def trimester_for_week(week: int) -> int:
    """1st trimester = weeks 1-13, 2nd = 14-26, 3rd = 27-40"""
    if week <= 13:
        return 1
    if week <= 26:
        return 2
    return 3


def weeks_left(week: int) -> int:
    return MAX_WEEK - clamp_week(week)


def completion_pct(week: int) -> int:
    """Share of the 40 weeks completed, rounded to a whole percent"""
    return math.floor(clamp_week(week) / MAX_WEEK * 100 + 0.5)


def progress_summary(week: int, today: Optional[date] = None) -> Dict:
    """Progress figures shown next to the current week"""
    week = clamp_week(week)
    return {
        "currentWeek": week,
        "trimester": trimester_for_week(week),
        "weeksLeft": weeks_left(week),
        "completionPct": completion_pct(week),
        "dueDate": due_date_for_week(week, today).isoformat(),
    }
