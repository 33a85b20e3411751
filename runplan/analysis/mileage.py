"""Weekly running mileage from activity history.

Weeks run Monday to Sunday and are keyed by their Monday. The current
week is always left out since it is still in progress.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Sequence, Union

from ..api.models import Activity
from ..config import config

HIGH_CONFIDENCE_WEEKS = 4
HIGH_CONFIDENCE_RUNS = 8
MEDIUM_CONFIDENCE_WEEKS = 2
MEDIUM_CONFIDENCE_RUNS = 4

BASELINE_MIN_WEEKS = 2
BASELINE_RECENCY_WEIGHTS = [1, 1, 2, 2]  # oldest to newest


@dataclass
class WeeklyMileageSummary:
    """Average weekly mileage over completed weeks."""
    calculated_mileage: int
    weeks_analyzed: int
    total_run_count: int
    confidence: str  # high, medium, low


@dataclass
class BaselineUpdate:
    """Result of re-deriving the baseline weekly mileage."""
    new_baseline: float
    previous_baseline: float
    actual_recent_average: float
    change_percent: int
    weeks_analyzed: int
    reasoning: str


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up."""
    return int(math.floor(value + 0.5))


def week_start(day: Union[date, datetime]) -> date:
    """Return the Monday of the week containing ``day``."""
    if isinstance(day, datetime):
        day = day.date()
    return day - timedelta(days=day.weekday())


def _runs(activities: Sequence[Activity]) -> List[Activity]:
    return [a for a in activities if a.type == "run"]


def weekly_totals(activities: Sequence[Activity], today: Optional[date] = None) -> Dict[date, float]:
    """Sum run distance per completed week, oldest week first.

    Weeks without a run never appear, so they do not dilute averages.
    """
    current_week = week_start(today or date.today())
    totals: Dict[date, float] = {}

    for run in _runs(activities):
        key = week_start(run.date)
        if key == current_week:
            continue
        totals[key] = totals.get(key, 0.0) + run.distance_miles

    return dict(sorted(totals.items()))


def _confidence(weeks: int, runs: int) -> str:
    if weeks >= HIGH_CONFIDENCE_WEEKS and runs >= HIGH_CONFIDENCE_RUNS:
        return "high"
    elif weeks >= MEDIUM_CONFIDENCE_WEEKS and runs >= MEDIUM_CONFIDENCE_RUNS:
        return "medium"
    return "low"


def calculate_weekly_mileage(
    activities: Sequence[Activity],
    today: Optional[date] = None
) -> WeeklyMileageSummary:
    """Calculate average weekly running mileage.

    Args:
        activities: Activities from any platform, in any order
        today: Reference date for the current week (defaults to today)

    Returns:
        WeeklyMileageSummary with the rounded average and a confidence label
    """
    run_count = len(_runs(activities))
    totals = weekly_totals(activities, today)

    if not totals:
        return WeeklyMileageSummary(
            calculated_mileage=0,
            weeks_analyzed=0,
            total_run_count=run_count,
            confidence="low",
        )

    weeks = len(totals)
    average = sum(totals.values()) / weeks

    return WeeklyMileageSummary(
        calculated_mileage=round_half_up(average),
        weeks_analyzed=weeks,
        total_run_count=run_count,
        confidence=_confidence(weeks, run_count),
    )


def calculate_updated_baseline(
    activities: Sequence[Activity],
    current_baseline: float,
    today: Optional[date] = None
) -> BaselineUpdate:
    """Re-derive the baseline weekly mileage from recent completed weeks.

    With four or more weeks the last four are averaged with the two most
    recent counting double; with two or three weeks a plain mean is used.
    The result moves at most +10% / -25% from the current baseline and
    never drops below the minimum weekly mileage.
    """
    if not _runs(activities):
        return BaselineUpdate(
            new_baseline=current_baseline,
            previous_baseline=current_baseline,
            actual_recent_average=0,
            change_percent=0,
            weeks_analyzed=0,
            reasoning="No running activities found - keeping baseline unchanged",
        )

    weeks = list(weekly_totals(activities, today).values())
    weeks_analyzed = len(weeks)

    if weeks_analyzed < BASELINE_MIN_WEEKS:
        plural = "" if weeks_analyzed == 1 else "s"
        return BaselineUpdate(
            new_baseline=current_baseline,
            previous_baseline=current_baseline,
            actual_recent_average=weeks[0] if weeks else 0,
            change_percent=0,
            weeks_analyzed=weeks_analyzed,
            reasoning=(
                f"Only {weeks_analyzed} week{plural} of data - "
                f"need at least {BASELINE_MIN_WEEKS} to update baseline"
            ),
        )

    if weeks_analyzed >= len(BASELINE_RECENCY_WEIGHTS):
        recent = weeks[-len(BASELINE_RECENCY_WEIGHTS):]
        weighted = sum(miles * weight for miles, weight in zip(recent, BASELINE_RECENCY_WEIGHTS))
        actual_average = weighted / sum(BASELINE_RECENCY_WEIGHTS)
    else:
        actual_average = sum(weeks) / weeks_analyzed

    max_increase = current_baseline * config.BASELINE_MAX_INCREASE
    max_decrease = current_baseline * config.BASELINE_MAX_DECREASE
    rounded_average = round_half_up(actual_average)
    new_baseline = rounded_average

    if new_baseline > max_increase:
        new_baseline = round_half_up(max_increase)
        reasoning = (
            f"Capped at 10% increase ({rounded_average} mi/week average, "
            f"but limited to {new_baseline} mi/week for safety)"
        )
    elif new_baseline < max_decrease:
        new_baseline = round_half_up(max_decrease)
        reasoning = (
            f"Capped at 25% decrease ({rounded_average} mi/week average, "
            f"but limited to {new_baseline} mi/week to avoid over-correction)"
        )
    else:
        change = new_baseline - current_baseline
        if change > 0:
            reasoning = (
                f"Increased baseline based on {weeks_analyzed} weeks of training "
                f"(averaging {rounded_average} mi/week)"
            )
        elif change < 0:
            reasoning = (
                f"Decreased baseline to match recent training volume "
                f"({weeks_analyzed} weeks averaging {rounded_average} mi/week)"
            )
        else:
            reasoning = (
                f"Baseline unchanged - actual training matches current baseline "
                f"({weeks_analyzed} weeks)"
            )

    if new_baseline < config.BASELINE_MIN_MILES:
        new_baseline = config.BASELINE_MIN_MILES
        reasoning = f"Set to minimum {config.BASELINE_MIN_MILES} mi/week (actual: {rounded_average} mi/week)"

    change_percent = 0
    if current_baseline > 0:
        change_percent = round_half_up((new_baseline - current_baseline) / current_baseline * 100)

    return BaselineUpdate(
        new_baseline=new_baseline,
        previous_baseline=current_baseline,
        actual_recent_average=round_half_up(actual_average * 10) / 10,
        change_percent=change_percent,
        weeks_analyzed=weeks_analyzed,
        reasoning=reasoning,
    )
