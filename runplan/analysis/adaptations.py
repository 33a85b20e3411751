"""Explainable rule-based plan adaptations.

Each rule reads the analysis and recent activities and either fires
(producing a change and a human-readable insight) or stays quiet. Rules
whose data is missing, for example body battery for Strava users, are
reported as skipped rather than evaluated against defaults.
"""

import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from ..api.models import Activity, PlatformData, format_minutes
from .analyzer import AnalysisResults
from .mileage import round_half_up
from .planner import DayPlan, TrainingPlan, total_distance

logger = logging.getLogger(__name__)

MULTIPLIER_FLOOR = 0.70
TEMPO_DAY = 2  # Wednesday
PACE_DIVERGENCE_SECONDS = 30
MIN_PACE_RUNS = 3
RECENT_PACE_WEIGHT = 2
MISSED_LONG_RUN_RATIO = 0.6

GARMIN_ONLY_RULES = (
    "rule_2_body_battery_low",
    "rule_5_extra_rest_declining",
    "rule_7_rpe_fatigue_swap",
)


@dataclass
class Insight:
    category: str  # recovery, pace, structure, long_run, positive, data_quality
    severity: str  # info, warning, positive
    message: str
    source: str


@dataclass
class StructureChange:
    day_index: int
    from_type: str
    to_type: str
    reason: str


@dataclass
class PaceAdjustment:
    type: str  # easy, hard
    actual_pace_per_mile: float
    goal_pace_per_mile: float
    divergence_seconds: float


@dataclass
class LongRunAdjustment:
    type: str  # cap, reduce_percent
    value: float  # cap in miles, or fraction to remove
    reason: str


@dataclass
class AdaptationResult:
    mileage_multiplier: float = 1.0
    structure_changes: List[StructureChange] = field(default_factory=list)
    pace_adjustments: List[PaceAdjustment] = field(default_factory=list)
    long_run_adjustment: Optional[LongRunAdjustment] = None
    insights: List[Insight] = field(default_factory=list)
    rules_evaluated: int = 0
    rules_fired: int = 0
    rules_skipped: List[str] = field(default_factory=list)

    def fire(self, insight: Insight) -> None:
        self.rules_fired += 1
        self.insights.append(insight)


def clamp_multiplier(value: float, floor: float = MULTIPLIER_FLOOR) -> float:
    return max(floor, min(1.0, value))


def _reference_time(today: Optional[date]) -> datetime:
    if today is None:
        return datetime.now()
    return datetime.combine(today, datetime.min.time())


def _pace(activity: Activity) -> Optional[float]:
    if activity.distance_miles <= 0 or activity.duration_minutes <= 0:
        return None
    return activity.duration_minutes / activity.distance_miles


def longest_recent_run(activities: Sequence[Activity], now: datetime) -> Optional[float]:
    """Longest run distance over the last seven days."""
    cutoff = now - timedelta(days=7)
    recent = [a.distance_miles for a in activities if a.type == "run" and a.date and a.date >= cutoff]
    return max(recent) if recent else None


def weighted_pace(
    runs: Sequence[Activity],
    predicate: Callable[[Activity], bool],
    now: datetime
) -> Optional[Dict[str, float]]:
    """Average pace of matching runs, with the last two weeks counting double."""
    cutoff = now - timedelta(days=14)
    matching = [r for r in runs if predicate(r)]
    if not matching:
        return None

    weighted_sum = 0.0
    total_weight = 0
    for run in matching:
        pace = _pace(run)
        if pace is None:
            continue
        weight = RECENT_PACE_WEIGHT if run.date >= cutoff else 1
        weighted_sum += pace * weight
        total_weight += weight

    if not total_weight:
        return None
    return {"pace": weighted_sum / total_weight, "count": len(matching)}


def compute_adaptations(
    analysis: AnalysisResults,
    data: PlatformData,
    phase: str,
    goal_pace: Optional[float],
    expected_long_run: Optional[float],
    long_run_day: str = "saturday",
    today: Optional[date] = None
) -> AdaptationResult:
    """Evaluate every adaptation rule.

    Args:
        analysis: Analysis of the recent data window
        data: Platform data the analysis was built from
        phase: Current training phase
        goal_pace: Goal pace in minutes per mile, if a goal time is set
        expected_long_run: This week's planned long run in miles
        long_run_day: "saturday" or "sunday"
        today: Reference date (defaults to now)

    Returns:
        AdaptationResult with changes, insights and skipped rules
    """
    now = _reference_time(today)
    result = AdaptationResult()
    mileage_rules_fired = 0

    rhr = analysis.resting_hr
    bb = analysis.body_battery
    sleep = analysis.sleep
    rpe = analysis.rpe

    # Mileage derates
    result.rules_evaluated += 1
    if rhr.get("available"):
        if rhr.get("status") == "concern" and rhr.get("change", 0) > 3:
            result.mileage_multiplier *= 0.90
            mileage_rules_fired += 1
            result.fire(Insight(
                "recovery", "warning",
                f"RHR elevated +{rhr['change']} bpm from baseline ({rhr['baseline']}→{rhr['current']}). "
                f"Volume reduced 10%.",
                "rule_1_rhr_elevated",
            ))
    else:
        result.rules_skipped.append("rule_1_rhr_elevated")

    result.rules_evaluated += 1
    if bb.get("available"):
        if bb.get("status") == "concern":
            result.mileage_multiplier *= 0.85
            mileage_rules_fired += 1
            result.fire(Insight(
                "recovery", "warning",
                f"Body Battery wake average is {bb['current_wake']}, below recovery threshold. Volume reduced 15%.",
                "rule_2_body_battery_low",
            ))
    else:
        result.rules_skipped.append("rule_2_body_battery_low")

    result.rules_evaluated += 1
    if sleep.get("available"):
        if sleep.get("status") == "concern":
            result.mileage_multiplier *= 0.85
            mileage_rules_fired += 1
            result.fire(Insight(
                "recovery", "warning",
                f"Sleep averaging {sleep['avg_hours']}h with {sleep['under_6h_nights']} nights under 6h. "
                f"Volume reduced 15%.",
                "rule_3_poor_sleep",
            ))
    else:
        result.rules_skipped.append("rule_3_poor_sleep")

    result.mileage_multiplier = clamp_multiplier(result.mileage_multiplier)

    # Structure changes
    include_tempo = phase in ("build", "peak")

    result.rules_evaluated += 1
    if include_tempo:
        if mileage_rules_fired >= 2:
            result.structure_changes.append(
                StructureChange(TEMPO_DAY, "tempo", "easy", "Multiple recovery signals detected")
            )
            result.fire(Insight(
                "structure", "warning",
                "Tempo replaced with easy run - multiple recovery signals detected.",
                "rule_4_swap_tempo_fatigued",
            ))
    else:
        result.rules_skipped.append("rule_4_swap_tempo_fatigued")

    result.rules_evaluated += 1
    if bb.get("available"):
        if bb.get("trend") == "declining":
            long_run_idx = 5 if long_run_day == "saturday" else 6
            candidates = [4, 1] if long_run_day == "saturday" else [4, 1, 5]
            target = next((idx for idx in candidates if idx != long_run_idx), None)
            if target is not None:
                result.structure_changes.append(
                    StructureChange(target, "easy", "rest", "Body Battery trending down over 7+ days")
                )
                result.fire(Insight(
                    "structure", "warning",
                    "Added extra rest day - Body Battery trending down over 7+ days.",
                    "rule_5_extra_rest_declining",
                ))
    else:
        result.rules_skipped.append("rule_5_extra_rest_declining")

    result.rules_evaluated += 1
    if sleep.get("available"):
        if sleep.get("under_6h_nights", 0) >= 3:
            result.structure_changes.append(
                StructureChange(TEMPO_DAY, "intervals", "easy", "3+ poor sleep nights this week")
            )
            result.fire(Insight(
                "structure", "warning",
                f"Intervals replaced with easy - {sleep['under_6h_nights']} poor sleep nights this week.",
                "rule_6_no_intervals_sleep_deprived",
            ))
    else:
        result.rules_skipped.append("rule_6_no_intervals_sleep_deprived")

    result.rules_evaluated += 1
    if rpe.get("available"):
        if rpe.get("trend") == "rising" and rpe.get("fatigue_indicators", 0) >= 2:
            already_swapped = any(
                c.day_index == TEMPO_DAY and c.from_type == "tempo" for c in result.structure_changes
            )
            if include_tempo and not already_swapped:
                result.structure_changes.append(StructureChange(
                    TEMPO_DAY, "tempo", "easy", "Workouts feeling harder with less training benefit"
                ))
                result.fire(Insight(
                    "structure", "warning",
                    "Tempo replaced with easy - workouts are feeling harder with less training benefit.",
                    "rule_7_rpe_fatigue_swap",
                ))
    else:
        result.rules_skipped.append("rule_7_rpe_fatigue_swap")

    # Pace personalization
    runs = [a for a in data.activities if a.type == "run" and a.date]

    result.rules_evaluated += 1
    if len(runs) >= MIN_PACE_RUNS and goal_pace:
        goal_easy_pace = goal_pace + 1.5

        def is_easy(run: Activity) -> bool:
            pace = _pace(run)
            if pace is None:
                return False
            return pace > goal_pace + 0.5 or (run.avg_hr is not None and run.avg_hr < 150)

        easy = weighted_pace(runs, is_easy, now)
        if easy and easy["count"] >= 2:
            divergence = abs(easy["pace"] - goal_easy_pace) * 60
            if divergence > PACE_DIVERGENCE_SECONDS:
                direction = "faster" if easy["pace"] < goal_easy_pace else "slower"
                result.pace_adjustments.append(
                    PaceAdjustment("easy", easy["pace"], goal_easy_pace, divergence)
                )
                result.fire(Insight(
                    "pace", "info",
                    f"Your actual easy pace is {format_minutes(easy['pace'])}/mi based on {easy['count']} runs - "
                    f"{direction} than goal suggests ({format_minutes(goal_easy_pace)}/mi).",
                    "rule_8_easy_pace_real",
                ))
    else:
        result.rules_skipped.append("rule_8_easy_pace_real")

    result.rules_evaluated += 1
    if len(runs) >= MIN_PACE_RUNS and goal_pace:
        def is_hard(run: Activity) -> bool:
            pace = _pace(run)
            return pace is not None and pace <= goal_pace + 0.5

        hard = weighted_pace(runs, is_hard, now)
        if hard and hard["count"] >= 2:
            divergence = abs(hard["pace"] - goal_pace) * 60
            if divergence > PACE_DIVERGENCE_SECONDS:
                result.pace_adjustments.append(PaceAdjustment("hard", hard["pace"], goal_pace, divergence))
                result.fire(Insight(
                    "pace", "info",
                    f"Your recent hard efforts average {format_minutes(hard['pace'])}/mi "
                    f"vs goal pace of {format_minutes(goal_pace)}/mi.",
                    "rule_9_tempo_gap",
                ))
    else:
        result.rules_skipped.append("rule_9_tempo_gap")

    # Long run adjustments; the first one to fire wins
    longest = longest_recent_run(data.activities, now)

    result.rules_evaluated += 1
    if mileage_rules_fired >= 2 and expected_long_run:
        if longest is not None and longest < expected_long_run:
            result.long_run_adjustment = LongRunAdjustment(
                "cap", longest, "No progression while recovery metrics are concerning"
            )
            result.fire(Insight(
                "long_run", "warning",
                f"Long run capped at {round_half_up(longest)} mi - no progression while recovery metrics are concerning.",
                "rule_10_cap_poor_recovery",
            ))

    result.rules_evaluated += 1
    dow = analysis.day_of_week
    if dow.get("available") and dow.get("by_day"):
        eve = "Friday" if long_run_day == "saturday" else "Saturday"
        is_worst = dow.get("worst_bb_day") == eve or dow.get("worst_sleep_day") == eve
        if is_worst and result.long_run_adjustment is None:
            result.long_run_adjustment = LongRunAdjustment(
                "reduce_percent", 0.10, f"{eve} recovery is typically lower"
            )
            result.fire(Insight(
                "long_run", "info",
                f"Your {eve} recovery is typically lower - long run reduced 10%.",
                "rule_11_eve_of_data",
            ))
    else:
        result.rules_skipped.append("rule_11_eve_of_data")

    result.rules_evaluated += 1
    if expected_long_run and result.long_run_adjustment is None:
        if longest is None or longest < expected_long_run * MISSED_LONG_RUN_RATIO:
            result.long_run_adjustment = LongRunAdjustment(
                "reduce_percent", 0.15, "No long run detected last week"
            )
            result.fire(Insight(
                "long_run", "info",
                "No long run detected last week - this week's reduced to rebuild safely.",
                "rule_12_missed_long_run",
            ))

    # Positive insights
    result.rules_evaluated += 1
    available = [m for m in (rhr, bb, sleep) if m.get("available")]
    if available and all(m.get("status") == "good" for m in available) and mileage_rules_fired == 0:
        result.fire(Insight(
            "positive", "positive",
            "Recovery metrics look strong - great week to push your training.",
            "rule_13_all_good",
        ))

    result.rules_evaluated += 1
    vo2 = analysis.vo2max
    if vo2.get("available"):
        if vo2.get("trend") == "improving" and vo2.get("change", 0) > 0.5:
            result.fire(Insight(
                "positive", "positive",
                f"VO2 max trending up (+{vo2['change']}) - your aerobic fitness is progressing.",
                "rule_14_vo2max_improving",
            ))
    else:
        result.rules_skipped.append("rule_14_vo2max_improving")

    if any(rule in GARMIN_ONLY_RULES for rule in result.rules_skipped):
        result.insights.append(Insight(
            "data_quality", "info",
            f"{len(result.rules_skipped)} adaptation rules skipped due to limited health data. "
            f"Connect a Garmin device for full personalization.",
            "data_quality_notice",
        ))

    logger.debug(
        f"Adaptations: {result.rules_fired}/{result.rules_evaluated} rules fired, "
        f"{len(result.rules_skipped)} skipped"
    )
    return result


def apply_structure_changes(
    daily_plan: List[DayPlan],
    changes: List[StructureChange],
    easy_pace: str,
    unit_label: str
) -> List[DayPlan]:
    """Return a copy of the plan with workout swaps applied.

    A change only applies when the day still has the workout type it
    expects to replace.
    """
    plan = [replace(day) for day in daily_plan]

    for change in changes:
        if not 0 <= change.day_index < len(plan):
            continue
        day = plan[change.day_index]
        if day.workout_type != change.from_type:
            continue

        if change.to_type == "rest":
            day.workout_type = "rest"
            day.title = "Rest Day (adjusted)"
            day.distance_miles = None
            day.description = f"Rest or light stretching. {change.reason}."
        elif change.to_type == "easy":
            day.workout_type = "easy"
            day.title = "Easy Run (adjusted)"
            day.distance_miles = round_half_up(day.distance_miles * 0.8) if day.distance_miles else None
            day.description = f"Easy pace at {easy_pace}{unit_label}. {change.reason}."
        else:
            continue
        day.notes = "Plan adjusted based on your recovery data."

    return plan


def apply_long_run_adjustment(long_run_miles: float, adjustment: Optional[LongRunAdjustment]) -> float:
    if adjustment is None:
        return long_run_miles
    if adjustment.type == "cap":
        return min(long_run_miles, adjustment.value)
    return round_half_up(long_run_miles * (1 - adjustment.value))


def apply_adaptations(plan: TrainingPlan, result: AdaptationResult) -> TrainingPlan:
    """Apply structure and long run changes to a generated plan."""
    daily_plan = apply_structure_changes(
        plan.daily_plan,
        result.structure_changes,
        plan.paces.get("easy", ""),
        plan.paces.get("unit_label", "/mile"),
    )

    for day in daily_plan:
        if day.workout_type == "long_run" and day.distance_miles:
            day.distance_miles = apply_long_run_adjustment(day.distance_miles, result.long_run_adjustment)

    week_summary = dict(plan.week_summary)
    week_summary["total_miles"] = total_distance(daily_plan)

    return replace(
        plan,
        week_summary=week_summary,
        daily_plan=daily_plan,
        insights=[asdict(insight) for insight in result.insights],
    )
