"""Recovery and lifestyle analysis over a window of platform data.

Each section is a plain dictionary with an ``available`` flag so that
missing series (Strava has no sleep or body battery, for example) degrade
to ``{"available": False}`` instead of failing the whole analysis.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Sequence

import numpy as np

from ..api.models import Activity, PlatformData, vo2max_fitness_level
from .mileage import round_half_up

logger = logging.getLogger(__name__)

DAYS_OF_WEEK = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

RHR_COMPARISON_DAYS = 14
VO2MAX_COMPARISON_READINGS = 7

SLEEP_SHORT_HOURS = 6
SLEEP_TARGET_HOURS = 7
SLEEP_CONCERN_HOURS = 6.5

HIGH_SEDENTARY_HOURS = 17
HIGH_STRESS_LEVEL = 45
LOW_STRESS_LEVEL = 35

STEPS_LOW = 5000
STEPS_ACTIVE = 10000
STEPS_VERY_ACTIVE = 20000

RPE_HARD = 7
RPE_EASY = 4
RPE_LOW_TRAINING_EFFECT = 2.5


@dataclass
class AnalysisResults:
    """Per-section analysis of a data window plus prioritized recommendations."""
    overview: Dict[str, Any] = field(default_factory=dict)
    resting_hr: Dict[str, Any] = field(default_factory=lambda: {"available": False})
    body_battery: Dict[str, Any] = field(default_factory=lambda: {"available": False})
    vo2max: Dict[str, Any] = field(default_factory=lambda: {"available": False})
    sleep: Dict[str, Any] = field(default_factory=lambda: {"available": False})
    sedentary: Dict[str, Any] = field(default_factory=lambda: {"available": False})
    stress: Dict[str, Any] = field(default_factory=lambda: {"available": False})
    steps: Dict[str, Any] = field(default_factory=lambda: {"available": False})
    rpe: Dict[str, Any] = field(default_factory=lambda: {"available": False})
    day_of_week: Dict[str, Any] = field(default_factory=lambda: {"available": False})
    recommendations: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisResults":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


def _round1(value: float) -> float:
    return round_half_up(value * 10) / 10


def _mean(values: Sequence[float]) -> float:
    return float(np.mean(values)) if len(values) else 0.0


def _pct(part: int, whole: int) -> int:
    return round_half_up(part / whole * 100) if whole else 0


class TrainingAnalyzer:
    """Analyze normalized platform data for recovery signals."""

    def __init__(self, data: PlatformData):
        self.data = data
        self.activities = sorted(
            (a for a in data.activities if a.date is not None), key=lambda a: a.date
        )
        self.sleep = sorted(data.sleep, key=lambda s: s.date)
        self.heart_rate = sorted(data.heart_rate, key=lambda h: h.date)
        self.daily_summaries = sorted(data.daily_summaries, key=lambda d: d.date)
        self.vo2max_readings = sorted(data.vo2max, key=lambda v: v.date)

    def analyze(self) -> AnalysisResults:
        """Run all analyses and return the combined results."""
        results = AnalysisResults(
            overview=self.analyze_overview(),
            resting_hr=self.analyze_resting_hr(),
            body_battery=self.analyze_body_battery(),
            vo2max=self.analyze_vo2max(),
            sleep=self.analyze_sleep(),
            sedentary=self.analyze_sedentary(),
            stress=self.analyze_stress(),
            steps=self.analyze_steps(),
            rpe=self.analyze_rpe(),
            day_of_week=self.analyze_day_of_week(),
        )
        results.recommendations = self.generate_recommendations(results)

        available = [
            name for name in ("resting_hr", "body_battery", "vo2max", "sleep", "stress", "rpe")
            if getattr(results, name)["available"]
        ]
        logger.debug(f"Analysis complete; available sections: {', '.join(available) or 'none'}")
        return results

    def analyze_overview(self) -> Dict[str, Any]:
        dates = [d.date for d in self.daily_summaries]
        return {
            "total_days": len(self.daily_summaries),
            "start_date": dates[0].isoformat() if dates else "",
            "end_date": dates[-1].isoformat() if dates else "",
            "data_types": {
                "activities": len(self.data.activities),
                "sleep": len(self.data.sleep),
                "heart_rate": len(self.data.heart_rate),
                "daily_summaries": len(self.data.daily_summaries),
            },
        }

    def analyze_resting_hr(self) -> Dict[str, Any]:
        """Compare the first and last two weeks of resting heart rate."""
        values = [hr.resting_hr for hr in self.heart_rate if hr.resting_hr and hr.resting_hr > 0]
        if not values:
            return {"available": False}

        baseline = _mean(values[:RHR_COMPARISON_DAYS])
        recent = _mean(values[-RHR_COMPARISON_DAYS:])
        change = recent - baseline
        change_pct = change / baseline * 100 if baseline else 0

        if change > 2:
            trend = "rising"
        elif change < -2:
            trend = "falling"
        else:
            trend = "stable"

        if change > 3:
            status = "concern"
        elif change < -1:
            status = "good"
        else:
            status = "normal"

        return {
            "available": True,
            "baseline": _round1(baseline),
            "current": _round1(recent),
            "change": _round1(change),
            "change_pct": _round1(change_pct),
            "min": min(values),
            "max": max(values),
            "avg": _round1(_mean(values)),
            "trend": trend,
            "status": status,
        }

    def analyze_body_battery(self) -> Dict[str, Any]:
        """Wake-up body battery (daily high) and overnight recharge."""
        highs = [d.body_battery_high for d in self.daily_summaries if d.body_battery_high and d.body_battery_high > 0]
        if not highs:
            return {"available": False}

        charged = [
            d.body_battery_charged for d in self.daily_summaries
            if d.body_battery_high and d.body_battery_high > 0
            and d.body_battery_charged and d.body_battery_charged > 0
        ]

        baseline = _mean(highs[:RHR_COMPARISON_DAYS])
        recent = _mean(highs[-RHR_COMPARISON_DAYS:])
        change = recent - baseline

        if change < -5:
            trend = "declining"
        elif change > 5:
            trend = "improving"
        else:
            trend = "stable"

        if recent < 60:
            status = "concern"
        elif recent >= 75:
            status = "good"
        else:
            status = "normal"

        return {
            "available": True,
            "baseline_wake": round_half_up(baseline),
            "current_wake": round_half_up(recent),
            "change": round_half_up(change),
            "avg_recharge": round_half_up(_mean(charged)) if charged else 0,
            "min": min(highs),
            "max": max(highs),
            "trend": trend,
            "status": status,
        }

    def analyze_vo2max(self) -> Dict[str, Any]:
        values = [v.vo2max for v in self.vo2max_readings if v.vo2max and v.vo2max > 0]
        if not values:
            return {"available": False}

        baseline = _mean(values[:VO2MAX_COMPARISON_READINGS])
        recent = _mean(values[-VO2MAX_COMPARISON_READINGS:])
        change = recent - baseline

        if change > 1:
            trend = "improving"
        elif change < -1:
            trend = "declining"
        else:
            trend = "stable"

        if change >= 0:
            status = "good"
        elif change < -2:
            status = "concern"
        else:
            status = "normal"

        return {
            "available": True,
            "baseline": _round1(baseline),
            "current": _round1(recent),
            "change": _round1(change),
            "min": _round1(min(values)),
            "max": _round1(max(values)),
            "avg": _round1(_mean(values)),
            "fitness_level": vo2max_fitness_level(recent),
            "trend": trend,
            "status": status,
            "readings": len(values),
        }

    def analyze_sleep(self) -> Dict[str, Any]:
        hours = [s.total_sleep_hours for s in self.sleep if s.total_sleep_hours and s.total_sleep_hours > 0]
        if not hours:
            return {"available": False}

        average = _mean(hours)
        short_nights = sum(1 for h in hours if h < SLEEP_SHORT_HOURS)
        long_nights = sum(1 for h in hours if h >= SLEEP_TARGET_HOURS)

        if average < SLEEP_CONCERN_HOURS:
            status = "concern"
        elif average >= SLEEP_TARGET_HOURS:
            status = "good"
        else:
            status = "normal"

        return {
            "available": True,
            "avg_hours": _round1(average),
            "min_hours": _round1(min(hours)),
            "max_hours": _round1(max(hours)),
            "under_6h_nights": short_nights,
            "under_6h_pct": _pct(short_nights, len(hours)),
            "nights_7plus": long_nights,
            "nights_7plus_pct": _pct(long_nights, len(hours)),
            "total_nights": len(hours),
            "status": status,
        }

    def analyze_sedentary(self) -> Dict[str, Any]:
        hours = [d.sedentary_minutes / 60 for d in self.daily_summaries if d.sedentary_minutes and d.sedentary_minutes > 0]
        if not hours:
            return {"available": False}

        high_days = sum(1 for h in hours if h > HIGH_SEDENTARY_HOURS)
        return {
            "available": True,
            "avg_hours": _round1(_mean(hours)),
            "min_hours": _round1(min(hours)),
            "max_hours": _round1(max(hours)),
            "high_sed_days": high_days,
            "high_sed_pct": _pct(high_days, len(hours)),
        }

    def analyze_stress(self) -> Dict[str, Any]:
        values = [d.stress_level for d in self.daily_summaries if d.stress_level and d.stress_level > 0]
        if not values:
            return {"available": False}

        average = _mean(values)
        high_days = sum(1 for s in values if s > HIGH_STRESS_LEVEL)

        if average > HIGH_STRESS_LEVEL:
            status = "concern"
        elif average < LOW_STRESS_LEVEL:
            status = "good"
        else:
            status = "normal"

        return {
            "available": True,
            "avg": round_half_up(average),
            "min": min(values),
            "max": max(values),
            "high_stress_days": high_days,
            "high_stress_pct": _pct(high_days, len(values)),
            "status": status,
        }

    def analyze_steps(self) -> Dict[str, Any]:
        values = [d.steps for d in self.daily_summaries if d.steps and d.steps > 0]
        if not values:
            return {"available": False}

        # Population standard deviation; a single day has no spread
        std_dev = float(np.std(values)) if len(values) > 1 else 0.0

        if std_dev > 8000:
            variability = "high"
        elif std_dev > 4000:
            variability = "moderate"
        else:
            variability = "low"

        low_days = sum(1 for s in values if s < STEPS_LOW)
        return {
            "available": True,
            "avg": round_half_up(_mean(values)),
            "min": min(values),
            "max": max(values),
            "std_dev": round_half_up(std_dev),
            "low_days": low_days,
            "low_days_pct": _pct(low_days, len(values)),
            "moderate_days": sum(1 for s in values if STEPS_LOW <= s < STEPS_ACTIVE),
            "active_days": sum(1 for s in values if STEPS_ACTIVE <= s < STEPS_VERY_ACTIVE),
            "very_active_days": sum(1 for s in values if s >= STEPS_VERY_ACTIVE),
            "variability": variability,
        }

    def analyze_rpe(self) -> Dict[str, Any]:
        """Perceived exertion trend and effort-versus-benefit fatigue signals.

        A fatigue indicator is a hard effort (RPE 7+) that produced a low
        aerobic training effect.
        """
        rated: List[Activity] = [a for a in self.activities if a.perceived_exertion]
        if not rated:
            return {"available": False}

        values = [a.perceived_exertion for a in rated]
        average = _mean(values)

        change = 0.0
        if len(values) >= 2:
            half = len(values) // 2
            change = _mean(values[half:]) - _mean(values[:half])

        if change > 1:
            trend = "rising"
        elif change < -1:
            trend = "falling"
        else:
            trend = "stable"

        fatigue_indicators = sum(
            1 for a in rated
            if a.perceived_exertion >= RPE_HARD
            and a.aerobic_training_effect is not None
            and a.aerobic_training_effect < RPE_LOW_TRAINING_EFFECT
        )
        hard = sum(1 for v in values if v >= RPE_HARD)
        easy = sum(1 for v in values if v <= RPE_EASY)

        if trend == "rising" or fatigue_indicators >= 2:
            status = "concern"
        elif average <= 5:
            status = "good"
        else:
            status = "normal"

        return {
            "available": True,
            "avg_rpe": _round1(average),
            "min": min(values),
            "max": max(values),
            "change": _round1(change),
            "trend": trend,
            "status": status,
            "hard_workout_count": hard,
            "easy_workout_count": easy,
            "moderate_workout_count": len(values) - hard - easy,
            "fatigue_indicators": fatigue_indicators,
            "activities_with_rpe": len(rated),
            "total_activities": len(self.data.activities),
        }

    def analyze_day_of_week(self) -> Dict[str, Any]:
        """Average sleep, body battery, stress and steps per weekday."""
        buckets = {day: {"sleep": [], "bb": [], "stress": [], "steps": []} for day in DAYS_OF_WEEK}

        for summary in self.daily_summaries:
            bucket = buckets[DAYS_OF_WEEK[summary.date.weekday()]]
            if summary.steps and summary.steps > 0:
                bucket["steps"].append(summary.steps)
            if summary.body_battery_high:
                bucket["bb"].append(summary.body_battery_high)
            if summary.stress_level:
                bucket["stress"].append(summary.stress_level)

        for record in self.sleep:
            if record.total_sleep_hours and record.total_sleep_hours > 0:
                buckets[DAYS_OF_WEEK[record.date.weekday()]]["sleep"].append(record.total_sleep_hours)

        by_day = {}
        for day, bucket in buckets.items():
            by_day[day] = {
                "avg_sleep": _round1(_mean(bucket["sleep"])) if bucket["sleep"] else None,
                "avg_bb": round_half_up(_mean(bucket["bb"])) if bucket["bb"] else None,
                "avg_stress": round_half_up(_mean(bucket["stress"])) if bucket["stress"] else None,
                "avg_steps": round_half_up(_mean(bucket["steps"])) if bucket["steps"] else None,
            }

        sleep_days = [(day, by_day[day]["avg_sleep"]) for day in DAYS_OF_WEEK if by_day[day]["avg_sleep"]]
        bb_days = [(day, by_day[day]["avg_bb"]) for day in DAYS_OF_WEEK if by_day[day]["avg_bb"]]

        # Ties resolve to the earliest weekday
        return {
            "available": True,
            "by_day": by_day,
            "best_sleep_day": max(sleep_days, key=lambda d: d[1])[0] if sleep_days else None,
            "worst_sleep_day": min(sleep_days, key=lambda d: d[1])[0] if sleep_days else None,
            "best_bb_day": max(bb_days, key=lambda d: d[1])[0] if bb_days else None,
            "worst_bb_day": min(bb_days, key=lambda d: d[1])[0] if bb_days else None,
        }

    def generate_recommendations(self, results: AnalysisResults) -> List[Dict[str, str]]:
        """Turn concerning sections into prioritized recommendations."""
        recs = []

        rhr = results.resting_hr
        if rhr["available"] and rhr["status"] == "concern":
            sign = "+" if rhr["change"] > 0 else ""
            recs.append({
                "category": "Recovery",
                "priority": "high",
                "finding": (
                    f"Resting HR increased from {rhr['baseline']} to {rhr['current']} bpm "
                    f"({sign}{rhr['change']})"
                ),
                "recommendation": "Consider a recovery week with reduced training intensity and volume.",
                "science": "A rise in resting HR often indicates accumulated fatigue or incomplete recovery.",
            })

        bb = results.body_battery
        if bb["available"] and bb["status"] == "concern":
            recs.append({
                "category": "Recovery",
                "priority": "high",
                "finding": f"Body Battery wake average is {bb['current_wake']} (baseline: {bb['baseline_wake']})",
                "recommendation": "Focus on sleep quality and stress management. Consider earlier bedtime.",
                "science": "Body Battery below 60 suggests chronic recovery deficit.",
            })

        sleep = results.sleep
        if sleep["available"] and sleep["status"] == "concern":
            recs.append({
                "category": "Sleep",
                "priority": "high",
                "finding": (
                    f"Average sleep is {sleep['avg_hours']} hours "
                    f"({sleep['under_6h_pct']}% of nights under 6h)"
                ),
                "recommendation": "Prioritize sleep: aim for 7-8 hours. Set a consistent bedtime alarm.",
                "science": "Research shows <7h sleep increases injury risk by 1.7x in athletes.",
            })

        sedentary = results.sedentary
        if sedentary["available"] and sedentary.get("high_sed_pct", 0) > 30:
            recs.append({
                "category": "Movement",
                "priority": "medium",
                "finding": f"{sedentary['high_sed_pct']}% of days have 17+ hours sedentary",
                "recommendation": "Add movement breaks every 90 minutes. Consider walking meetings.",
                "science": "Prolonged sitting has independent health effects beyond exercise.",
            })

        stress = results.stress
        if stress["available"] and stress["status"] == "concern":
            recs.append({
                "category": "Stress",
                "priority": "medium",
                "finding": (
                    f"Average stress level is {stress['avg']} "
                    f"({stress['high_stress_pct']}% days above {HIGH_STRESS_LEVEL})"
                ),
                "recommendation": "Practice stress management: breathing exercises, meditation, or time in nature.",
                "science": "High stress throttles overnight recovery regardless of sleep duration.",
            })

        rpe = results.rpe
        if rpe["available"] and rpe["fatigue_indicators"] >= 2:
            recs.append({
                "category": "Recovery",
                "priority": "medium",
                "finding": (
                    f"{rpe['fatigue_indicators']} hard efforts produced a low training effect"
                ),
                "recommendation": "Swap the next hard session for an easy run and reassess how it feels.",
                "science": "High perceived effort with little aerobic benefit is an early sign of under-recovery.",
            })

        steps = results.steps
        if steps["available"] and steps["variability"] == "high":
            recs.append({
                "category": "Consistency",
                "priority": "low",
                "finding": f"Step counts vary widely (std dev: {steps['std_dev']})",
                "recommendation": "Aim for more consistent daily movement rather than extreme swings.",
                "science": "Consistent moderate activity supports better recovery than feast/famine patterns.",
            })

        return recs


def analyze_training_data(data: PlatformData) -> AnalysisResults:
    """Analyze fitness data and return insights."""
    return TrainingAnalyzer(data).analyze()
