"""Weekly training plan generation.

The weekly target is the configured mileage scaled by the training phase
and the user's intensity preference, then derated when recovery signals
show fatigue. The week is laid out as a seven-day schedule with pace
zones derived from the goal time.
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from ..api.models import format_minutes
from ..config import Config
from .analyzer import AnalysisResults
from .mileage import round_half_up, week_start

logger = logging.getLogger(__name__)

DAYS_OF_WEEK = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

KM_PER_MILE = 1.60934
DEFAULT_TARGET_PACE = "9:00"

RACE_NAMES = {
    "5k": "5K",
    "10k": "10K",
    "half_marathon": "Half Marathon",
    "marathon": "Marathon",
    "ultra": "Ultra",
    "custom": "Race",
}

GOAL_NAMES = {
    "5k": "5K",
    "10k": "10K",
    "half_marathon": "Half Marathon",
    "marathon": "Marathon",
    "ultra": "Ultra",
    "build_mileage": "Mileage Building",
    "maintain_fitness": "Fitness Maintenance",
    "base_building": "Base Building",
}

FATIGUE_FOCUS_THRESHOLD = 0.85


@dataclass
class TrainingConfig:
    """User goal and volume settings read by the planner."""
    user_id: str = "default"
    goal_category: str = "race"  # race, non_race
    goal_type: str = "marathon"
    goal_date: Optional[date] = None
    goal_time_minutes: Optional[float] = None
    custom_distance_miles: Optional[float] = None
    current_weekly_mileage: float = 20
    intensity_preference: str = "normal"  # conservative, normal, aggressive
    preferred_long_run_day: str = "saturday"  # saturday, sunday

    @classmethod
    def from_record(cls, record) -> "TrainingConfig":
        """Build from a ``TrainingConfigRecord`` row."""
        return cls(
            user_id=record.user_id,
            goal_category=record.goal_category or "race",
            goal_type=record.goal_type or "marathon",
            goal_date=record.goal_date,
            goal_time_minutes=record.goal_time_minutes,
            custom_distance_miles=record.custom_distance_miles,
            current_weekly_mileage=record.current_weekly_mileage,
            intensity_preference=record.intensity_preference or "normal",
            preferred_long_run_day=record.preferred_long_run_day or "saturday",
        )


@dataclass
class DayPlan:
    day: str
    workout_type: str  # rest, easy, tempo, long_run, intervals, race
    title: str
    distance_miles: Optional[float]
    description: str
    notes: Optional[str] = None


@dataclass
class TrainingPlan:
    """One week of training with its summary and guidance."""
    week_summary: Dict[str, Any]
    daily_plan: List[DayPlan]
    coaching_notes: List[str] = field(default_factory=list)
    recovery_recommendations: List[str] = field(default_factory=list)
    concerns: List[str] = field(default_factory=list)
    paces: Dict[str, str] = field(default_factory=dict)
    insights: List[Dict[str, str]] = field(default_factory=list)

    @property
    def recovery_adjustment(self) -> float:
        return self.week_summary["recovery_adjustment"]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrainingPlan":
        return cls(
            week_summary=data["week_summary"],
            daily_plan=[DayPlan(**day) for day in data["daily_plan"]],
            coaching_notes=data.get("coaching_notes", []),
            recovery_recommendations=data.get("recovery_recommendations", []),
            concerns=data.get("concerns", []),
            paces=data.get("paces", {}),
            insights=data.get("insights", []),
        )


@dataclass
class WeekProjection:
    week_number: int
    week_start_date: date
    weeks_until_race: int
    phase: str
    projected_mileage: int
    long_run_miles: int
    is_current_week: bool


def get_training_phase(weeks_until_race: Optional[int]) -> str:
    """Map weeks remaining before the race to a training phase."""
    if weeks_until_race is None:
        return "maintenance"
    if weeks_until_race > 12:
        return "base"
    if weeks_until_race > 6:
        return "build"
    if weeks_until_race > 3:
        return "peak"
    if weeks_until_race > 0:
        return "taper"
    return "race_week"


def calculate_weeks_until_race(goal_date: Optional[date], today: Optional[date] = None) -> Optional[int]:
    if goal_date is None:
        return None
    days = (goal_date - (today or date.today())).days
    return max(0, days // 7)


def determine_phase(config: TrainingConfig, today: Optional[date] = None) -> str:
    if config.goal_category == "race":
        return get_training_phase(calculate_weeks_until_race(config.goal_date, today))
    return "maintenance" if config.goal_type == "maintain_fitness" else "build"


def get_race_distance(config: TrainingConfig) -> float:
    if config.goal_type == "custom" and config.custom_distance_miles:
        return config.custom_distance_miles
    return Config.get_race_distance(config.goal_type)


def get_goal_pace(config: TrainingConfig) -> Optional[float]:
    """Goal pace in minutes per mile, or None without a goal time."""
    if not config.goal_time_minutes:
        return None
    return config.goal_time_minutes / get_race_distance(config)


def get_target_pace(config: TrainingConfig) -> str:
    pace = get_goal_pace(config)
    return format_minutes(pace) if pace else DEFAULT_TARGET_PACE


def parse_pace(pace: str) -> float:
    minutes, seconds = pace.split(":")
    return int(minutes) + int(seconds) / 60


def get_recovery_concerns(analysis: AnalysisResults) -> List[str]:
    """List the recovery concerns present in an analysis."""
    concerns = []

    if analysis.resting_hr.get("available") and analysis.resting_hr.get("status") == "concern":
        concerns.append("elevated_hr")
    if analysis.body_battery.get("available") and analysis.body_battery.get("status") == "concern":
        concerns.append("low_battery")
    if analysis.sleep.get("available") and analysis.sleep.get("status") == "concern":
        concerns.append("poor_sleep")

    if analysis.rpe.get("available"):
        if analysis.rpe.get("trend") == "rising":
            concerns.append("rising_rpe")
        if analysis.rpe.get("fatigue_indicators", 0) >= 2:
            concerns.append("rpe_fatigue")

    return concerns


def calculate_recovery_adjustment(analysis: AnalysisResults) -> float:
    """Volume derate for the number of recovery concerns (1.0 means none)."""
    return Config.get_recovery_adjustment(len(get_recovery_concerns(analysis)))


def calculate_long_run(weekly_miles: float, phase: str, goal_type: str) -> int:
    long_run = round_half_up(weekly_miles * Config.get_long_run_pct(phase))
    long_run = min(long_run, Config.get_long_run_cap(goal_type))
    return max(long_run, Config.MIN_LONG_RUN)


def display_distance(miles: float, unit: str = "mi", decimals: int = 1) -> str:
    value = miles * KM_PER_MILE if unit == "km" else miles
    return f"{value:.{decimals}f}"


def pace_label(unit: str = "mi") -> str:
    return "/km" if unit == "km" else "/mile"


def distance_label_short(unit: str = "mi") -> str:
    return "km" if unit == "km" else "mi"


class PlanBuilder:
    """Lay out the seven days of a training week."""

    def __init__(
        self,
        weekly_miles: int,
        long_run_miles: int,
        long_run_day: str,
        phase: str,
        target_pace: str,
        goal_type: str,
        race_distance: float,
        unit: str = "mi"
    ):
        self.weekly_miles = weekly_miles
        self.long_run_miles = long_run_miles
        self.long_run_day = long_run_day
        self.long_run_idx = 5 if long_run_day == "saturday" else 6
        self.phase = phase
        self.goal_type = goal_type
        self.race_distance = race_distance
        self.unit = unit
        self.unit_label = pace_label(unit)

        pace = parse_pace(target_pace)
        self.easy_pace = f"{self._convert_pace(pace + 1)}-{self._convert_pace(pace + 2)}"
        self.tempo_pace = f"{self._convert_pace(pace)}-{self._convert_pace(pace + 0.25)}"
        self.target_pace = self._convert_pace(pace)

    def _convert_pace(self, minutes_per_mile: float) -> str:
        if self.unit == "km":
            return format_minutes(minutes_per_mile / KM_PER_MILE)
        return format_minutes(minutes_per_mile)

    @property
    def paces(self) -> Dict[str, str]:
        return {
            "target": self.target_pace,
            "easy": self.easy_pace,
            "tempo": self.tempo_pace,
            "unit_label": self.unit_label,
        }

    def build(self) -> List[DayPlan]:
        if self.phase == "race_week":
            return self.race_week_plan()
        remaining = self.weekly_miles - self.long_run_miles
        if self.phase == "taper":
            return self.taper_plan(remaining)
        return self.regular_plan(remaining)

    def regular_plan(self, remaining: float) -> List[DayPlan]:
        include_tempo = self.phase in ("build", "peak")
        tempo_miles = 0
        if include_tempo:
            tempo_miles = min(max(round_half_up(remaining * 0.25), 5), 7)
            easy_miles = max(round_half_up((remaining - tempo_miles) / 3), 4)
        else:
            easy_miles = max(round_half_up(remaining / 3), 4)

        easy, label = self.easy_pace, self.unit_label
        plan = []

        for i, day in enumerate(DAYS_OF_WEEK):
            if i == self.long_run_idx:
                plan.append(DayPlan(
                    day, "long_run", "Long Run", self.long_run_miles,
                    f"Start easy at {easy}{label}, then settle into {self.target_pace}{label} "
                    f"for the middle portion. Practice race-day nutrition.",
                    "Key workout #1 - stay relaxed and focus on time on feet.",
                ))
            elif i == 0:
                plan.append(DayPlan(
                    day, "rest", "Rest Day", None,
                    "Complete rest or light stretching/yoga. Let your body recover from the long run.",
                    "Recovery is when fitness gains happen.",
                ))
            elif i == 1:
                plan.append(DayPlan(
                    day, "easy", "Easy Run", easy_miles,
                    f"Easy pace at {easy}{label}. Keep heart rate in Zone 2.",
                ))
            elif i == 2 and include_tempo:
                if self.unit == "km":
                    warm_cool = "1.6 km"
                    core = f"{display_distance(tempo_miles - 2, self.unit, 0)} km"
                else:
                    warm_cool = "1 mile"
                    core = f"{tempo_miles - 2} miles"
                plan.append(DayPlan(
                    day, "tempo", "Tempo Run", tempo_miles,
                    f"{warm_cool} warm-up, {core} at {self.tempo_pace}{label}, {warm_cool} cool-down.",
                    "Key workout #2 - comfortably hard effort.",
                ))
            elif i == 2:
                plan.append(DayPlan(
                    day, "rest", "Rest Day", None,
                    "Rest or cross-training (swimming, cycling, yoga).",
                    "Active recovery keeps you fresh.",
                ))
            elif i == 3:
                plan.append(DayPlan(
                    day, "rest", "Rest / Cross-Train", None,
                    "Rest day or optional cross-training. Good day for strength work or yoga.",
                    "Quality over quantity - rest makes you faster.",
                ))
            elif i == 4:
                easy_display = f"{display_distance(easy_miles, self.unit, 0)} {distance_label_short(self.unit)}"
                plan.append(DayPlan(
                    day, "easy", "Easy Run + Strides", easy_miles,
                    f"Easy {easy_display} at {easy}{label}, then 4x100m strides with full recovery.",
                    "Strides keep your legs feeling snappy.",
                ))
            elif i == 5 and self.long_run_day == "sunday":
                plan.append(DayPlan(
                    day, "easy", "Pre-Long Run Shakeout", round_half_up(easy_miles * 0.6),
                    f"Short easy run at {easy}{label}. Just loosening up for tomorrow.",
                    "Keep it short and easy. Prepare gear for tomorrow.",
                ))
            elif i == 6 and self.long_run_day == "saturday":
                plan.append(DayPlan(
                    day, "rest", "Rest Day", None,
                    "Complete rest. Recover from yesterday's long run.",
                    "Enjoy your rest day!",
                ))
            else:
                plan.append(DayPlan(
                    day, "easy", "Easy Run", easy_miles,
                    f"Easy pace at {easy}{label}.",
                ))

        return plan

    def taper_plan(self, remaining: float) -> List[DayPlan]:
        easy_miles = round_half_up(remaining / 3)
        easy, label = self.easy_pace, self.unit_label
        plan = []

        for i, day in enumerate(DAYS_OF_WEEK):
            if i == self.long_run_idx:
                plan.append(DayPlan(
                    day, "long_run", "Taper Long Run", self.long_run_miles,
                    f"Easy effort at {easy}{label} with a few at {self.target_pace}{label} to stay sharp.",
                    "Keep it controlled - save energy for race day.",
                ))
            elif i in (0, 3):
                plan.append(DayPlan(
                    day, "rest", "Rest Day", None,
                    "Complete rest. Focus on sleep and nutrition.",
                    "Taper = trust the process." if i == 0 else None,
                ))
            elif i == 1:
                plan.append(DayPlan(
                    day, "easy", "Easy Run", easy_miles,
                    f"Easy at {easy}{label}. Keep legs moving.",
                ))
            elif i == 4:
                plan.append(DayPlan(
                    day, "easy", "Easy Run + Strides", easy_miles,
                    f"Easy {easy_miles} miles with 4x100m strides at the end.",
                    "Keep the legs feeling fresh and fast.",
                ))
            elif i == 2:
                plan.append(DayPlan(
                    day, "tempo", "Short Tempo", easy_miles,
                    f"Easy warm-up, tempo at {self.tempo_pace}{label}, easy cool-down. "
                    f"Stay sharp without fatiguing.",
                    "Brief quality to maintain sharpness.",
                ))
            else:
                plan.append(DayPlan(day, "rest", "Rest Day", None, "Rest and recovery."))

        return plan

    def race_week_plan(self) -> List[DayPlan]:
        race_name = RACE_NAMES.get(self.goal_type, "Race")

        if self.race_distance <= 6.2:
            shakeouts = (2, 1.5, 1.5)
        elif self.race_distance <= 13.1:
            shakeouts = (2.5, 2, 2)
        else:
            shakeouts = (3, 2, 2)

        return [
            DayPlan("Monday", "rest", "Rest Day", None,
                    "Complete rest. Focus on hydration and sleep.", "Race week begins - stay calm."),
            DayPlan("Tuesday", "easy", "Easy Shakeout", shakeouts[0],
                    f"Very easy shakeout at {self.easy_pace}{self.unit_label} with 4 strides.", "Keep legs loose."),
            DayPlan("Wednesday", "rest", "Rest Day", None,
                    "Complete rest. Visualize your race."),
            DayPlan("Thursday", "easy", "Easy Shakeout", shakeouts[1],
                    "Very easy shakeout. Just blood flow.", "Short and sweet."),
            DayPlan("Friday", "rest", "Rest Day", None,
                    "Rest. Prepare race gear, pin your bib, lay out clothes.", "Early bedtime tonight."),
            DayPlan("Saturday", "easy", "Pre-Race Shakeout", shakeouts[2],
                    "Easy 15-20 min with 4 strides. Shake out the nerves.", "Stay off your feet the rest of the day."),
            DayPlan("Sunday", "race", f"RACE DAY - {race_name}!", self.race_distance,
                    "Execute your race plan. Start conservative, negative split, finish strong!",
                    "Trust your training - you've got this!"),
        ]


def generate_coaching_notes(
    phase: str,
    weeks_to_race: Optional[int],
    goal_type: str,
    recovery_adjustment: float
) -> List[str]:
    notes = []
    race_name = RACE_NAMES.get(goal_type, "race")

    if phase == "peak":
        notes.append(f"Peak week with {weeks_to_race} weeks to {race_name}. Quality over quantity - nail your long run and tempo.")
    elif phase == "build":
        notes.append(f"Building phase - {weeks_to_race} weeks until {race_name}. Consistency with 4-5 runs per week builds a strong foundation.")
    elif phase == "taper":
        notes.append(f"Taper time for {race_name}. Reduced volume feels weird but it's working. Trust the process.")
    elif phase == "race_week":
        notes.append(f"{race_name} week! Minimal running, maximum rest. Stay calm, trust your training.")
    elif phase == "base":
        notes.append(f"Base building phase - {weeks_to_race} weeks out from {race_name}. Focus on easy miles and building your aerobic engine.")

    if recovery_adjustment < 1.0:
        notes.append("Your health metrics show some fatigue - this week's plan has been adjusted to prioritize recovery.")

    if phase in ("build", "peak"):
        notes.append(
            "With 4-5 running days, every run has purpose: long run for endurance, "
            "tempo for race fitness, easy runs for recovery."
        )

    notes.append("Rest days aren't lazy - they're when your body adapts and gets stronger. Use them wisely.")
    return notes


def generate_recovery_recommendations(analysis: AnalysisResults, recovery_adjustment: float) -> List[str]:
    recs = []

    if analysis.sleep.get("available") and analysis.sleep.get("status") == "concern":
        recs.append(
            f"Sleep is critical: You're averaging {analysis.sleep['avg_hours']} hours. "
            f"Aim for 7-8 hours to support recovery."
        )
    if analysis.resting_hr.get("available") and analysis.resting_hr.get("status") == "concern":
        recs.append("Elevated resting heart rate detected. Consider extra rest days if fatigue persists.")
    if analysis.body_battery.get("available") and analysis.body_battery.get("status") == "concern":
        recs.append("Body Battery is low. Prioritize sleep and reduce stress where possible.")

    if analysis.rpe.get("available"):
        if analysis.rpe.get("trend") == "rising":
            recs.append("RPE trending up - workouts are feeling harder. Consider swapping a hard session for an easy one.")
        if analysis.rpe.get("fatigue_indicators", 0) >= 2:
            recs.append("High effort with low training effect detected - your body may be under-recovered.")

    if recovery_adjustment < FATIGUE_FOCUS_THRESHOLD:
        recs.append("Multiple fatigue indicators present - consider a recovery week with reduced intensity.")

    return recs


def _focus(phase: str, goal_type: str, weeks_to_race: Optional[int], recovery_adjustment: float) -> str:
    goal_name = GOAL_NAMES.get(goal_type)

    if recovery_adjustment < FATIGUE_FOCUS_THRESHOLD:
        return "Recovery focus - reduced volume due to fatigue indicators"
    if phase == "base":
        return "Building aerobic foundation with easy miles"
    if phase == "build":
        return "Increasing volume and introducing quality workouts"
    if phase == "peak":
        return f"Peak training - highest volume week, {weeks_to_race} weeks to {goal_name or 'race'}"
    if phase == "taper":
        return f"Tapering - maintaining fitness while recovering for {goal_name or 'race'}"
    if phase == "race_week":
        return f"{goal_name or 'Race'} week - stay fresh and execute your race plan!"
    return goal_name or "General training"


def total_distance(daily_plan: List[DayPlan]) -> int:
    return round_half_up(sum(day.distance_miles or 0 for day in daily_plan))


def generate_training_plan(
    config: TrainingConfig,
    analysis: AnalysisResults,
    today: Optional[date] = None,
    distance_unit: str = "mi"
) -> TrainingPlan:
    """Generate the week's training plan.

    Args:
        config: The user's goal and volume settings
        analysis: Recovery analysis of the recent data window
        today: Reference date (defaults to today)
        distance_unit: "mi" or "km" for paces and distances in descriptions

    Returns:
        TrainingPlan with summary, daily schedule and guidance
    """
    today = today or date.today()
    weeks_to_race = calculate_weeks_until_race(config.goal_date, today)
    phase = determine_phase(config, today)

    base_miles = round_half_up(
        config.current_weekly_mileage
        * Config.get_phase_multiplier(phase)
        * Config.get_intensity_multiplier(config.intensity_preference or "normal")
    )

    concerns = get_recovery_concerns(analysis)
    recovery_adjustment = Config.get_recovery_adjustment(len(concerns))
    weekly_miles = base_miles
    if recovery_adjustment < 1.0:
        weekly_miles = round_half_up(base_miles * recovery_adjustment)
        logger.info(
            f"Recovery adjustment {recovery_adjustment} for {config.user_id} "
            f"({', '.join(concerns)}): {base_miles} -> {weekly_miles} miles"
        )

    long_run_miles = calculate_long_run(weekly_miles, phase, config.goal_type)

    builder = PlanBuilder(
        weekly_miles=weekly_miles,
        long_run_miles=long_run_miles,
        long_run_day=config.preferred_long_run_day,
        phase=phase,
        target_pace=get_target_pace(config),
        goal_type=config.goal_type,
        race_distance=get_race_distance(config),
        unit=distance_unit,
    )
    daily_plan = builder.build()

    return TrainingPlan(
        week_summary={
            "total_miles": total_distance(daily_plan),
            "target_miles": weekly_miles,
            "base_miles": base_miles,
            "training_phase": phase,
            "goal_type": config.goal_type,
            "focus": _focus(phase, config.goal_type, weeks_to_race, recovery_adjustment),
            "recovery_adjustment": recovery_adjustment,
            "week_start": week_start(today).isoformat(),
        },
        daily_plan=daily_plan,
        coaching_notes=generate_coaching_notes(phase, weeks_to_race, config.goal_type, recovery_adjustment),
        recovery_recommendations=generate_recovery_recommendations(analysis, recovery_adjustment),
        concerns=concerns,
        paces=builder.paces,
    )


def generate_plan_projection(config: TrainingConfig, today: Optional[date] = None) -> List[WeekProjection]:
    """Project phase and mileage for every week from now until race day."""
    if config.goal_date is None:
        return []

    current_week = week_start(today or date.today())
    total_weeks = math.ceil((config.goal_date - current_week).days / 7)
    if total_weeks <= 0:
        return []

    intensity = Config.get_intensity_multiplier(config.intensity_preference or "normal")
    projections = []

    for i in range(total_weeks):
        weeks_until_race = total_weeks - i - 1
        phase = get_training_phase(weeks_until_race)
        mileage = round_half_up(config.current_weekly_mileage * Config.get_phase_multiplier(phase) * intensity)

        # Race week has no long run
        long_run = 0 if phase == "race_week" else calculate_long_run(mileage, phase, config.goal_type)

        projections.append(WeekProjection(
            week_number=i + 1,
            week_start_date=current_week + timedelta(weeks=i),
            weeks_until_race=weeks_until_race,
            phase=phase,
            projected_mileage=mileage,
            long_run_miles=long_run,
            is_current_week=i == 0,
        ))

    return projections
