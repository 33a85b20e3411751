"""Platform-agnostic activity and health data.

Both the Garmin and Strava adapters produce these shapes, so the analysis
code never has to know which platform a record came from.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

ACTIVITY_TYPES = ("run", "bike", "swim", "walk", "hike", "other")

_ACTIVITY_TYPE_MAP = {
    # Garmin types
    "running": "run",
    "trail_running": "run",
    "treadmill_running": "run",
    "track_running": "run",
    "cycling": "bike",
    "road_biking": "bike",
    "mountain_biking": "bike",
    "indoor_cycling": "bike",
    "swimming": "swim",
    "lap_swimming": "swim",
    "open_water_swimming": "swim",
    "walking": "walk",
    "hiking": "hike",
    # Strava types
    "Run": "run",
    "TrailRun": "run",
    "VirtualRun": "run",
    "Ride": "bike",
    "VirtualRide": "bike",
    "MountainBikeRide": "bike",
    "GravelRide": "bike",
    "Swim": "swim",
    "Walk": "walk",
    "Hike": "hike",
}

METERS_PER_MILE = 1609.344


@dataclass
class Activity:
    """A single recorded workout."""
    id: str
    date: datetime
    type: str  # one of ACTIVITY_TYPES
    name: str
    distance_miles: float
    duration_minutes: float
    avg_pace_per_mile: Optional[str] = None  # "9:30"
    avg_hr: Optional[float] = None
    max_hr: Optional[float] = None
    elevation_gain_ft: Optional[int] = None
    calories: Optional[int] = None
    avg_cadence: Optional[int] = None
    perceived_exertion: Optional[float] = None  # 1-10
    aerobic_training_effect: Optional[float] = None  # 0-5


@dataclass
class SleepRecord:
    date: date
    total_sleep_hours: float
    deep_sleep_hours: float = 0.0
    light_sleep_hours: float = 0.0
    rem_sleep_hours: float = 0.0
    awake_hours: float = 0.0
    sleep_score: Optional[float] = None


@dataclass
class HeartRateRecord:
    date: date
    resting_hr: float
    max_hr: Optional[float] = None
    avg_hr: Optional[float] = None


@dataclass
class DailySummary:
    date: date
    steps: int = 0
    total_distance_miles: Optional[float] = None
    active_calories: Optional[float] = None
    total_calories: Optional[float] = None
    sedentary_minutes: Optional[int] = None
    active_minutes: Optional[float] = None
    vigorous_minutes: Optional[int] = None
    stress_level: Optional[float] = None  # Garmin only
    body_battery_high: Optional[float] = None  # Garmin only
    body_battery_low: Optional[float] = None
    body_battery_charged: Optional[float] = None
    body_battery_drained: Optional[float] = None


@dataclass
class VO2MaxReading:
    date: date
    vo2max: float
    fitness_level: Optional[str] = None


@dataclass
class PlatformData:
    """Everything fetched from one platform for an analysis window."""
    activities: List[Activity] = field(default_factory=list)
    sleep: List[SleepRecord] = field(default_factory=list)
    heart_rate: List[HeartRateRecord] = field(default_factory=list)
    daily_summaries: List[DailySummary] = field(default_factory=list)
    vo2max: List[VO2MaxReading] = field(default_factory=list)


def normalize_activity_type(raw_type: Optional[str]) -> str:
    """Map a Garmin or Strava activity type onto ACTIVITY_TYPES."""
    return _ACTIVITY_TYPE_MAP.get(raw_type or "", "other")


def meters_to_miles(meters: float) -> float:
    return meters / METERS_PER_MILE


def format_pace(total_minutes: float, distance_miles: float) -> str:
    """Format pace as M:SS per mile."""
    if distance_miles <= 0:
        return "--:--"
    return format_minutes(total_minutes / distance_miles)


def format_minutes(minutes: float) -> str:
    """Format fractional minutes as M:SS."""
    mins = int(minutes)
    secs = int((minutes - mins) * 60 + 0.5)
    if secs == 60:
        mins, secs = mins + 1, 0
    return f"{mins}:{secs:02d}"


def vo2max_fitness_level(vo2max: float) -> str:
    if vo2max >= 55:
        return "Excellent"
    elif vo2max >= 50:
        return "Very Good"
    elif vo2max >= 45:
        return "Good"
    elif vo2max >= 40:
        return "Fair"
    return "Needs Improvement"
