"""Configuration management for the runplan tool."""

import os
from typing import Dict
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application configuration."""

    # Strava API
    STRAVA_CLIENT_ID: str = os.getenv("STRAVA_CLIENT_ID", "")
    STRAVA_CLIENT_SECRET: str = os.getenv("STRAVA_CLIENT_SECRET", "")
    STRAVA_API_BASE_URL: str = "https://www.strava.com/api/v3"
    STRAVA_TOKEN_URL: str = "https://www.strava.com/oauth/token"

    # Garmin Health API (OAuth 2.0)
    GARMIN_CLIENT_ID: str = os.getenv("GARMIN_CLIENT_ID", "")
    GARMIN_CLIENT_SECRET: str = os.getenv("GARMIN_CLIENT_SECRET", "")
    GARMIN_TOKEN_URL: str = os.getenv(
        "GARMIN_TOKEN_URL", "https://connectapi.garmin.com/oauth-service/oauth/token"
    )
    GARMIN_API_BASE_URL: str = os.getenv(
        "GARMIN_API_BASE_URL", "https://apis.garmin.com/wellness-api/rest"
    )

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./runplan.db")

    # Application
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "30"))  # seconds

    # Data windows and caching
    CACHE_VALIDITY_DAYS: int = int(os.getenv("CACHE_VALIDITY_DAYS", "7"))
    ANALYSIS_WINDOW_DAYS: int = int(os.getenv("ANALYSIS_WINDOW_DAYS", "28"))
    BASELINE_WINDOW_DAYS: int = int(os.getenv("BASELINE_WINDOW_DAYS", "30"))

    # Apply adaptive rule changes to generated plans (insights are always attached)
    APPLY_ADAPTATIONS: bool = os.getenv("APPLY_ADAPTATIONS", "false").lower() == "true"

    # Token refresh margins (seconds before expiry)
    STRAVA_REFRESH_MARGIN: int = 5 * 60
    GARMIN_REFRESH_MARGIN: int = 60 * 60

    # Weekly volume by training phase
    PHASE_MULTIPLIERS: Dict[str, float] = {
        "base": float(os.getenv("PHASE_MULTIPLIER_BASE", "0.85")),
        "build": float(os.getenv("PHASE_MULTIPLIER_BUILD", "1.0")),
        "peak": float(os.getenv("PHASE_MULTIPLIER_PEAK", "1.1")),
        "taper": float(os.getenv("PHASE_MULTIPLIER_TAPER", "0.6")),
        "race_week": float(os.getenv("PHASE_MULTIPLIER_RACE_WEEK", "0.3")),
    }

    # Weekly volume by user intensity preference
    INTENSITY_MULTIPLIERS: Dict[str, float] = {
        "conservative": float(os.getenv("INTENSITY_MULTIPLIER_CONSERVATIVE", "0.85")),
        "normal": float(os.getenv("INTENSITY_MULTIPLIER_NORMAL", "1.0")),
        "aggressive": float(os.getenv("INTENSITY_MULTIPLIER_AGGRESSIVE", "1.15")),
    }

    # Long run share of weekly mileage by phase
    LONG_RUN_PCT: Dict[str, float] = {
        "base": 0.28,
        "build": 0.30,
        "peak": 0.32,
        "taper": 0.25,
        "race_week": 0.15,
    }
    DEFAULT_LONG_RUN_PCT: float = 0.28

    # Long run caps in miles by goal
    MAX_LONG_RUN: Dict[str, float] = {
        "5k": 10,
        "10k": 12,
        "half_marathon": 16,
        "marathon": 22,
        "ultra": 26,
    }
    DEFAULT_MAX_LONG_RUN: float = 20
    MIN_LONG_RUN: float = 4

    # Race distances in miles
    RACE_DISTANCES: Dict[str, float] = {
        "5k": 3.1,
        "10k": 6.2,
        "half_marathon": 13.1,
        "marathon": 26.2,
        "ultra": 50.0,
    }
    DEFAULT_RACE_DISTANCE: float = 26.2

    # Recovery adjustment by number of concerns (4+ uses the last entry)
    RECOVERY_ADJUSTMENTS: Dict[int, float] = {
        0: 1.0,
        1: 0.90,
        2: 0.85,
        3: 0.80,
        4: 0.75,
    }

    # Baseline update guard rails
    BASELINE_MAX_INCREASE: float = 1.10
    BASELINE_MAX_DECREASE: float = 0.75
    BASELINE_MIN_MILES: int = 5

    @classmethod
    def get_phase_multiplier(cls, phase: str) -> float:
        """Get the weekly volume multiplier for a training phase."""
        return cls.PHASE_MULTIPLIERS.get(phase, 1.0)

    @classmethod
    def get_intensity_multiplier(cls, intensity: str) -> float:
        """Get the weekly volume multiplier for an intensity preference."""
        return cls.INTENSITY_MULTIPLIERS.get(intensity, 1.0)

    @classmethod
    def get_long_run_pct(cls, phase: str) -> float:
        return cls.LONG_RUN_PCT.get(phase, cls.DEFAULT_LONG_RUN_PCT)

    @classmethod
    def get_long_run_cap(cls, goal_type: str) -> float:
        return cls.MAX_LONG_RUN.get(goal_type, cls.DEFAULT_MAX_LONG_RUN)

    @classmethod
    def get_race_distance(cls, goal_type: str) -> float:
        return cls.RACE_DISTANCES.get(goal_type, cls.DEFAULT_RACE_DISTANCE)

    @classmethod
    def get_recovery_adjustment(cls, concerns: int) -> float:
        """Get the recovery derate for a number of recovery concerns."""
        return cls.RECOVERY_ADJUSTMENTS[min(concerns, max(cls.RECOVERY_ADJUSTMENTS))]


config = Config()
