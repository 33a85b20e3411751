"""Garmin Health API client and adapter (OAuth 2.0 bearer tokens)."""

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

import requests
from requests.exceptions import RequestException

from ..config import config
from .base import PlatformAdapter, PlatformError, parse_date, parse_datetime
from .models import (
    Activity,
    DailySummary,
    HeartRateRecord,
    PlatformData,
    SleepRecord,
    VO2MaxReading,
    format_pace,
    meters_to_miles,
    normalize_activity_type,
    vo2max_fitness_level,
)

logger = logging.getLogger(__name__)


class GarminError(PlatformError):
    """Garmin specific errors."""
    pass


class GarminClient:
    """Client for the Garmin Health API."""

    def __init__(self, access_token: str, session: Optional[requests.Session] = None):
        self.base_url = config.GARMIN_API_BASE_URL
        self.access_token = access_token
        self.session = session or requests.Session()

    def _request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Make an authenticated GET request."""
        logger.debug(f"Garmin API request: {endpoint}")
        response = self.session.get(
            f"{self.base_url}{endpoint}",
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json",
            },
            params=params,
            timeout=config.REQUEST_TIMEOUT,
        )

        if not response.ok:
            logger.error(f"Garmin API request failed: {endpoint} {response.status_code} {response.text[:200]}")
            if response.status_code == 429:
                raise GarminError("Garmin API rate limit exceeded")
            raise GarminError(f"Garmin API error: {response.status_code}")

        return response.json()

    @staticmethod
    def _date_range(days: int) -> Dict[str, str]:
        end = date.today()
        start = end - timedelta(days=days)
        return {"startDate": start.isoformat(), "endDate": end.isoformat()}

    def _daily_series(self, endpoint: str, days: int) -> List[Tuple[str, Dict[str, Any]]]:
        """Fetch a per-day series as (calendar date, payload) pairs."""
        response = self._request(endpoint, self._date_range(days))
        if not isinstance(response, list):
            return []
        return [(item.get("calendarDate") or item.get("date"), item) for item in response]

    def get_activities(self, days: int) -> List[Dict[str, Any]]:
        params = self._date_range(days)
        params["activityType"] = "running"
        response = self._request("/activities", params)
        return response or []

    def get_sleep_data(self, days: int) -> List[Tuple[str, Dict[str, Any]]]:
        return self._daily_series("/sleep", days)

    def get_daily_summaries(self, days: int) -> List[Tuple[str, Dict[str, Any]]]:
        return self._daily_series("/dailies", days)

    def get_heart_rate_data(self, days: int) -> List[Tuple[str, Dict[str, Any]]]:
        return self._daily_series("/heartRates", days)

    def get_vo2max(self) -> Optional[Dict[str, Any]]:
        return self._request("/vo2Max")


def normalize_garmin_activity(raw: Dict[str, Any]) -> Activity:
    """Convert a Garmin activity payload to an Activity."""
    distance_miles = meters_to_miles(raw.get("distance") or 0)
    duration_minutes = (raw.get("duration") or 0) / 60
    elevation = raw.get("elevationGain")

    # Garmin records RPE on a 10-100 scale
    rpe = raw.get("perceivedExertion")
    if rpe is not None and rpe > 10:
        rpe = rpe / 10

    return Activity(
        id=str(raw["activityId"]),
        date=parse_datetime(raw.get("startTimeLocal")),
        type=normalize_activity_type((raw.get("activityType") or {}).get("typeKey")),
        name=raw.get("activityName") or "Activity",
        distance_miles=round(distance_miles, 2),
        duration_minutes=round(duration_minutes, 1),
        avg_pace_per_mile=format_pace(duration_minutes, distance_miles),
        avg_hr=raw.get("averageHR"),
        max_hr=raw.get("maxHR"),
        elevation_gain_ft=round(elevation * 3.28084) if elevation else None,
        calories=raw.get("calories"),
        avg_cadence=raw.get("averageRunningCadenceInStepsPerMinute"),
        perceived_exertion=rpe,
        aerobic_training_effect=raw.get("aerobicTrainingEffect"),
    )


def normalize_garmin_sleep(day: str, raw: Dict[str, Any]) -> Optional[SleepRecord]:
    dto = raw.get("dailySleepDTO") or {}
    if not dto.get("sleepTimeSeconds"):
        return None

    return SleepRecord(
        date=parse_date(day),
        total_sleep_hours=dto["sleepTimeSeconds"] / 3600,
        deep_sleep_hours=(dto.get("deepSleepSeconds") or 0) / 3600,
        light_sleep_hours=(dto.get("lightSleepSeconds") or 0) / 3600,
        rem_sleep_hours=(dto.get("remSleepSeconds") or 0) / 3600,
        awake_hours=(dto.get("awakeSleepSeconds") or 0) / 3600,
        sleep_score=(dto.get("sleepScores") or {}).get("totalScore"),
    )


def normalize_garmin_heart_rate(day: str, raw: Dict[str, Any]) -> Optional[HeartRateRecord]:
    if not raw.get("restingHeartRate"):
        return None
    return HeartRateRecord(
        date=parse_date(day),
        resting_hr=raw["restingHeartRate"],
        max_hr=raw.get("maxHeartRate"),
    )


def normalize_garmin_daily_summary(day: str, raw: Dict[str, Any]) -> DailySummary:
    distance = raw.get("totalDistanceMeters")
    sedentary = raw.get("sedentarySeconds")
    active = raw.get("activeSeconds")

    return DailySummary(
        date=parse_date(day),
        steps=raw.get("totalSteps") or 0,
        total_distance_miles=meters_to_miles(distance) if distance else None,
        active_calories=raw.get("activeKilocalories"),
        total_calories=raw.get("totalKilocalories"),
        sedentary_minutes=round(sedentary / 60) if sedentary else None,
        active_minutes=round(active / 60) if active else None,
        vigorous_minutes=raw.get("vigorousIntensityMinutes"),
        stress_level=raw.get("averageStressLevel"),
        body_battery_high=raw.get("bodyBatteryHighestValue"),
        body_battery_low=raw.get("bodyBatteryLowestValue"),
        body_battery_charged=raw.get("bodyBatteryChargedValue"),
        body_battery_drained=raw.get("bodyBatteryDrainedValue"),
    )


def normalize_garmin_vo2max(day: date, raw: Dict[str, Any]) -> Optional[VO2MaxReading]:
    vo2 = (
        (raw.get("generic") or {}).get("vo2MaxValue")
        or (raw.get("running") or {}).get("vo2MaxValue")
        or (raw.get("cycling") or {}).get("vo2MaxValue")
        or raw.get("vo2MaxValue")
        or raw.get("vo2Max")
    )
    if not vo2:
        return None
    return VO2MaxReading(date=day, vo2max=vo2, fitness_level=vo2max_fitness_level(vo2))


class GarminAdapter(PlatformAdapter):
    """Fetch normalized data from Garmin.

    Activities are required: a failed activity fetch raises ``GarminError``.
    The health series are optional; a failing endpoint is logged and
    contributes an empty list instead of failing the whole window.
    """

    name = "garmin"

    def __init__(self, access_token: str, client: Optional[GarminClient] = None):
        self.client = client or GarminClient(access_token)

    def _safe_fetch(self, label: str, fetch, *args):
        try:
            return fetch(*args)
        except (RequestException, GarminError, ValueError) as e:
            logger.error(f"Failed to fetch Garmin {label}: {e}")
            return None

    def get_activities(self, days: int) -> List[Activity]:
        try:
            raw = self.client.get_activities(days) or []
        except (RequestException, ValueError) as e:
            raise GarminError(f"Failed to fetch Garmin activities: {e}") from e
        return [normalize_garmin_activity(item) for item in raw]

    def get_sleep_data(self, days: int) -> List[SleepRecord]:
        raw = self._safe_fetch("sleep data", self.client.get_sleep_data, days) or []
        records = (normalize_garmin_sleep(day, item) for day, item in raw)
        return [record for record in records if record is not None]

    def get_heart_rate_data(self, days: int) -> List[HeartRateRecord]:
        raw = self._safe_fetch("heart rate data", self.client.get_heart_rate_data, days) or []
        records = (normalize_garmin_heart_rate(day, item) for day, item in raw)
        return [record for record in records if record is not None]

    def get_daily_summary(self, days: int) -> List[DailySummary]:
        raw = self._safe_fetch("daily summaries", self.client.get_daily_summaries, days) or []
        return [normalize_garmin_daily_summary(day, item) for day, item in raw]

    def get_vo2max(self) -> List[VO2MaxReading]:
        raw = self._safe_fetch("VO2 max", self.client.get_vo2max)
        if not raw:
            return []
        reading = normalize_garmin_vo2max(date.today(), raw)
        return [reading] if reading else []

    def get_all_data(self, days: int) -> PlatformData:
        data = super().get_all_data(days)
        data.vo2max = self.get_vo2max()
        return data
