"""Strava API client and adapter.

Strava only exposes activities, so heart rate and daily summaries are
derived from them and sleep is always empty.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

import numpy as np
import requests
from requests.exceptions import RequestException

from ..config import config
from .base import PlatformAdapter, PlatformError, parse_datetime
from .models import (
    Activity,
    DailySummary,
    HeartRateRecord,
    PlatformData,
    SleepRecord,
    format_pace,
    meters_to_miles,
    normalize_activity_type,
)

logger = logging.getLogger(__name__)


class StravaError(PlatformError):
    """Strava specific errors."""
    pass


class StravaClient:
    """Client for interacting with Strava API."""

    PAGE_SIZE = 100

    def __init__(self, access_token: str, session: Optional[requests.Session] = None):
        self.base_url = config.STRAVA_API_BASE_URL
        self.access_token = access_token
        self.session = session or requests.Session()

    def _get_headers(self) -> Dict[str, str]:
        """Get authorization headers."""
        if not self.access_token:
            raise StravaError("No valid authentication token available")
        return {"Authorization": f"Bearer {self.access_token}"}

    def get_activities(
        self,
        after: Optional[datetime] = None,
        before: Optional[datetime] = None,
        page: int = 1,
        per_page: int = PAGE_SIZE
    ) -> List[Dict[str, Any]]:
        """Get athlete activities."""
        params = {
            "page": page,
            "per_page": per_page
        }

        if after:
            params["after"] = int(after.timestamp())
        if before:
            params["before"] = int(before.timestamp())

        response = self.session.get(
            f"{self.base_url}/athlete/activities",
            headers=self._get_headers(),
            params=params,
            timeout=config.REQUEST_TIMEOUT,
        )
        if response.status_code == 429:
            raise StravaError("Strava API rate limit exceeded")
        response.raise_for_status()
        return response.json()

    def fetch_activities_for_days(self, days: int) -> List[Dict[str, Any]]:
        """Fetch every activity from the last ``days`` days, following pagination."""
        after_date = datetime.now() - timedelta(days=days)
        activities = []
        page = 1

        while True:
            batch = self.get_activities(after=after_date, page=page)
            if not batch:
                break
            activities.extend(batch)
            if len(batch) < self.PAGE_SIZE:
                break
            page += 1

        logger.info(f"Fetched {len(activities)} Strava activities from the last {days} days")
        return activities


def normalize_strava_activity(raw: Dict[str, Any]) -> Activity:
    """Convert a Strava activity payload to an Activity."""
    distance_miles = meters_to_miles(raw.get("distance") or 0)
    duration_minutes = (raw.get("moving_time") or 0) / 60

    elevation = raw.get("total_elevation_gain")
    kilojoules = raw.get("kilojoules")
    cadence = raw.get("average_cadence")

    return Activity(
        id=str(raw["id"]),
        date=parse_datetime(raw.get("start_date_local") or raw.get("start_date")),
        type=normalize_activity_type(raw.get("type")),
        name=raw.get("name") or "Activity",
        distance_miles=round(distance_miles, 2),
        duration_minutes=round(duration_minutes, 1),
        avg_pace_per_mile=format_pace(duration_minutes, distance_miles),
        avg_hr=raw.get("average_heartrate"),
        max_hr=raw.get("max_heartrate"),
        elevation_gain_ft=round(elevation * 3.28084) if elevation else None,
        calories=round(kilojoules * 0.239006) if kilojoules else None,
        # Strava reports running cadence per leg
        avg_cadence=round(cadence * 2) if cadence else None,
    )


def heart_rate_from_activities(activities: List[Activity]) -> List[HeartRateRecord]:
    """Estimate daily heart rate from activity averages.

    The lowest activity average of a day stands in for resting heart rate.
    """
    by_date: Dict[date, Dict[str, List[float]]] = {}
    for activity in activities:
        if not activity.avg_hr and not activity.max_hr:
            continue
        day = by_date.setdefault(activity.date.date(), {"avg": [], "max": []})
        if activity.avg_hr:
            day["avg"].append(activity.avg_hr)
        if activity.max_hr:
            day["max"].append(activity.max_hr)

    records = []
    for day, values in sorted(by_date.items()):
        if not values["avg"]:
            continue
        records.append(HeartRateRecord(
            date=day,
            resting_hr=min(values["avg"]),
            max_hr=max(values["max"]) if values["max"] else None,
            avg_hr=round(float(np.mean(values["avg"]))),
        ))
    return records


def daily_summaries_from_activities(
    activities: List[Activity],
    days: int,
    today: Optional[date] = None
) -> List[DailySummary]:
    """One summary per day in the window, aggregated from activities."""
    today = today or date.today()
    summaries = {}
    for offset in range(days):
        day = today - timedelta(days=offset)
        summaries[day] = DailySummary(
            date=day,
            steps=0,
            total_distance_miles=0.0,
            active_calories=0.0,
            active_minutes=0.0,
        )

    for activity in activities:
        summary = summaries.get(activity.date.date())
        if summary is None:
            continue
        summary.total_distance_miles += activity.distance_miles
        summary.active_calories += activity.calories or 0
        summary.active_minutes += activity.duration_minutes

    return list(summaries.values())


class StravaAdapter(PlatformAdapter):
    """Fetch normalized data from Strava."""

    name = "strava"

    def __init__(self, access_token: str, client: Optional[StravaClient] = None):
        self.client = client or StravaClient(access_token)

    def get_activities(self, days: int) -> List[Activity]:
        try:
            raw_activities = self.client.fetch_activities_for_days(days)
        except RequestException as e:
            raise StravaError(f"Error fetching Strava activities: {e}") from e
        return [normalize_strava_activity(raw) for raw in raw_activities]

    def get_sleep_data(self, days: int) -> List[SleepRecord]:
        return []

    def get_heart_rate_data(self, days: int) -> List[HeartRateRecord]:
        return heart_rate_from_activities(self.get_activities(days))

    def get_daily_summary(self, days: int) -> List[DailySummary]:
        return daily_summaries_from_activities(self.get_activities(days), days)

    def get_all_data(self, days: int) -> PlatformData:
        activities = self.get_activities(days)
        return PlatformData(
            activities=activities,
            sleep=[],
            heart_rate=heart_rate_from_activities(activities),
            daily_summaries=daily_summaries_from_activities(activities, days),
        )
