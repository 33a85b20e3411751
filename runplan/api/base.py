"""Shared adapter interface for fitness platforms."""

from datetime import date, datetime
from typing import List, Optional

from .models import Activity, DailySummary, HeartRateRecord, PlatformData, SleepRecord


class PlatformError(Exception):
    """Errors raised while talking to a fitness platform."""
    pass


class PlatformAdapter:
    """Fetch normalized data from one platform.

    Subclasses implement the per-series fetchers; ``get_all_data`` combines
    them for an analysis window.
    """

    name: str = ""

    def get_activities(self, days: int) -> List[Activity]:
        raise NotImplementedError

    def get_sleep_data(self, days: int) -> List[SleepRecord]:
        raise NotImplementedError

    def get_heart_rate_data(self, days: int) -> List[HeartRateRecord]:
        raise NotImplementedError

    def get_daily_summary(self, days: int) -> List[DailySummary]:
        raise NotImplementedError

    def get_all_data(self, days: int) -> PlatformData:
        return PlatformData(
            activities=self.get_activities(days),
            sleep=self.get_sleep_data(days),
            heart_rate=self.get_heart_rate_data(days),
            daily_summaries=self.get_daily_summary(days),
        )


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp, keeping the wall-clock time as given."""
    if not value:
        return None
    value = value.strip().replace(" ", "T")
    if value.endswith("Z"):
        value = value[:-1]
    return datetime.fromisoformat(value).replace(tzinfo=None)


def parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(value[:10])
