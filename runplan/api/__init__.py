"""Platform adapters producing normalized training data."""

from .base import PlatformAdapter, PlatformError
from .garmin import GarminAdapter, GarminClient, GarminError
from .models import Activity, PlatformData
from .strava import StravaAdapter, StravaClient, StravaError

PLATFORMS = ("garmin", "strava")


def get_adapter(platform: str, access_token: str) -> PlatformAdapter:
    """Build the adapter for a platform name."""
    if platform == "garmin":
        return GarminAdapter(access_token)
    if platform == "strava":
        return StravaAdapter(access_token)
    raise PlatformError(f"Unknown platform: {platform}")


__all__ = [
    "Activity",
    "GarminAdapter",
    "GarminClient",
    "GarminError",
    "PLATFORMS",
    "PlatformAdapter",
    "PlatformData",
    "PlatformError",
    "StravaAdapter",
    "StravaClient",
    "StravaError",
    "get_adapter",
]
