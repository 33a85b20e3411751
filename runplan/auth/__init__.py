"""Authentication module for Strava and Garmin tokens."""

from .oauth import AuthManager, GarminOAuth, StravaOAuth, TokenError

__all__ = ["AuthManager", "GarminOAuth", "StravaOAuth", "TokenError"]
