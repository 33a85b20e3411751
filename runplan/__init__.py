"""Weekly running plans from Garmin and Strava training data."""

__version__ = "0.1.0"
