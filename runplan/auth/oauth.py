"""Token storage and refresh for Strava and Garmin.

Only the refresh half of OAuth lives here; tokens are obtained elsewhere
and stored with ``AuthManager.save_token``.
"""

import logging
import time
from typing import Any, Dict, Optional

import requests
from requests.auth import HTTPBasicAuth
from requests.exceptions import RequestException
from requests_oauthlib import OAuth2Session
from oauthlib.oauth2 import OAuth2Error

from ..config import config
from ..db.database import Database
from ..db.models import AuthToken

logger = logging.getLogger(__name__)


class TokenError(Exception):
    """Token refresh or storage errors."""
    pass


class StravaOAuth:
    """Refresh Strava access tokens."""

    def __init__(self):
        self.client_id = config.STRAVA_CLIENT_ID
        self.client_secret = config.STRAVA_CLIENT_SECRET
        self.token_url = config.STRAVA_TOKEN_URL

    def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """Refresh an expired access token."""
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        response = requests.post(self.token_url, data=data, timeout=config.REQUEST_TIMEOUT)
        if not response.ok:
            raise TokenError(f"Strava token refresh failed: {response.status_code}")
        return response.json()


class GarminOAuth:
    """Refresh Garmin OAuth 2.0 access tokens."""

    def __init__(self):
        self.client_id = config.GARMIN_CLIENT_ID
        self.client_secret = config.GARMIN_CLIENT_SECRET
        self.token_url = config.GARMIN_TOKEN_URL

    def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """Refresh an expired access token.

        Garmin returns ``expires_in`` rather than an absolute timestamp, so
        ``expires_at`` is filled in from it.
        """
        session = OAuth2Session(client_id=self.client_id)
        try:
            token = session.refresh_token(
                self.token_url,
                refresh_token=refresh_token,
                auth=HTTPBasicAuth(self.client_id, self.client_secret),
                timeout=config.REQUEST_TIMEOUT,
            )
        except OAuth2Error as e:
            raise TokenError(f"Garmin token refresh failed: {e}") from e

        token = dict(token)
        if "expires_at" not in token:
            token["expires_at"] = int(time.time()) + int(token.get("expires_in", 0))
        token.setdefault("refresh_token", refresh_token)
        return token


_OAUTH_CLIENTS = {
    "strava": StravaOAuth,
    "garmin": GarminOAuth,
}

_REFRESH_MARGINS = {
    "strava": config.STRAVA_REFRESH_MARGIN,
    "garmin": config.GARMIN_REFRESH_MARGIN,
}


class AuthManager:
    """Manage stored tokens for one user on one platform."""

    def __init__(self, db: Database, user_id: str = "default", platform: str = "strava", oauth=None):
        if platform not in _OAUTH_CLIENTS:
            raise TokenError(f"Unknown platform: {platform}")
        self.db = db
        self.user_id = user_id
        self.platform = platform
        self.oauth = oauth or _OAUTH_CLIENTS[platform]()

    def _query(self, session):
        return session.query(AuthToken).filter_by(user_id=self.user_id, platform=self.platform)

    def get_valid_token(self) -> Optional[str]:
        """Get a valid access token, refreshing if necessary."""
        with self.db.get_session() as session:
            token_record = self._query(session).filter_by(status="active").first()
            if not token_record:
                return None

            if not token_record.expires_within(_REFRESH_MARGINS[self.platform]):
                return token_record.access_token

            refresh_token = token_record.refresh_token

        logger.info(f"Refreshing {self.platform} token for user {self.user_id}")
        try:
            new_token_data = self.oauth.refresh_access_token(refresh_token)
        except (TokenError, RequestException) as e:
            logger.error(f"Failed to refresh {self.platform} token for user {self.user_id}: {e}")
            return None

        self.save_token(new_token_data)
        return new_token_data["access_token"]

    def save_token(self, token_data: Dict[str, Any]) -> None:
        """Save token data to database."""
        with self.db.get_session() as session:
            token_record = self._query(session).first()

            if not token_record:
                token_record = AuthToken(user_id=self.user_id, platform=self.platform)
                session.add(token_record)

            token_record.access_token = token_data["access_token"]
            token_record.refresh_token = token_data["refresh_token"]
            token_record.expires_at = int(token_data["expires_at"])
            token_record.status = "active"

            athlete = token_data.get("athlete")
            if athlete:
                token_record.athlete_id = str(athlete.get("id", ""))

    def is_connected(self) -> bool:
        """Check whether an active token is stored."""
        with self.db.get_session() as session:
            return self._query(session).filter_by(status="active").first() is not None

    def disconnect(self) -> None:
        """Remove stored tokens."""
        with self.db.get_session() as session:
            token_record = self._query(session).first()
            if token_record:
                session.delete(token_record)
                logger.info(f"Disconnected {self.platform} for user {self.user_id}")
