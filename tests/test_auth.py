"""Tests for token storage and refresh."""

import time

import pytest
from requests.exceptions import ConnectionError

from runplan.auth import AuthManager, TokenError
from runplan.db import AuthToken, Database


class FakeOAuth:
    """Returns a canned refresh response or raises."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.refreshed_with = []

    def refresh_access_token(self, refresh_token):
        self.refreshed_with.append(refresh_token)
        if self.error:
            raise self.error
        return self.response


class TestAuthManager:

    def setup_method(self):
        self.db = Database("sqlite://")
        self.db.create_tables()

    def teardown_method(self):
        self.db.drop_tables()
        self.db.close()

    def token(self, expires_in: int, access_token: str = "access-1") -> dict:
        return {
            "access_token": access_token,
            "refresh_token": "refresh-1",
            "expires_at": int(time.time()) + expires_in,
        }

    def test_unknown_platform(self):
        with pytest.raises(TokenError):
            AuthManager(self.db, "runner", "polar")

    def test_no_token(self):
        manager = AuthManager(self.db, "runner", "strava", oauth=FakeOAuth())

        assert manager.get_valid_token() is None
        assert not manager.is_connected()

    def test_fresh_token_is_returned(self):
        oauth = FakeOAuth()
        manager = AuthManager(self.db, "runner", "strava", oauth=oauth)
        manager.save_token(self.token(3600))

        assert manager.get_valid_token() == "access-1"
        assert oauth.refreshed_with == []

    def test_strava_refreshes_inside_five_minutes(self):
        oauth = FakeOAuth(response=self.token(21600, access_token="access-2"))
        manager = AuthManager(self.db, "runner", "strava", oauth=oauth)
        manager.save_token(self.token(120))

        assert manager.get_valid_token() == "access-2"
        assert oauth.refreshed_with == ["refresh-1"]
        # Refreshed token is stored
        assert manager.get_valid_token() == "access-2"
        assert len(oauth.refreshed_with) == 1

    def test_garmin_refreshes_inside_an_hour(self):
        oauth = FakeOAuth(response=self.token(86400, access_token="garmin-2"))
        manager = AuthManager(self.db, "runner", "garmin", oauth=oauth)
        manager.save_token(self.token(1800))

        assert manager.get_valid_token() == "garmin-2"

    @pytest.mark.parametrize("error", [TokenError("denied"), ConnectionError("offline")])
    def test_failed_refresh(self, error):
        manager = AuthManager(self.db, "runner", "strava", oauth=FakeOAuth(error=error))
        manager.save_token(self.token(-10))

        assert manager.get_valid_token() is None
        # The stored token is left in place
        assert manager.is_connected()

    def test_save_token_upserts(self):
        manager = AuthManager(self.db, "runner", "strava", oauth=FakeOAuth())
        manager.save_token({**self.token(3600), "athlete": {"id": 42}})
        manager.save_token(self.token(3600, access_token="access-2"))

        with self.db.get_session() as session:
            records = session.query(AuthToken).filter_by(user_id="runner").all()
            assert len(records) == 1
            assert records[0].access_token == "access-2"
            assert records[0].athlete_id == "42"

    def test_platforms_are_separate(self):
        strava = AuthManager(self.db, "runner", "strava", oauth=FakeOAuth())
        garmin = AuthManager(self.db, "runner", "garmin", oauth=FakeOAuth())
        strava.save_token(self.token(3600))

        assert strava.is_connected()
        assert not garmin.is_connected()

    def test_disconnect(self):
        manager = AuthManager(self.db, "runner", "strava", oauth=FakeOAuth())
        manager.save_token(self.token(3600))

        manager.disconnect()

        assert not manager.is_connected()
        assert manager.get_valid_token() is None
