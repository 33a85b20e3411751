"""Tests for Garmin and Strava normalization and adapters."""

from datetime import date, datetime, timedelta

import pytest
from requests.exceptions import ConnectionError

from runplan.api import GarminAdapter, PlatformError, StravaAdapter, get_adapter
from runplan.api.base import parse_date, parse_datetime
from runplan.api.garmin import (
    GarminClient,
    GarminError,
    normalize_garmin_activity,
    normalize_garmin_daily_summary,
    normalize_garmin_sleep,
    normalize_garmin_vo2max,
)
from runplan.api.models import Activity, format_minutes, format_pace, normalize_activity_type
from runplan.api.strava import (
    StravaClient,
    StravaError,
    daily_summaries_from_activities,
    heart_rate_from_activities,
    normalize_strava_activity,
)

GARMIN_RUN = {
    "activityId": 101,
    "activityName": "Tempo Tuesday",
    "startTimeLocal": "2024-06-11 06:30:00",
    "activityType": {"typeKey": "running"},
    "distance": 8046.72,  # 5 miles
    "duration": 2700,
    "averageHR": 152,
    "maxHR": 171,
    "elevationGain": 30.48,
    "calories": 520,
    "averageRunningCadenceInStepsPerMinute": 172,
    "perceivedExertion": 70,
    "aerobicTrainingEffect": 3.1,
}

STRAVA_RUN = {
    "id": 9001,
    "name": "Lunch Run",
    "type": "Run",
    "start_date": "2024-06-11T16:00:00Z",
    "start_date_local": "2024-06-11T12:00:00Z",
    "distance": 16093.44,  # 10 miles
    "moving_time": 5400,
    "average_heartrate": 145.5,
    "max_heartrate": 168,
    "total_elevation_gain": 100,
    "kilojoules": 1000,
    "average_cadence": 85,
}


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code
        self.ok = status_code < 400
        self.text = str(payload)

    def json(self):
        return self.payload

    def raise_for_status(self):
        if not self.ok:
            raise ConnectionError(f"HTTP {self.status_code}")


class FakeSession:
    """Records requests and replays queued responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, headers=None, params=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "params": params, "timeout": timeout})
        return self.responses.pop(0)


class TestParsing:

    def test_parse_datetime_variants(self):
        assert parse_datetime("2024-06-11T12:00:00Z") == datetime(2024, 6, 11, 12, 0)
        assert parse_datetime("2024-06-11 06:30:00") == datetime(2024, 6, 11, 6, 30)
        assert parse_datetime("2024-06-11T06:30:00+02:00") == datetime(2024, 6, 11, 6, 30)
        assert parse_datetime(None) is None

    def test_parse_date(self):
        assert parse_date("2024-06-11T06:30:00") == date(2024, 6, 11)
        assert parse_date("") is None

    @pytest.mark.parametrize("minutes,expected", [
        (9.0, "9:00"),
        (9.1603, "9:10"),
        (7.9999, "8:00"),
        (10.5, "10:30"),
    ])
    def test_format_minutes(self, minutes, expected):
        assert format_minutes(minutes) == expected

    def test_format_pace_without_distance(self):
        assert format_pace(30, 0) == "--:--"

    @pytest.mark.parametrize("raw,expected", [
        ("running", "run"),
        ("trail_running", "run"),
        ("Run", "run"),
        ("VirtualRide", "bike"),
        ("lap_swimming", "swim"),
        ("Walk", "walk"),
        ("yoga", "other"),
        (None, "other"),
    ])
    def test_activity_types(self, raw, expected):
        assert normalize_activity_type(raw) == expected


class TestGarminNormalization:

    def test_activity(self):
        activity = normalize_garmin_activity(GARMIN_RUN)

        assert activity.id == "101"
        assert activity.date == datetime(2024, 6, 11, 6, 30)
        assert activity.type == "run"
        assert activity.distance_miles == pytest.approx(5.0)
        assert activity.duration_minutes == 45
        assert activity.avg_pace_per_mile == "9:00"
        assert activity.elevation_gain_ft == 100
        assert activity.avg_cadence == 172
        assert activity.aerobic_training_effect == 3.1

    def test_rpe_scale(self):
        assert normalize_garmin_activity(GARMIN_RUN).perceived_exertion == 7
        assert normalize_garmin_activity({**GARMIN_RUN, "perceivedExertion": 6}).perceived_exertion == 6
        assert normalize_garmin_activity({**GARMIN_RUN, "perceivedExertion": None}).perceived_exertion is None

    def test_sleep(self):
        raw = {"dailySleepDTO": {
            "sleepTimeSeconds": 27000,
            "deepSleepSeconds": 5400,
            "remSleepSeconds": 3600,
            "sleepScores": {"totalScore": 81},
        }}
        record = normalize_garmin_sleep("2024-06-11", raw)

        assert record.date == date(2024, 6, 11)
        assert record.total_sleep_hours == 7.5
        assert record.deep_sleep_hours == 1.5
        assert record.light_sleep_hours == 0
        assert record.sleep_score == 81

    def test_sleep_without_duration(self):
        assert normalize_garmin_sleep("2024-06-11", {"dailySleepDTO": {}}) is None
        assert normalize_garmin_sleep("2024-06-11", {}) is None

    def test_daily_summary(self):
        raw = {
            "totalSteps": 11234,
            "sedentarySeconds": 36000,
            "averageStressLevel": 32,
            "bodyBatteryHighestValue": 88,
            "bodyBatteryChargedValue": 55,
        }
        summary = normalize_garmin_daily_summary("2024-06-11", raw)

        assert summary.steps == 11234
        assert summary.sedentary_minutes == 600
        assert summary.active_minutes is None
        assert summary.stress_level == 32
        assert summary.body_battery_high == 88
        assert summary.body_battery_charged == 55

    @pytest.mark.parametrize("raw,expected", [
        ({"generic": {"vo2MaxValue": 52}}, 52),
        ({"running": {"vo2MaxValue": 49}}, 49),
        ({"vo2Max": 47}, 47),
    ])
    def test_vo2max_shapes(self, raw, expected):
        reading = normalize_garmin_vo2max(date(2024, 6, 11), raw)
        assert reading.vo2max == expected

    def test_vo2max_missing(self):
        assert normalize_garmin_vo2max(date(2024, 6, 11), {"generic": {}}) is None


class TestGarminClient:

    def test_bearer_token_and_date_range(self):
        session = FakeSession(FakeResponse([GARMIN_RUN]))
        client = GarminClient("garmin-token", session=session)

        assert client.get_activities(28) == [GARMIN_RUN]

        call = session.calls[0]
        assert call["url"].endswith("/activities")
        assert call["headers"]["Authorization"] == "Bearer garmin-token"
        assert call["params"]["activityType"] == "running"
        assert call["params"]["endDate"] == date.today().isoformat()
        assert call["params"]["startDate"] == (date.today() - timedelta(days=28)).isoformat()
        assert call["timeout"] is not None

    def test_rate_limit(self):
        client = GarminClient("token", session=FakeSession(FakeResponse({}, status_code=429)))

        with pytest.raises(GarminError, match="rate limit"):
            client.get_activities(7)

    def test_daily_series_pairs(self):
        payload = [{"calendarDate": "2024-06-10", "restingHeartRate": 48}]
        client = GarminClient("token", session=FakeSession(FakeResponse(payload)))

        assert client.get_heart_rate_data(7) == [("2024-06-10", payload[0])]

    def test_unexpected_series_shape(self):
        client = GarminClient("token", session=FakeSession(FakeResponse({"error": "nope"})))
        assert client.get_sleep_data(7) == []


class FakeGarminClient:
    """Stands in for GarminClient with canned payloads."""

    def __init__(self, failing=()):
        self.failing = failing

    def _maybe_fail(self, name):
        if name in self.failing:
            raise GarminError(f"{name} unavailable")

    def get_activities(self, days):
        self._maybe_fail("activities")
        return [GARMIN_RUN]

    def get_sleep_data(self, days):
        self._maybe_fail("sleep")
        return [
            ("2024-06-10", {"dailySleepDTO": {"sleepTimeSeconds": 25200}}),
            ("2024-06-11", {"dailySleepDTO": {}}),
        ]

    def get_heart_rate_data(self, days):
        self._maybe_fail("heart_rate")
        return [("2024-06-10", {"restingHeartRate": 48}), ("2024-06-11", {})]

    def get_daily_summaries(self, days):
        self._maybe_fail("dailies")
        return [("2024-06-10", {"totalSteps": 9000})]

    def get_vo2max(self):
        self._maybe_fail("vo2max")
        return {"generic": {"vo2MaxValue": 51}}


class UnreachableGarminClient(FakeGarminClient):

    def get_activities(self, days):
        raise ConnectionError("garmin down")


class TestGarminAdapter:

    def test_all_data(self):
        adapter = GarminAdapter("token", client=FakeGarminClient())
        data = adapter.get_all_data(28)

        assert len(data.activities) == 1
        assert len(data.sleep) == 1
        assert data.sleep[0].total_sleep_hours == 7
        assert [hr.resting_hr for hr in data.heart_rate] == [48]
        assert data.daily_summaries[0].steps == 9000
        assert data.vo2max[0].vo2max == 51
        assert data.vo2max[0].fitness_level == "Very Good"

    def test_failing_endpoint_degrades_to_empty(self):
        adapter = GarminAdapter("token", client=FakeGarminClient(failing=("sleep", "vo2max")))
        data = adapter.get_all_data(28)

        assert data.sleep == []
        assert data.vo2max == []
        assert len(data.activities) == 1
        assert len(data.heart_rate) == 1

    def test_failing_activities_raise(self):
        adapter = GarminAdapter("token", client=FakeGarminClient(failing=("activities",)))

        with pytest.raises(GarminError, match="activities unavailable"):
            adapter.get_all_data(28)

    def test_network_error_on_activities_is_wrapped(self):
        adapter = GarminAdapter("token", client=UnreachableGarminClient())

        with pytest.raises(GarminError, match="Failed to fetch Garmin activities"):
            adapter.get_activities(28)


class TestStravaNormalization:

    def test_activity(self):
        activity = normalize_strava_activity(STRAVA_RUN)

        assert activity.id == "9001"
        # Local start time wins over UTC
        assert activity.date == datetime(2024, 6, 11, 12, 0)
        assert activity.type == "run"
        assert activity.distance_miles == pytest.approx(10.0)
        assert activity.duration_minutes == 90
        assert activity.avg_pace_per_mile == "9:00"
        assert activity.elevation_gain_ft == 328
        assert activity.calories == 239
        assert activity.avg_cadence == 170
        assert activity.perceived_exertion is None

    def test_ride_without_optional_fields(self):
        activity = normalize_strava_activity({
            "id": 5, "type": "Ride", "start_date": "2024-06-09T08:00:00Z",
            "distance": 0, "moving_time": 3600,
        })

        assert activity.type == "bike"
        assert activity.name == "Activity"
        assert activity.avg_pace_per_mile == "--:--"
        assert activity.elevation_gain_ft is None
        assert activity.calories is None

    def test_heart_rate_from_activities(self):
        activities = [
            normalize_strava_activity(STRAVA_RUN),
            normalize_strava_activity({**STRAVA_RUN, "id": 9002, "average_heartrate": 130, "max_heartrate": 175}),
            normalize_strava_activity({**STRAVA_RUN, "id": 9003, "average_heartrate": None, "max_heartrate": None}),
        ]
        records = heart_rate_from_activities(activities)

        assert len(records) == 1
        assert records[0].date == date(2024, 6, 11)
        assert records[0].resting_hr == 130
        assert records[0].max_hr == 175
        assert records[0].avg_hr == 138

    def test_daily_summaries_cover_window(self):
        activities = [normalize_strava_activity(STRAVA_RUN)]
        summaries = daily_summaries_from_activities(activities, 7, today=date(2024, 6, 12))

        assert len(summaries) == 7
        by_day = {s.date: s for s in summaries}
        assert by_day[date(2024, 6, 11)].total_distance_miles == pytest.approx(10.0)
        assert by_day[date(2024, 6, 11)].active_minutes == 90
        assert by_day[date(2024, 6, 12)].total_distance_miles == 0


class TestStravaClient:

    def test_pagination(self):
        first_page = [{"id": i} for i in range(StravaClient.PAGE_SIZE)]
        session = FakeSession(FakeResponse(first_page), FakeResponse([{"id": 999}]))
        client = StravaClient("strava-token", session=session)

        activities = client.fetch_activities_for_days(30)

        assert len(activities) == StravaClient.PAGE_SIZE + 1
        assert [c["params"]["page"] for c in session.calls] == [1, 2]
        assert session.calls[0]["headers"]["Authorization"] == "Bearer strava-token"

    def test_adapter_raises_on_network_errors(self):
        session = FakeSession(FakeResponse({}, status_code=500), FakeResponse({}, status_code=500))
        adapter = StravaAdapter("token", client=StravaClient("token", session=session))

        with pytest.raises(StravaError, match="HTTP 500"):
            adapter.get_activities(30)

        with pytest.raises(StravaError):
            adapter.get_all_data(30)

    def test_adapter_has_no_sleep(self):
        session = FakeSession(FakeResponse([STRAVA_RUN]))
        adapter = StravaAdapter("token", client=StravaClient("token", session=session))
        data = adapter.get_all_data(30)

        assert data.sleep == []
        assert data.vo2max == []
        assert len(data.activities) == 1
        assert len(data.heart_rate) == 1
        # One request serves every derived series
        assert len(session.calls) == 1


class TestGetAdapter:

    def test_known_platforms(self):
        assert isinstance(get_adapter("garmin", "token"), GarminAdapter)
        assert isinstance(get_adapter("strava", "token"), StravaAdapter)

    def test_unknown_platform(self):
        with pytest.raises(PlatformError, match="Unknown platform"):
            get_adapter("polar", "token")


def test_activity_is_a_plain_dataclass():
    activity = Activity("1", datetime(2024, 6, 11), "run", "Run", 3.1, 25)
    assert activity.avg_hr is None
