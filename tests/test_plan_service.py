"""Tests for plan caching, modification tracking and baseline maintenance."""

from datetime import date, datetime, timedelta

import pytest
from requests.exceptions import ConnectionError

from runplan.api import GarminAdapter
from runplan.api.base import PlatformAdapter
from runplan.api.models import Activity, PlatformData, SleepRecord
from runplan.analysis.plan_service import PlanError, PlanService
from runplan.analysis.planner import TrainingConfig
from runplan.config import config
from runplan.db import Database

NOW = datetime(2024, 6, 12, 9, 0)  # Wednesday
GOAL_DATE = date(2024, 8, 7)  # eight weeks out


def weekly_runs(weeks: int = 4, miles: float = 10) -> list:
    """Two runs a week (Tuesday and Friday) for each completed week."""
    monday = date(2024, 6, 10)
    activities = []
    for offset in range(1, weeks + 1):
        start = monday - timedelta(weeks=offset)
        for weekday in (1, 4):
            day = start + timedelta(days=weekday)
            activities.append(Activity(
                id=f"{day}-{weekday}",
                date=datetime.combine(day, datetime.min.time()) + timedelta(hours=7),
                type="run",
                name="Run",
                distance_miles=miles,
                duration_minutes=miles * 9,
            ))
    return activities


def poor_sleep() -> list:
    return [SleepRecord(date(2024, 6, 4) + timedelta(days=i), 5.5) for i in range(7)]


class FakeAdapter(PlatformAdapter):

    def __init__(self, name: str, data: PlatformData):
        self.name = name
        self.data = data
        self.fetches = 0

    def get_activities(self, days):
        return self.data.activities

    def get_all_data(self, days):
        self.fetches += 1
        return self.data


class UnreachableClient:
    """Garmin client whose every call fails at the network."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise ConnectionError("garmin down")
        return fail


class FakeAuth:

    def __init__(self, token):
        self.token = token

    def get_valid_token(self):
        return self.token


class TestPlanService:
    """Test PlanService against an in-memory database."""

    def setup_method(self):
        self.db = Database("sqlite://")
        self.db.create_tables()
        self.now = NOW
        self.tokens = {"garmin": "garmin-token"}
        self.data = PlatformData(activities=weekly_runs())
        self.adapters = []
        self.service = PlanService(
            self.db,
            adapter_factory=self.make_adapter,
            auth_factory=lambda user_id, platform: FakeAuth(self.tokens.get(platform)),
            clock=lambda: self.now,
        )

    def teardown_method(self):
        self.db.drop_tables()
        self.db.close()

    def make_adapter(self, platform, token):
        adapter = FakeAdapter(platform, self.data)
        self.adapters.append((platform, token, adapter))
        return adapter

    def configure(self, **kwargs):
        settings = {
            "user_id": "runner",
            "goal_category": "race",
            "goal_type": "marathon",
            "goal_date": GOAL_DATE,
            "current_weekly_mileage": 40,
        }
        settings.update(kwargs)
        self.service.save_training_config(TrainingConfig(**settings))

    # Plans

    def test_plan_requires_config(self):
        with pytest.raises(PlanError, match="No training configuration"):
            self.service.get_plan("runner")

    def test_plan_requires_connection(self):
        self.configure()
        self.tokens = {}

        with pytest.raises(PlanError, match="No active platform connections"):
            self.service.get_plan("runner")

    def test_fresh_plan_then_cache(self):
        self.configure()

        first = self.service.get_plan("runner")
        second = self.service.get_plan("runner")

        assert not first.cached
        assert second.cached
        assert second.generated_at == NOW
        assert second.plan == first.plan
        assert second.analysis == first.analysis
        assert first.plan.week_summary["week_start"] == "2024-06-10"
        assert first.plan.week_summary["training_phase"] == "build"
        assert len(self.adapters) == 1
        assert self.adapters[0][2].fetches == 1

    def test_cache_is_valid_for_a_week(self):
        self.configure()
        self.service.get_plan("runner")

        self.now = NOW + timedelta(days=6)
        assert self.service.get_plan("runner").cached

        self.now = NOW + timedelta(days=8)
        refreshed = self.service.get_plan("runner")

        assert not refreshed.cached
        assert refreshed.generated_at == self.now
        assert refreshed.plan.week_summary["week_start"] == "2024-06-17"
        assert self.service.get_cached_plan("runner").generated_at == self.now

    def test_force_refresh(self):
        self.configure()
        self.service.get_plan("runner")

        assert not self.service.get_plan("runner", force_refresh=True).cached
        assert len(self.adapters) == 2

    def test_kilometre_plan(self):
        self.configure()
        result = self.service.get_plan("runner", distance_unit="km")

        assert result.plan.paces["unit_label"] == "/km"

    def test_no_cached_plan(self):
        assert self.service.get_cached_plan("runner") is None

    # Platform selection

    def test_falls_back_to_connected_platform(self):
        self.configure()
        self.tokens = {"strava": "strava-token"}

        self.service.get_plan("runner")

        assert self.adapters[0][:2] == ("strava", "strava-token")

    def test_preferred_platform_wins(self):
        self.service.save_training_config(
            TrainingConfig(user_id="runner", goal_date=GOAL_DATE), preferred_platform="strava"
        )
        self.tokens = {"garmin": "garmin-token", "strava": "strava-token"}

        assert self.service.get_adapter("runner").name == "strava"

    def test_no_connection(self):
        self.tokens = {}
        assert self.service.get_adapter("runner") is None

    # Platform outages

    def use_unreachable_garmin(self):
        self.service.adapter_factory = lambda platform, token: GarminAdapter(token, client=UnreachableClient())

    def test_mileage_outage_returns_none(self):
        self.use_unreachable_garmin()
        assert self.service.calculate_mileage("runner") is None

    def test_baseline_outage_leaves_config_alone(self):
        self.configure()
        self.use_unreachable_garmin()

        assert self.service.update_baseline("runner") is None
        assert self.service.get_training_config("runner").current_weekly_mileage == 40

    def test_plan_outage_is_not_cached(self):
        self.configure()
        self.use_unreachable_garmin()

        with pytest.raises(PlanError, match="Could not fetch data from garmin"):
            self.service.get_plan("runner")

        assert self.service.get_cached_plan("runner") is None
        assert self.service.get_modifications("runner") == []

    def test_outage_does_not_replace_cached_plan(self):
        self.configure()
        first = self.service.get_plan("runner")
        self.use_unreachable_garmin()

        with pytest.raises(PlanError):
            self.service.get_plan("runner", force_refresh=True)

        assert self.service.get_cached_plan("runner").plan == first.plan

    # Adaptations

    def test_insights_attached_without_changing_plan(self):
        self.configure()
        self.data = PlatformData()

        plan = self.service.get_plan("runner").plan

        assert "rule_12_missed_long_run" in [i["source"] for i in plan.insights]
        assert plan.week_summary["total_miles"] == 33

    def test_adaptations_applied_when_enabled(self, monkeypatch):
        monkeypatch.setattr(config, "APPLY_ADAPTATIONS", True)
        self.configure()
        self.data = PlatformData()

        plan = self.service.get_plan("runner").plan
        long_run = next(day for day in plan.daily_plan if day.workout_type == "long_run")

        assert long_run.distance_miles == 10
        assert plan.week_summary["total_miles"] == 31

    # Modifications

    def test_recovery_reduction_is_recorded_once_per_week(self):
        self.configure()
        self.data = PlatformData(activities=weekly_runs(), sleep=poor_sleep())

        self.service.get_plan("runner")
        self.service.get_plan("runner", force_refresh=True)

        records = self.service.get_modifications("runner")
        assert len(records) == 1
        assert records[0].week_start_date == date(2024, 6, 10)
        assert records[0].original_mileage == 40
        assert records[0].adjusted_mileage == 36
        assert records[0].recovery_adjustment == pytest.approx(0.9)
        assert records[0].concern_list == ["poor_sleep"]
        assert records[0].phase == "build"

    def test_new_week_gets_its_own_record(self):
        self.configure()
        self.data = PlatformData(activities=weekly_runs(), sleep=poor_sleep())

        self.service.get_plan("runner")
        self.now = NOW + timedelta(days=8)
        self.service.get_plan("runner")

        weeks = [r.week_start_date for r in self.service.get_modifications("runner")]
        assert weeks == [date(2024, 6, 10), date(2024, 6, 17)]

    def test_no_record_without_reduction(self):
        self.configure(goal_date=date(2024, 7, 3), intensity_preference="conservative")

        result = self.service.get_plan("runner")

        assert result.plan.week_summary["training_phase"] == "taper"
        assert result.plan.week_summary["total_miles"] == 20
        assert self.service.get_modifications("runner") == []

    # Mileage and baseline

    def test_calculate_mileage(self):
        summary = self.service.calculate_mileage("runner")

        assert summary.calculated_mileage == 20
        assert summary.weeks_analyzed == 4
        assert summary.confidence == "high"

    def test_calculate_mileage_without_connection(self):
        self.tokens = {}
        assert self.service.calculate_mileage("runner") is None

    def test_update_baseline_persists(self):
        self.configure()

        update = self.service.update_baseline("runner")

        assert update.previous_baseline == 40
        assert update.new_baseline == 30
        assert update.change_percent == -25
        assert self.service.get_training_config("runner").current_weekly_mileage == 30

    def test_update_baseline_unchanged(self):
        self.configure(current_weekly_mileage=20)

        update = self.service.update_baseline("runner")

        assert update.new_baseline == 20
        assert update.reasoning.startswith("Baseline unchanged")

    def test_update_baseline_requires_config(self):
        assert self.service.update_baseline("runner") is None

    # Overview

    def test_overview(self):
        self.configure(goal_date=date(2024, 7, 7))

        overview = self.service.get_overview("runner")

        assert overview["current_phase"] == "taper"
        assert len(overview["projection"]) == 4
        assert overview["projection"][-1].phase == "race_week"
        assert overview["modifications"] == []
        assert overview["config"].goal_date == date(2024, 7, 7)

        summary = overview["summary"]
        assert summary["total_weeks"] == 4
        assert summary["race_date"] == date(2024, 7, 7)
        # Taper weeks are 24 miles, race week 12
        assert summary["peak_mileage_week"] == 1
        assert summary["peak_mileage"] == 24

    def test_overview_requires_config(self):
        assert self.service.get_overview("runner") is None

    def test_config_round_trip(self):
        self.configure(goal_time_minutes=240, preferred_long_run_day="sunday")
        saved = self.service.get_training_config("runner")

        assert saved.goal_time_minutes == 240
        assert saved.preferred_long_run_day == "sunday"
        assert saved.intensity_preference == "normal"

        self.configure(current_weekly_mileage=35)
        assert self.service.get_training_config("runner").current_weekly_mileage == 35
