"""Plan caching, modification history and baseline maintenance.

``PlanService`` is the seam between the pure planning functions and the
outside world: it reads training configs and tokens from the database,
fetches platform data and persists generated plans.
"""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ..api import PlatformAdapter, PlatformError, get_adapter
from ..auth import AuthManager
from ..config import config
from ..db.database import Database
from ..db.models import GeneratedPlan, PlanModificationRecord, TrainingConfigRecord
from .adaptations import apply_adaptations, compute_adaptations
from .analyzer import AnalysisResults, analyze_training_data
from .mileage import (
    BaselineUpdate,
    WeeklyMileageSummary,
    calculate_updated_baseline,
    calculate_weekly_mileage,
)
from .planner import (
    TrainingConfig,
    TrainingPlan,
    WeekProjection,
    determine_phase,
    generate_plan_projection,
    generate_training_plan,
    get_goal_pace,
)

logger = logging.getLogger(__name__)

PLATFORM_FALLBACK_ORDER = ("garmin", "strava")


class PlanError(Exception):
    """Raised when a plan cannot be produced for a user."""
    pass


@dataclass
class PlanResult:
    plan: TrainingPlan
    analysis: AnalysisResults
    cached: bool
    generated_at: datetime


class PlanService:
    """Generate, cache and track training plans for users."""

    def __init__(
        self,
        db: Database,
        adapter_factory: Optional[Callable[[str, str], PlatformAdapter]] = None,
        auth_factory: Optional[Callable[[str, str], AuthManager]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.adapter_factory = adapter_factory or get_adapter
        self.auth_factory = auth_factory or (lambda user_id, platform: AuthManager(db, user_id, platform))
        self.clock = clock or datetime.utcnow

    def _today(self) -> date:
        return self.clock().date()

    # Training configs

    def get_training_config(self, user_id: str) -> Optional[TrainingConfig]:
        with self.db.get_session() as session:
            record = session.query(TrainingConfigRecord).filter_by(user_id=user_id).first()
            return TrainingConfig.from_record(record) if record else None

    def save_training_config(self, training_config: TrainingConfig, preferred_platform: Optional[str] = None) -> None:
        with self.db.get_session() as session:
            record = session.query(TrainingConfigRecord).filter_by(user_id=training_config.user_id).first()
            if not record:
                record = TrainingConfigRecord(user_id=training_config.user_id)
                session.add(record)

            record.goal_category = training_config.goal_category
            record.goal_type = training_config.goal_type
            record.goal_date = training_config.goal_date
            record.goal_time_minutes = training_config.goal_time_minutes
            record.custom_distance_miles = training_config.custom_distance_miles
            record.current_weekly_mileage = training_config.current_weekly_mileage
            record.intensity_preference = training_config.intensity_preference
            record.preferred_long_run_day = training_config.preferred_long_run_day
            if preferred_platform:
                record.preferred_platform = preferred_platform

        logger.info(f"Saved training config for {training_config.user_id}")

    def _preferred_platform(self, user_id: str) -> str:
        with self.db.get_session() as session:
            record = session.query(TrainingConfigRecord).filter_by(user_id=user_id).first()
            return (record.preferred_platform if record else None) or "garmin"

    # Platform access

    def get_adapter(self, user_id: str) -> Optional[PlatformAdapter]:
        """Adapter for the user's preferred platform, falling back to any connected one."""
        preferred = self._preferred_platform(user_id)
        platforms = [preferred] + [p for p in PLATFORM_FALLBACK_ORDER if p != preferred]

        for platform in platforms:
            token = self.auth_factory(user_id, platform).get_valid_token()
            if token:
                return self.adapter_factory(platform, token)

        logger.warning(f"No active platform connection for {user_id}")
        return None

    # Plans

    def _load_cached_plan(self, user_id: str) -> Optional[PlanResult]:
        with self.db.get_session() as session:
            cached = session.query(GeneratedPlan).filter_by(user_id=user_id).first()
            if not cached:
                return None
            age = self.clock() - cached.created_at
            if age >= timedelta(days=config.CACHE_VALIDITY_DAYS):
                logger.debug(f"Cached plan for {user_id} expired ({age.days} days old)")
                return None
            return PlanResult(
                plan=TrainingPlan.from_dict(json.loads(cached.plan_json)),
                analysis=AnalysisResults.from_dict(json.loads(cached.analysis_json)),
                cached=True,
                generated_at=cached.created_at,
            )

    def _store_plan(self, user_id: str, plan: TrainingPlan, analysis: AnalysisResults, created_at: datetime) -> None:
        with self.db.get_session() as session:
            cached = session.query(GeneratedPlan).filter_by(user_id=user_id).first()
            if not cached:
                cached = GeneratedPlan(user_id=user_id)
                session.add(cached)
            cached.plan_json = json.dumps(plan.to_dict())
            cached.analysis_json = json.dumps(analysis.to_dict())
            cached.created_at = created_at

    def get_cached_plan(self, user_id: str) -> Optional[PlanResult]:
        """Return the cached plan if it is still valid, without regenerating."""
        return self._load_cached_plan(user_id)

    def get_plan(self, user_id: str, force_refresh: bool = False, distance_unit: str = "mi") -> PlanResult:
        """Return the user's plan, regenerating it when the cache is stale.

        Args:
            user_id: User to plan for
            force_refresh: Ignore any cached plan
            distance_unit: "mi" or "km" for the schedule descriptions

        Returns:
            PlanResult with the plan, its analysis and whether it came from cache

        Raises:
            PlanError: If the user has no training config, no connected platform,
                or the platform could not be reached
        """
        if not force_refresh:
            cached = self._load_cached_plan(user_id)
            if cached:
                logger.info(f"Using cached plan for {user_id} from {cached.generated_at}")
                return cached

        training_config = self.get_training_config(user_id)
        if not training_config:
            raise PlanError("No training configuration found. Please set up your goals first.")

        adapter = self.get_adapter(user_id)
        if not adapter:
            raise PlanError("No active platform connections. Please connect Garmin or Strava first.")

        now = self.clock()
        today = now.date()
        try:
            data = adapter.get_all_data(config.ANALYSIS_WINDOW_DAYS)
        except PlatformError as e:
            logger.error(f"Failed to fetch {adapter.name} data for {user_id}: {e}")
            raise PlanError(f"Could not fetch data from {adapter.name}. Please try again later.") from e

        logger.info(
            f"Fetched {len(data.activities)} activities from {adapter.name} for {user_id} "
            f"({config.ANALYSIS_WINDOW_DAYS} days)"
        )

        analysis = analyze_training_data(data)
        plan = generate_training_plan(training_config, analysis, today=today, distance_unit=distance_unit)

        expected_long_run = next(
            (day.distance_miles for day in plan.daily_plan if day.workout_type == "long_run"), None
        )
        adaptations = compute_adaptations(
            analysis,
            data,
            phase=plan.week_summary["training_phase"],
            goal_pace=get_goal_pace(training_config),
            expected_long_run=expected_long_run,
            long_run_day=training_config.preferred_long_run_day,
            today=today,
        )
        if config.APPLY_ADAPTATIONS:
            plan = apply_adaptations(plan, adaptations)
        else:
            plan.insights = [asdict(insight) for insight in adaptations.insights]

        self._store_plan(user_id, plan, analysis, now)
        self.record_modification(user_id, plan)

        return PlanResult(plan=plan, analysis=analysis, cached=False, generated_at=now)

    def record_modification(self, user_id: str, plan: TrainingPlan) -> Optional[PlanModificationRecord]:
        """Record a recovery-driven reduction for the plan's week.

        One record is kept per user and week; regenerating a plan for the
        same week updates it in place.
        """
        summary = plan.week_summary
        if summary["recovery_adjustment"] >= 1.0:
            return None

        week_start_date = date.fromisoformat(summary["week_start"])
        with self.db.get_session() as session:
            record = session.query(PlanModificationRecord).filter_by(
                user_id=user_id, week_start_date=week_start_date
            ).first()
            if not record:
                record = PlanModificationRecord(user_id=user_id, week_start_date=week_start_date)
                session.add(record)

            record.original_mileage = summary["base_miles"]
            record.adjusted_mileage = summary["target_miles"]
            record.recovery_adjustment = summary["recovery_adjustment"]
            record.concerns = json.dumps(plan.concerns)
            record.phase = summary["training_phase"]

        logger.info(
            f"Recorded plan modification for {user_id} week of {week_start_date}: "
            f"{summary['base_miles']} -> {summary['target_miles']} miles"
        )
        return record

    def get_modifications(self, user_id: str) -> List[PlanModificationRecord]:
        with self.db.get_session() as session:
            return (
                session.query(PlanModificationRecord)
                .filter_by(user_id=user_id)
                .order_by(PlanModificationRecord.week_start_date)
                .all()
            )

    # Mileage

    def _fetch_activities(self, user_id: str, days: int):
        adapter = self.get_adapter(user_id)
        if not adapter:
            return None
        try:
            return adapter.get_activities(days)
        except PlatformError as e:
            logger.error(f"Failed to fetch activities for {user_id}: {e}")
            return None

    def calculate_mileage(self, user_id: str) -> Optional[WeeklyMileageSummary]:
        """Average weekly mileage from the analysis window, or None without data access."""
        activities = self._fetch_activities(user_id, config.ANALYSIS_WINDOW_DAYS)
        if activities is None:
            return None
        return calculate_weekly_mileage(activities, today=self._today())

    def update_baseline(self, user_id: str) -> Optional[BaselineUpdate]:
        """Re-derive and persist the user's baseline weekly mileage."""
        training_config = self.get_training_config(user_id)
        if not training_config:
            logger.warning(f"No training config for {user_id}; baseline not updated")
            return None

        activities = self._fetch_activities(user_id, config.BASELINE_WINDOW_DAYS)
        if activities is None:
            return None

        update = calculate_updated_baseline(
            activities, training_config.current_weekly_mileage, today=self._today()
        )

        if update.new_baseline != update.previous_baseline:
            with self.db.get_session() as session:
                record = session.query(TrainingConfigRecord).filter_by(user_id=user_id).first()
                record.current_weekly_mileage = update.new_baseline
            logger.info(
                f"Baseline for {user_id} updated {update.previous_baseline} -> {update.new_baseline} "
                f"({update.change_percent:+d}%): {update.reasoning}"
            )
        return update

    # Overview

    def get_overview(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Week-by-week projection to race day alongside recorded modifications."""
        training_config = self.get_training_config(user_id)
        if not training_config:
            return None

        today = self._today()
        projection = generate_plan_projection(training_config, today=today)
        return {
            "config": training_config,
            "current_phase": determine_phase(training_config, today),
            "projection": projection,
            "modifications": self.get_modifications(user_id),
            "summary": summarize_projection(projection, training_config.goal_date),
        }


def summarize_projection(projection: List[WeekProjection], race_date: Optional[date]) -> Dict[str, Any]:
    """Total weeks and the highest-mileage week of a projection.

    Ties keep the earliest week; an empty projection reports week 1.
    """
    peak_week = 1
    peak_mileage = 0
    for week in projection:
        if week.projected_mileage > peak_mileage:
            peak_mileage = week.projected_mileage
            peak_week = week.week_number

    return {
        "total_weeks": len(projection),
        "current_week": 1,
        "peak_mileage_week": peak_week,
        "peak_mileage": peak_mileage,
        "race_date": race_date,
    }
