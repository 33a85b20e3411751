"""Mileage, recovery analysis and training plan generation."""

from .analyzer import AnalysisResults, TrainingAnalyzer, analyze_training_data
from .mileage import (
    BaselineUpdate,
    WeeklyMileageSummary,
    calculate_updated_baseline,
    calculate_weekly_mileage,
    week_start,
)
from .planner import (
    DayPlan,
    TrainingConfig,
    TrainingPlan,
    WeekProjection,
    calculate_recovery_adjustment,
    generate_plan_projection,
    generate_training_plan,
    get_recovery_concerns,
)
from .plan_service import PlanError, PlanResult, PlanService

__all__ = [
    "AnalysisResults",
    "BaselineUpdate",
    "DayPlan",
    "PlanError",
    "PlanResult",
    "PlanService",
    "TrainingAnalyzer",
    "TrainingConfig",
    "TrainingPlan",
    "WeekProjection",
    "WeeklyMileageSummary",
    "analyze_training_data",
    "calculate_recovery_adjustment",
    "calculate_updated_baseline",
    "calculate_weekly_mileage",
    "generate_plan_projection",
    "generate_training_plan",
    "get_recovery_concerns",
    "week_start",
]
