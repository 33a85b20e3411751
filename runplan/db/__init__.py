"""Database module for runplan."""

from .database import Database
from .models import AuthToken, TrainingConfigRecord, GeneratedPlan, PlanModificationRecord

__all__ = ["Database", "AuthToken", "TrainingConfigRecord", "GeneratedPlan", "PlanModificationRecord"]
