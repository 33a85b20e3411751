"""Database models for tokens, training configs, cached plans and modifications."""

import json
import time
from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, DateTime, Date, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class AuthToken(Base):
    """Store OAuth tokens per user and platform."""

    __tablename__ = "auth_tokens"
    __table_args__ = (UniqueConstraint("user_id", "platform", name="uq_auth_token_user_platform"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(50), nullable=False)
    platform = Column(String(20), nullable=False)  # garmin, strava
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    expires_at = Column(Integer, nullable=False)  # Unix timestamp
    athlete_id = Column(String(50))
    status = Column(String(20), default="active")  # active, revoked
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def expires_within(self, seconds: int) -> bool:
        """Check if the access token expires within the given margin."""
        return self.expires_at <= time.time() + seconds

    def __repr__(self):
        return f"<AuthToken(user_id={self.user_id}, platform={self.platform})>"


class TrainingConfigRecord(Base):
    """User-owned goal and volume settings."""

    __tablename__ = "training_configs"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(50), unique=True, nullable=False)
    goal_category = Column(String(20), default="race")  # race, non_race
    goal_type = Column(String(50), default="marathon")
    goal_date = Column(Date)
    goal_time_minutes = Column(Float)
    custom_distance_miles = Column(Float)
    current_weekly_mileage = Column(Float, nullable=False, default=20)
    intensity_preference = Column(String(20), default="normal")  # conservative, normal, aggressive
    preferred_long_run_day = Column(String(10), default="saturday")  # saturday, sunday
    preferred_platform = Column(String(20), default="garmin")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<TrainingConfigRecord(user_id={self.user_id}, goal={self.goal_type}, date={self.goal_date})>"


class GeneratedPlan(Base):
    """Cached training plan and the analysis it was built from."""

    __tablename__ = "generated_plans"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(50), unique=True, nullable=False)
    plan_json = Column(Text, nullable=False)
    analysis_json = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<GeneratedPlan(user_id={self.user_id}, created_at={self.created_at})>"


class PlanModificationRecord(Base):
    """A week where recovery signals reduced the planned mileage."""

    __tablename__ = "plan_modifications"
    __table_args__ = (UniqueConstraint("user_id", "week_start_date", name="uq_plan_modification_user_week"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(50), nullable=False)
    week_start_date = Column(Date, nullable=False)  # Monday
    original_mileage = Column(Float, nullable=False)
    adjusted_mileage = Column(Float, nullable=False)
    recovery_adjustment = Column(Float, nullable=False)
    concerns = Column(Text, default="[]")  # JSON list of concern tags
    phase = Column(String(20))
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def concern_list(self):
        return json.loads(self.concerns or "[]")

    def __repr__(self):
        return (
            f"<PlanModificationRecord(user_id={self.user_id}, week={self.week_start_date}, "
            f"{self.original_mileage}->{self.adjusted_mileage})>"
        )
