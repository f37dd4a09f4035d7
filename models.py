from sqlalchemy import Column, DateTime, Float, Index, Integer, String, Text
from db import Base

SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_COMPLETED = "completed"
SUBSCRIPTION_REFUNDED = "refunded"
SUBSCRIPTION_FORFEITED = "forfeited"


class Subscription(Base):
    __tablename__ = "subscriptions"
    id = Column(Integer, primary_key=True)
    user_id = Column(String, index=True, nullable=False)  # "sub" claim of the auth JWT
    activated_at = Column(DateTime(timezone=True), nullable=False)  # set once at payment confirmation
    program_length_weeks = Column(Integer, nullable=False, default=12)
    required_workouts_per_week = Column(Integer, nullable=False, default=4)
    pledge_amount = Column(Float, nullable=False)
    variation = Column(Integer, nullable=False, default=1)  # 1-4
    status = Column(String, nullable=False, default=SUBSCRIPTION_ACTIVE)


class Workout(Base):
    __tablename__ = "workouts"
    id = Column(String, primary_key=True)
    variation = Column(Integer, nullable=False, index=True)
    day_number = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")


class WorkoutLog(Base):
    __tablename__ = "workout_logs"
    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False)
    workout_id = Column(String, nullable=False)
    logged_at = Column(DateTime(timezone=True), nullable=False)  # server time, never client supplied
    week_number = Column(Integer, nullable=False)  # cached, derived from activated_at

    __table_args__ = (Index("ix_workout_logs_user_logged_at", "user_id", "logged_at"),)
