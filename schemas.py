import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WorkoutLogRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    workout_id: str = Field(min_length=1)


class WorkoutLogOut(BaseModel):
    id: int
    workout_id: str
    logged_at: dt.datetime
    week_number: int


class CooldownStatusOut(BaseModel):
    cooldown_active: bool
    unlocks_at: Optional[dt.datetime] = None
    hours_remaining: float


class WorkoutItemOut(BaseModel):
    id: str
    title: str
    description: str
    day_number: int
    status: str
    logged_date: Optional[str] = None


class CurrentWeekOut(BaseModel):
    week_number: int
    variation: int
    cooldown_active: bool
    hours_remaining: float
    amount_paid: float
    week_ends_at: dt.datetime
    completed_count: int
    required: int
    workouts: List[WorkoutItemOut]


class WeekOut(BaseModel):
    week_number: int
    window_start: dt.datetime
    window_end: dt.datetime
    completed_count: int
    required: int
    met_requirement: bool
    grace_used: bool
    outcome: Optional[str] = None


class EligibilityOut(BaseModel):
    refund_eligible: bool
    grace_weeks_remaining: int
    grace_used: bool
    current_week: int
    program_status: str
    weeks: List[WeekOut]
