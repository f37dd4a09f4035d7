import datetime as dt
from dataclasses import dataclass
from typing import List, Optional

from loguru import logger

from models import SUBSCRIPTION_ACTIVE, Subscription, WorkoutLog
from rules import (
    COOLDOWN,
    GRACE_WEEK_ALLOWANCE,
    CooldownWindow,
    EligibilityState,
    WeekRecord,
    completed_weeks,
    current_week,
    ensure_utc,
    evaluate_adherence,
    evaluate_cooldown,
    program_ends_at,
    program_status,
    week_window,
    workout_statuses,
)
from store import WorkoutLogStore, user_lock


class AdherenceError(Exception):
    pass


class NotSubscribed(AdherenceError):
    def __init__(self, user_id: str):
        super().__init__(f"No active subscription for user {user_id}")
        self.user_id = user_id


class CooldownActive(AdherenceError):
    def __init__(self, unlocks_at: dt.datetime, hours_remaining: float):
        super().__init__(f"Cooldown active until {unlocks_at.isoformat()}")
        self.unlocks_at = unlocks_at
        self.hours_remaining = hours_remaining


class UnknownWorkout(AdherenceError):
    def __init__(self, workout_id: str):
        super().__init__(f"Unknown workout {workout_id}")
        self.workout_id = workout_id


@dataclass(frozen=True)
class WorkoutStatusItem:
    id: str
    title: str
    description: str
    day_number: int
    status: str
    logged_date: Optional[str]


@dataclass(frozen=True)
class WeekStatusView:
    week_number: int
    week_ends_at: dt.datetime
    variation: int
    amount_paid: float
    cooldown: CooldownWindow
    completed_count: int
    required: int
    workouts: List[WorkoutStatusItem]


@dataclass(frozen=True)
class EligibilityView:
    eligibility: EligibilityState
    current_week: int
    program_status: str


class AdherenceEngine:
    def __init__(
        self,
        store: WorkoutLogStore,
        cooldown: dt.timedelta = COOLDOWN,
        grace_allowance: int = GRACE_WEEK_ALLOWANCE,
    ):
        self.store = store
        self.cooldown = cooldown
        self.grace_allowance = grace_allowance

    def _cooldown_for(self, user_id: str, now: dt.datetime) -> CooldownWindow:
        last = self.store.last_log(user_id)
        window = evaluate_cooldown(last.logged_at if last else None, now, self.cooldown)
        if window.skew_detected:
            logger.warning(
                f"ClockSkewDetected: last log for user={user_id} is stamped {last.logged_at} after now={now}; "
                f"cooldown held until {window.unlocks_at}"
            )
        return window

    def _require_subscription(self, user_id: str) -> Subscription:
        sub = self.store.get_subscription(user_id)
        if sub is None or sub.status != SUBSCRIPTION_ACTIVE:
            logger.info(f"No active subscription for user={user_id}")
            raise NotSubscribed(user_id)
        return sub

    def request_workout_log(self, user_id: str, workout_id: str, now: dt.datetime) -> WorkoutLog:
        """The only place a WorkoutLog is created. `now` is server time."""
        now = ensure_utc(now)
        with user_lock(user_id):
            sub = self.store.get_subscription(user_id)
            if (
                sub is None
                or sub.status != SUBSCRIPTION_ACTIVE
                or now >= program_ends_at(sub.activated_at, sub.program_length_weeks)
            ):
                logger.info(f"Rejected workout log for user={user_id}: no active subscription")
                raise NotSubscribed(user_id)

            workout = self.store.get_workout(workout_id)
            if workout is None or workout.variation != sub.variation:
                raise UnknownWorkout(workout_id)

            window = self._cooldown_for(user_id, now)
            if window.active:
                logger.info(
                    f"Rejected workout log for user={user_id}: cooldown active, "
                    f"{window.hours_remaining:.2f}h remaining"
                )
                raise CooldownActive(window.unlocks_at, window.hours_remaining)

            week = current_week(sub.activated_at, now, sub.program_length_weeks)
            row = self.store.add_log(user_id, workout_id, now, week.week_number)
            logger.info(f"Logged workout={workout_id} for user={user_id} in week {week.week_number}")
            return row

    def get_cooldown_status(self, user_id: str, now: dt.datetime) -> CooldownWindow:
        return self._cooldown_for(user_id, ensure_utc(now))

    def get_current_week_status(self, user_id: str, now: dt.datetime) -> WeekStatusView:
        now = ensure_utc(now)
        sub = self._require_subscription(user_id)
        week = current_week(sub.activated_at, now, sub.program_length_weeks)
        start, end = week_window(sub.activated_at, week.week_number)
        logs = self.store.logs_between(user_id, start, end)

        first_logged = {}
        for log in logs:
            first_logged.setdefault(log.workout_id, ensure_utc(log.logged_at))

        workouts = self.store.workouts_for_variation(sub.variation)
        statuses = workout_statuses([w.id for w in workouts], first_logged.keys())
        items = [
            WorkoutStatusItem(
                id=w.id,
                title=w.title,
                description=w.description or "",
                day_number=w.day_number,
                status=status,
                logged_date=first_logged[w.id].date().isoformat() if w.id in first_logged else None,
            )
            for w, status in zip(workouts, statuses)
        ]

        return WeekStatusView(
            week_number=week.week_number,
            week_ends_at=week.week_ends_at,
            variation=sub.variation,
            amount_paid=sub.pledge_amount,
            cooldown=self._cooldown_for(user_id, now),
            completed_count=len(logs),
            required=sub.required_workouts_per_week,
            workouts=items,
        )

    def week_history(self, sub: Subscription, now: dt.datetime) -> List[WeekRecord]:
        history = []
        for week_number in range(1, completed_weeks(sub.activated_at, now, sub.program_length_weeks) + 1):
            start, end = week_window(sub.activated_at, week_number)
            count = len(self.store.logs_between(sub.user_id, start, end))
            history.append(
                WeekRecord(
                    week_number=week_number,
                    window_start=start,
                    window_end=end,
                    completed_count=count,
                    required=sub.required_workouts_per_week,
                )
            )
        return history

    def _eligibility_for(self, sub: Subscription, now: dt.datetime) -> EligibilityState:
        return evaluate_adherence(
            self.week_history(sub, now),
            sub.required_workouts_per_week,
            grace_allowance=self.grace_allowance,
            now=now,
        )

    def get_eligibility(self, user_id: str, now: dt.datetime) -> EligibilityState:
        now = ensure_utc(now)
        return self._eligibility_for(self._require_subscription(user_id), now)

    def get_eligibility_view(self, user_id: str, now: dt.datetime) -> EligibilityView:
        now = ensure_utc(now)
        sub = self._require_subscription(user_id)
        eligibility = self._eligibility_for(sub, now)
        program_over = now >= program_ends_at(sub.activated_at, sub.program_length_weeks)
        return EligibilityView(
            eligibility=eligibility,
            current_week=current_week(sub.activated_at, now, sub.program_length_weeks).week_number,
            program_status=program_status(eligibility, program_over),
        )
