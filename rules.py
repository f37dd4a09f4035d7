# rules.py
import datetime as dt
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, List, Optional, Tuple

COOLDOWN = dt.timedelta(hours=18)
PROGRAM_LENGTH_WEEKS = 12
GRACE_WEEK_ALLOWANCE = 1
WEEK = dt.timedelta(days=7)
DAY = dt.timedelta(days=1)


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def ensure_utc(ts: dt.datetime) -> dt.datetime:
    # sqlite hands back naive datetimes; stored values are always UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=dt.timezone.utc)
    return ts.astimezone(dt.timezone.utc)


def _hours(delta: dt.timedelta) -> float:
    return delta.total_seconds() / 3600.0


# --- cooldown ---------------------------------------------------------------

@dataclass(frozen=True)
class CooldownWindow:
    active: bool
    unlocks_at: Optional[dt.datetime]
    hours_remaining: float
    skew_detected: bool = False


def evaluate_cooldown(
    last_log_at: Optional[dt.datetime],
    now: dt.datetime,
    cooldown: dt.timedelta = COOLDOWN,
) -> CooldownWindow:
    """Cooldown after the most recent log.

    Active on [last_log_at, last_log_at + cooldown). A last log stamped in the
    future keeps the window closed and pushes the unlock out by the skew.
    """
    if last_log_at is None:
        return CooldownWindow(active=False, unlocks_at=None, hours_remaining=0.0)

    last_log_at = ensure_utc(last_log_at)
    now = ensure_utc(now)
    if last_log_at > now:
        skew = last_log_at - now
        unlocks_at = last_log_at + cooldown + skew
        return CooldownWindow(
            active=True,
            unlocks_at=unlocks_at,
            hours_remaining=_hours(unlocks_at - now),
            skew_detected=True,
        )

    unlocks_at = last_log_at + cooldown
    active = now < unlocks_at
    remaining = max(dt.timedelta(0), unlocks_at - now)
    return CooldownWindow(active=active, unlocks_at=unlocks_at, hours_remaining=_hours(remaining))


# --- program clock ----------------------------------------------------------

@dataclass(frozen=True)
class ProgramWeek:
    week_number: int
    week_ends_at: dt.datetime


def current_week(
    activated_at: dt.datetime,
    now: dt.datetime,
    program_length_weeks: int = PROGRAM_LENGTH_WEEKS,
) -> ProgramWeek:
    activated_at = ensure_utc(activated_at)
    elapsed_days = (ensure_utc(now) - activated_at) // DAY
    week_number = min(program_length_weeks, elapsed_days // 7 + 1)
    week_number = max(1, week_number)  # now before activation
    return ProgramWeek(week_number=week_number, week_ends_at=activated_at + week_number * WEEK)


def week_window(activated_at: dt.datetime, week_number: int) -> Tuple[dt.datetime, dt.datetime]:
    start = ensure_utc(activated_at) + (week_number - 1) * WEEK
    return start, start + WEEK


def program_ends_at(activated_at: dt.datetime, program_length_weeks: int = PROGRAM_LENGTH_WEEKS) -> dt.datetime:
    return ensure_utc(activated_at) + program_length_weeks * WEEK


def completed_weeks(
    activated_at: dt.datetime,
    now: dt.datetime,
    program_length_weeks: int = PROGRAM_LENGTH_WEEKS,
) -> int:
    """Number of program weeks whose window has fully elapsed."""
    elapsed = ensure_utc(now) - ensure_utc(activated_at)
    if elapsed < dt.timedelta(0):
        return 0
    return min(program_length_weeks, elapsed // WEEK)


# --- weekly adherence -------------------------------------------------------

class WeekOutcome(str, Enum):
    MET = "met"
    MISSED_GRACED = "missed_graced"
    MISSED_PENALIZED = "missed_penalized"


@dataclass(frozen=True)
class WeekRecord:
    week_number: int
    window_start: dt.datetime
    window_end: dt.datetime
    completed_count: int
    required: int
    grace_used: bool = False
    outcome: Optional[WeekOutcome] = None

    @property
    def met_requirement(self) -> bool:
        return self.completed_count >= self.required


@dataclass(frozen=True)
class EligibilityState:
    refund_eligible: bool
    grace_weeks_remaining: int
    consecutive_misses: int
    lost_in_week: Optional[int]
    weeks: Tuple[WeekRecord, ...]

    @property
    def grace_used(self) -> bool:
        return any(w.grace_used for w in self.weeks)


def normalize_history(history: Iterable[WeekRecord], now: Optional[dt.datetime] = None) -> List[WeekRecord]:
    seen = set()
    weeks = []
    for record in sorted(history, key=lambda r: r.week_number):
        if record.week_number in seen:
            continue
        # the in-progress week is never judged
        if now is not None and ensure_utc(record.window_end) > ensure_utc(now):
            continue
        seen.add(record.week_number)
        weeks.append(record)
    return weeks


def evaluate_adherence(
    history: Iterable[WeekRecord],
    required_per_week: int,
    grace_allowance: int = GRACE_WEEK_ALLOWANCE,
    now: Optional[dt.datetime] = None,
) -> EligibilityState:
    """Replay completed weeks in order and decide refund eligibility.

    A miss first eats a grace week (and resets the miss streak). Once grace
    is gone, two misses in a row lose eligibility for good; weeks after that
    are left unjudged.
    """
    grace_remaining = grace_allowance
    consecutive_misses = 0
    refund_eligible = True
    lost_in_week = None
    judged: List[WeekRecord] = []

    for record in normalize_history(history, now):
        if not refund_eligible:
            judged.append(replace(record, required=required_per_week, grace_used=False, outcome=None))
            continue

        if record.completed_count >= required_per_week:
            consecutive_misses = 0
            outcome = WeekOutcome.MET
            grace_used = False
        elif grace_remaining > 0:
            grace_remaining -= 1
            consecutive_misses = 0
            outcome = WeekOutcome.MISSED_GRACED
            grace_used = True
        else:
            consecutive_misses += 1
            outcome = WeekOutcome.MISSED_PENALIZED
            grace_used = False

        judged.append(replace(record, required=required_per_week, grace_used=grace_used, outcome=outcome))

        if consecutive_misses >= 2:
            refund_eligible = False
            lost_in_week = record.week_number

    return EligibilityState(
        refund_eligible=refund_eligible,
        grace_weeks_remaining=grace_remaining,
        consecutive_misses=consecutive_misses,
        lost_in_week=lost_in_week,
        weeks=tuple(judged),
    )


# --- workout schedule -------------------------------------------------------

STATUS_COMPLETED = "completed"
STATUS_NEXT = "next"
STATUS_LOCKED = "locked"


def workout_statuses(workout_ids_in_day_order: List[str], completed_ids: Iterable[str]) -> List[str]:
    done = set(completed_ids)
    statuses = []
    next_assigned = False
    for workout_id in workout_ids_in_day_order:
        if workout_id in done:
            statuses.append(STATUS_COMPLETED)
        elif not next_assigned:
            statuses.append(STATUS_NEXT)
            next_assigned = True
        else:
            statuses.append(STATUS_LOCKED)
    return statuses


PROGRAM_IN_PROGRESS = "in_progress"
PROGRAM_REFUND_DUE = "refund_due"
PROGRAM_FORFEITED = "forfeited"


def program_status(eligibility: EligibilityState, program_over: bool) -> str:
    if not eligibility.refund_eligible:
        return PROGRAM_FORFEITED
    if program_over:
        return PROGRAM_REFUND_DUE
    return PROGRAM_IN_PROGRESS
