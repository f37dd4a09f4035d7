import datetime as dt
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import Subscription, Workout, WorkoutLog

class _UserLock:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.Lock()
        self.holders = 0  # threads holding or waiting on `lock`


_LOCKS: Dict[str, _UserLock] = {}
_LOCKS_GUARD = threading.Lock()


@contextmanager
def user_lock(user_id: str) -> Iterator[None]:
    """Serialize writes for one user inside this process.

    An entry lives in the registry only while some thread holds or waits on it.
    """
    with _LOCKS_GUARD:
        entry = _LOCKS.get(user_id)
        if entry is None:
            entry = _LOCKS[user_id] = _UserLock()
        entry.holders += 1
    try:
        with entry.lock:
            yield
    finally:
        with _LOCKS_GUARD:
            entry.holders -= 1
            if entry.holders == 0:
                del _LOCKS[user_id]


class WorkoutLogStore:
    """Reads subscriptions and templates, appends workout logs. Never updates or deletes a log."""

    def __init__(self, db: Session):
        self.db = db

    def get_subscription(self, user_id: str) -> Optional[Subscription]:
        stmt = (
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.activated_at.desc(), Subscription.id.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def last_log(self, user_id: str) -> Optional[WorkoutLog]:
        stmt = (
            select(WorkoutLog)
            .where(WorkoutLog.user_id == user_id)
            .order_by(WorkoutLog.logged_at.desc(), WorkoutLog.id.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def logs_between(self, user_id: str, start: dt.datetime, end: dt.datetime) -> List[WorkoutLog]:
        stmt = (
            select(WorkoutLog)
            .where(WorkoutLog.user_id == user_id, WorkoutLog.logged_at >= start, WorkoutLog.logged_at < end)
            .order_by(WorkoutLog.logged_at, WorkoutLog.id)
        )
        return list(self.db.execute(stmt).scalars())

    def workouts_for_variation(self, variation: int) -> List[Workout]:
        stmt = select(Workout).where(Workout.variation == variation).order_by(Workout.day_number, Workout.id)
        return list(self.db.execute(stmt).scalars())

    def get_workout(self, workout_id: str) -> Optional[Workout]:
        return self.db.get(Workout, workout_id)

    def add_log(self, user_id: str, workout_id: str, logged_at: dt.datetime, week_number: int) -> WorkoutLog:
        row = WorkoutLog(user_id=user_id, workout_id=workout_id, logged_at=logged_at, week_number=week_number)
        self.db.add(row)
        self.db.commit()
        return row
