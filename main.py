import datetime as dt
from dataclasses import asdict

from fastapi import BackgroundTasks, Depends, FastAPI, status
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from auth import get_current_user_id
from config import Settings, get_settings
from db import SessionLocal, engine as db_engine
from engine import AdherenceEngine, CooldownActive, NotSubscribed, UnknownWorkout
from logging_config import configure_logging
from models import Base
from rules import utcnow
from schemas import (
    CooldownStatusOut,
    CurrentWeekOut,
    EligibilityOut,
    WeekOut,
    WorkoutItemOut,
    WorkoutLogOut,
    WorkoutLogRequest,
)
from store import WorkoutLogStore
from telegram_utils import format_log_for_telegram, send_telegram_message

configure_logging(get_settings().log_level)
Base.metadata.create_all(bind=db_engine)

app = FastAPI(title="Pledge adherence engine")


def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_db(session_factory: sessionmaker = Depends(get_session_factory)):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def get_now() -> dt.datetime:
    return utcnow()


def build_engine(db: Session, settings: Settings) -> AdherenceEngine:
    return AdherenceEngine(
        WorkoutLogStore(db),
        cooldown=dt.timedelta(hours=settings.cooldown_hours),
        grace_allowance=settings.grace_week_allowance,
    )


def get_engine(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)) -> AdherenceEngine:
    return build_engine(db, settings)


def notify_workout_logged(user_id: str, now: dt.datetime, session_factory: sessionmaker, settings: Settings):
    db = session_factory()
    try:
        adherence = build_engine(db, settings)
        week = adherence.get_current_week_status(user_id, now)
        eligibility = adherence.get_eligibility_view(user_id, now)
    finally:
        db.close()
    send_telegram_message(format_log_for_telegram(user_id, week, eligibility), settings)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/api/workout-logs", status_code=status.HTTP_201_CREATED, response_model=WorkoutLogOut)
def create_workout_log(
    payload: WorkoutLogRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    adherence: AdherenceEngine = Depends(get_engine),
    now: dt.datetime = Depends(get_now),
    session_factory: sessionmaker = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
):
    try:
        row = adherence.request_workout_log(user_id, payload.workout_id, now)
    except CooldownActive as e:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "error": "Cooldown active",
                "hours_remaining": e.hours_remaining,
                "unlocks_at": e.unlocks_at.isoformat(),
            },
        )
    except NotSubscribed:
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"error": "Subscription is not active."})
    except UnknownWorkout as e:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": f"Unknown workout {e.workout_id}."})

    background_tasks.add_task(notify_workout_logged, user_id, now, session_factory, settings)
    return WorkoutLogOut(id=row.id, workout_id=row.workout_id, logged_at=now, week_number=row.week_number)


@app.get("/api/workout-logs/cooldown-status", response_model=CooldownStatusOut)
def cooldown_status(
    user_id: str = Depends(get_current_user_id),
    adherence: AdherenceEngine = Depends(get_engine),
    now: dt.datetime = Depends(get_now),
):
    window = adherence.get_cooldown_status(user_id, now)
    return CooldownStatusOut(
        cooldown_active=window.active,
        unlocks_at=window.unlocks_at if window.active else None,
        hours_remaining=window.hours_remaining,
    )


@app.get("/api/workouts/current-week", response_model=CurrentWeekOut)
def current_week_status(
    user_id: str = Depends(get_current_user_id),
    adherence: AdherenceEngine = Depends(get_engine),
    now: dt.datetime = Depends(get_now),
):
    try:
        view = adherence.get_current_week_status(user_id, now)
    except NotSubscribed:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "No active subscription found."})

    return CurrentWeekOut(
        week_number=view.week_number,
        variation=view.variation,
        cooldown_active=view.cooldown.active,
        hours_remaining=view.cooldown.hours_remaining,
        amount_paid=view.amount_paid,
        week_ends_at=view.week_ends_at,
        completed_count=view.completed_count,
        required=view.required,
        workouts=[WorkoutItemOut(**asdict(w)) for w in view.workouts],
    )


@app.get("/api/eligibility", response_model=EligibilityOut)
def eligibility_status(
    user_id: str = Depends(get_current_user_id),
    adherence: AdherenceEngine = Depends(get_engine),
    now: dt.datetime = Depends(get_now),
):
    try:
        view = adherence.get_eligibility_view(user_id, now)
    except NotSubscribed:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "No active subscription found."})

    state = view.eligibility
    if not state.refund_eligible:
        logger.info(f"User={user_id} lost refund eligibility in week {state.lost_in_week}")
    return EligibilityOut(
        refund_eligible=state.refund_eligible,
        grace_weeks_remaining=state.grace_weeks_remaining,
        grace_used=state.grace_used,
        current_week=view.current_week,
        program_status=view.program_status,
        weeks=[
            WeekOut(
                week_number=w.week_number,
                window_start=w.window_start,
                window_end=w.window_end,
                completed_count=w.completed_count,
                required=w.required,
                met_requirement=w.met_requirement,
                grace_used=w.grace_used,
                outcome=w.outcome.value if w.outcome else None,
            )
            for w in state.weeks
        ],
    )
