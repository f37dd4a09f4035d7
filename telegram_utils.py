import requests
from loguru import logger

from config import Settings
from engine import EligibilityView, WeekStatusView


def send_telegram_message(text: str, settings: Settings) -> bool:
    if not settings.telegram_bot_token or not settings.telegram_chat_id:
        logger.debug("Telegram bot token or chat ID not set, skipping alert")
        return False
    url = f"https://api.telegram.org/bot{settings.telegram_bot_token}/sendMessage"
    payload = {
        "chat_id": settings.telegram_chat_id,
        "text": text,
        "parse_mode": "Markdown",
    }
    try:
        r = requests.post(url, data=payload, timeout=10)
        r.raise_for_status()
    except requests.RequestException as e:
        logger.warning(f"Telegram send error: {e}")
        return False
    return True


def format_log_for_telegram(user_id: str, week: WeekStatusView, status: EligibilityView) -> str:
    msg = f"*Workout Logged* for `{user_id}`\n"
    msg += f"*Week {week.week_number}:* {week.completed_count}/{week.required} workouts\n"
    state = status.eligibility
    if state.refund_eligible:
        grace = state.grace_weeks_remaining
        msg += f"_Refund eligible_, {grace} grace week{'' if grace == 1 else 's'} left\n"
    else:
        msg += f"*Refund Eligibility Lost* in week {state.lost_in_week}\n"
    return msg
