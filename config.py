from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load .env before settings are read from the environment
load_dotenv()


class Settings(BaseSettings):
    database_url: str = Field(default="sqlite:///pledge.db", validation_alias="DATABASE_URL")
    auth_secret_key: str = Field(min_length=1, validation_alias="AUTH_SECRET_KEY")
    auth_algorithm: str = Field(default="HS256", validation_alias="AUTH_ALGORITHM")
    cooldown_hours: float = Field(default=18.0, validation_alias="COOLDOWN_HOURS")
    grace_week_allowance: int = Field(default=1, validation_alias="GRACE_WEEK_ALLOWANCE")
    telegram_bot_token: str = Field(default="", validation_alias="TELEGRAM_BOT_TOKEN")
    telegram_chat_id: str = Field(default="", validation_alias="TELEGRAM_CHAT_ID")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")


@lru_cache
def get_settings() -> Settings:
    return Settings()
