from typing import Optional

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./linked.db"
    REDIS_URL: Optional[str] = None
    ENVIRONMENT: str = "development"

    SESSION_SECRET: str = "change-me"
    SESSION_COOKIE_NAME: str = "user_session"
    SESSION_MAX_AGE: int = 86400

    PIN_HASH_ROUNDS: int = 10
    MAX_FAILED_PIN_ATTEMPTS: int = 3

    GEO_LOOKUP_URL: str = "http://ip-api.com/json"
    GEO_LOOKUP_TIMEOUT: float = 2.0

    METADATA_USER_AGENT: str = "Mozilla/5.0 (compatible; LinkedBot/1.0; +https://linked.app)"
    METADATA_TIMEOUT: float = 10.0

    RATE_LIMIT_REQUESTS: int = 20
    RATE_LIMIT_WINDOW: int = 60

    class Config:
        env_file = ".env"

settings = Settings()
