from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./reservations.db"
    LOG_LEVEL: str = "INFO"

    # Invite links. The secret keys the token hash; rotating it invalidates every outstanding link.
    INVITE_TOKEN_SECRET: str | None = None
    INVITE_DEFAULT_EXPIRY_DAYS: int = 7
    INVITE_DEFAULT_FORM_KEY: str = "gesellschaften"
    PUBLIC_BASE_URL: str = "http://localhost:3000"

    # Staff auth
    JWT_SECRET_KEY: str | None = None
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days

    # Mail
    RESEND_API_KEY: str | None = None
    RESEND_FROM_EMAIL: str = "Reservierungen <no-reply@example.com>"
    ADMIN_NOTIFICATION_EMAILS: str = ""

    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_MAX: int = 10

    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def admin_notification_recipients(self) -> list[str]:
        return [e.strip() for e in self.ADMIN_NOTIFICATION_EMAILS.split(",") if e.strip()]

@lru_cache
def get_settings():
    return Settings()
