"""Application settings loaded from environment variables and .env."""

from typing import List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./data/forms.db"

    # Bearer tokens
    JWT_SECRET: str = "change-this-in-production"
    JWT_EXPIRES_HOURS: int = 24

    # Server-side sessions
    SESSION_COOKIE_NAME: str = "form_session"
    SESSION_MAX_AGE_HOURS: int = 24

    # Bootstrap account, created on startup when missing
    ADMIN_USERNAME: str = "Admin"
    ADMIN_PASSWORD: str = "change-me"

    # Outbound mail; an empty host disables sending
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    MAIL_FROM: str = "forms@localhost"
    MAIL_TO: str = "forms@localhost"
    MAIL_TIMEOUT_SECONDS: int = 15

    CORS_ORIGINS: str = "http://localhost:5173"
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only in production."""
        return self.ENV == "production"

    @property
    def smtp_enabled(self) -> bool:
        return bool(self.SMTP_HOST)


settings = Settings()
