import os
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

_DEV_ORIGINS = ["http://localhost:5173", "http://localhost:5174", "http://localhost:3000"]


class Settings:
    """Centralised application configuration sourced from environment variables."""

    def __init__(self) -> None:
        load_dotenv()
        self.environment = os.getenv("APP_ENV", "development").strip().lower()
        self.database_path = Path(os.getenv("DATABASE_PATH", "data/shophub.db")).resolve()
        self.jwt_secret = os.getenv("JWT_SECRET", "change-me")
        self.jwt_algorithm = os.getenv("JWT_ALGORITHM", "HS256")
        self.jwt_expires_days = self._get_int("JWT_EXPIRES_DAYS", default=7)
        self.session_cookie_name = os.getenv("SESSION_COOKIE_NAME", "token")
        self.verification_token_hours = self._get_int("VERIFICATION_TOKEN_HOURS", default=24)
        self.reset_token_minutes = self._get_int("RESET_TOKEN_MINUTES", default=60)
        self.bcrypt_rounds = self._get_int("BCRYPT_ROUNDS", default=12)
        self.frontend_base_url = os.getenv("FRONTEND_BASE_URL", "http://localhost:5174")
        self.smtp_host = os.getenv("SMTP_HOST", "")
        self.smtp_port = self._get_int("SMTP_PORT", default=587)
        self.smtp_username = os.getenv("SMTP_USERNAME", "")
        self.smtp_password = os.getenv("SMTP_PASSWORD", "")
        self.smtp_from_email = os.getenv("SMTP_FROM_EMAIL", "")
        self.email_from_name = os.getenv("EMAIL_FROM_NAME", "ShopHub")
        self.admin_default_email = os.getenv("ADMIN_EMAIL")
        self.admin_default_password = os.getenv("ADMIN_PASSWORD")
        origins = os.getenv("CORS_ALLOW_ORIGINS")
        if origins:
            self.cors_allow_origins = [item.strip() for item in origins.split(",") if item.strip()]
        else:
            self.cors_allow_origins = self._default_origins(self.frontend_base_url)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def verification_token_ttl(self) -> timedelta:
        return timedelta(hours=self.verification_token_hours)

    @property
    def reset_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.reset_token_minutes)

    @staticmethod
    def _default_origins(frontend_base_url: str) -> List[str]:
        origins = list(_DEV_ORIGINS)
        frontend = frontend_base_url.rstrip("/")
        if frontend not in origins:
            origins.append(frontend)
        return origins

    @staticmethod
    def _get_int(key: str, default: Optional[int] = None) -> int:
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise RuntimeError(f"Missing required environment variable: {key}")
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise RuntimeError(f"Environment variable {key} must be an integer") from exc
