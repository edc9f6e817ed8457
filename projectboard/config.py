from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    database_url: str
    jwt_secret: str
    jwt_expires_hours: int
    otp_ttl_minutes: int
    bcrypt_rounds: int
    # Echo generated OTPs in API responses (local development and tests only)
    expose_otp: bool
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_pass: str
    smtp_starttls: bool
    from_email: str
    log_level: str
    host: str
    port: int

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./projectboard.db"),
            jwt_secret=os.getenv("JWT_SECRET", "change-me"),
            jwt_expires_hours=int(os.getenv("JWT_EXPIRES_HOURS", "12")),
            otp_ttl_minutes=int(os.getenv("OTP_TTL_MINUTES", "10")),
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", "10")),
            expose_otp=_env_bool("EXPOSE_OTP"),
            smtp_host=os.getenv("SMTP_HOST", ""),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_user=os.getenv("SMTP_USER", ""),
            smtp_pass=os.getenv("SMTP_PASS", ""),
            smtp_starttls=_env_bool("SMTP_STARTTLS", True),
            from_email=os.getenv("FROM_EMAIL", "no-reply@projectboard.local"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
        )


settings = Settings.from_env()
