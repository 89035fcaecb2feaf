# phone_auth/core/config.py
import re
from datetime import timedelta
from functools import lru_cache
from typing import List, Optional, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DURATION_RE = re.compile(r'^\s*(\d+)\s*([smhd]?)\s*$')
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str) -> timedelta:
    """Parse "15m", "7d", "900" (seconds) into a timedelta."""
    match = _DURATION_RE.match(str(value).lower())
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _DURATION_UNITS[unit])


def parse_rate_limit(value: str) -> Tuple[int, int]:
    """Parse "<count>/<window>" (window in seconds or with a unit suffix)."""
    try:
        count, window = str(value).split("/", 1)
        return int(count), int(parse_duration(window).total_seconds())
    except ValueError:
        raise ValueError(f"Invalid rate limit: {value!r}. Use <count>/<window>, e.g. 3/600")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True)

    # Application Settings
    APP_NAME: str = "Phone Auth API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Storage backends
    STORAGE_BACKEND: str = "memory"  # memory | sql
    DATABASE_URL: str = "sqlite:///./phone_auth.db"
    REDIS_URL: Optional[str] = None
    CLEANUP_INTERVAL_SECONDS: int = Field(default=300, ge=0)  # 0 disables the sweep

    # Security Settings
    SECRET_KEY: str = Field(default="dev-only-secret-change-me-in-production", alias="JWT_SECRET_KEY")
    ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "phone-auth-api"
    JWT_AUDIENCE: str = "phone-auth-app"
    ACCESS_TOKEN_TTL: str = "15m"
    REFRESH_TOKEN_TTL: str = "7d"

    # OTP Settings
    OTP_LENGTH: int = Field(default=6, ge=4, le=10)
    OTP_EXPIRE_MINUTES: int = Field(default=5, ge=1)
    OTP_MAX_ATTEMPTS: int = Field(default=5, ge=1)
    OTP_ISSUE_RATE_LIMIT: str = "3/600"
    OTP_ADDRESS_RATE_LIMIT: str = "20/3600"

    # SMS Settings
    SMS_PROVIDER: str = "console"  # console | twilio
    SMS_SEND_TIMEOUT_SECONDS: int = 5
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_FROM_NUMBER: str = ""

    # CORS Settings
    ALLOWED_ORIGINS: str = "*"

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    def _split_csv(self, value: str) -> List[str]:
        if value is None:
            return []
        value = value.strip()
        if value == "":
            return []
        return [item.strip() for item in value.split(",")]

    @property
    def allowed_origins_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_ORIGINS)

    @property
    def access_token_ttl(self) -> timedelta:
        return parse_duration(self.ACCESS_TOKEN_TTL)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return parse_duration(self.REFRESH_TOKEN_TTL)

    @property
    def otp_ttl(self) -> timedelta:
        return timedelta(minutes=self.OTP_EXPIRE_MINUTES)

    @property
    def otp_issue_rate_limit(self) -> Tuple[int, int]:
        return parse_rate_limit(self.OTP_ISSUE_RATE_LIMIT)

    @property
    def otp_address_rate_limit(self) -> Tuple[int, int]:
        return parse_rate_limit(self.OTP_ADDRESS_RATE_LIMIT)


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings: Settings = get_settings()
