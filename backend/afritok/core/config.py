import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from afritok.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEV_SECRET_KEY = "afritok-dev-secret-change-me"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    try:
        return max(minimum, int(os.getenv(name, str(default)).strip()))
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    app_env: str
    secret_key: str
    database_url: str
    otp_ttl_minutes: int = 10
    otp_max_attempts: int = 5
    otp_store_backend: str = "memory"
    otp_dev_show_code: bool = False
    otp_request_limit: int = 5
    otp_request_window_minutes: int = 15
    otp_verify_limit: int = 10
    otp_verify_window_minutes: int = 15
    otp_sweep_enabled: bool = True
    otp_sweep_interval_seconds: int = 300
    session_ttl_days: int = 30
    sms_backend: str = "log"
    sms_http_url: str | None = None
    sms_http_token: str | None = None
    sms_sender_name: str | None = None

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def show_dev_code(self) -> bool:
        return self.otp_dev_show_code and not self.is_production

    @classmethod
    def from_env(cls) -> "Settings":
        app_env = os.getenv("APP_ENV", "development").strip().lower()
        secret_key = os.getenv("SECRET_KEY", "").strip()
        if not secret_key:
            if app_env == "production":
                raise ConfigurationError("SECRET_KEY is not set")
            logger.warning("SECRET_KEY is not set, using the development default")
            secret_key = DEV_SECRET_KEY

        store_backend = os.getenv("OTP_STORE_BACKEND", "memory").strip().lower()
        if store_backend not in {"memory", "database"}:
            raise ConfigurationError(f"Unknown OTP_STORE_BACKEND: {store_backend}")
        sms_backend = os.getenv("SMS_BACKEND", "log").strip().lower()
        if sms_backend not in {"log", "http"}:
            raise ConfigurationError(f"Unknown SMS_BACKEND: {sms_backend}")
        sms_http_url = os.getenv("SMS_HTTP_URL") or None
        if sms_backend == "http" and not sms_http_url:
            raise ConfigurationError("SMS_HTTP_URL must be set when SMS_BACKEND=http")

        return cls(
            app_env=app_env,
            secret_key=secret_key,
            database_url=os.getenv("DATABASE_URL", "sqlite:///./afritok.db"),
            otp_ttl_minutes=_env_int("OTP_TTL_MINUTES", 10, minimum=1),
            otp_max_attempts=_env_int("OTP_MAX_ATTEMPTS", 5, minimum=1),
            otp_store_backend=store_backend,
            otp_dev_show_code=_env_bool("OTP_DEV_SHOW_CODE", False),
            otp_request_limit=_env_int("OTP_REQUEST_LIMIT", 5, minimum=1),
            otp_request_window_minutes=_env_int("OTP_REQUEST_WINDOW_MINUTES", 15, minimum=1),
            otp_verify_limit=_env_int("OTP_VERIFY_LIMIT", 10, minimum=1),
            otp_verify_window_minutes=_env_int("OTP_VERIFY_WINDOW_MINUTES", 15, minimum=1),
            otp_sweep_enabled=_env_bool("OTP_SWEEP_ENABLED", True),
            otp_sweep_interval_seconds=_env_int("OTP_SWEEP_INTERVAL_SECONDS", 300, minimum=30),
            session_ttl_days=_env_int("SESSION_TTL_DAYS", 30, minimum=1),
            sms_backend=sms_backend,
            sms_http_url=sms_http_url,
            sms_http_token=os.getenv("SMS_HTTP_TOKEN") or None,
            sms_sender_name=os.getenv("SMS_SENDER_NAME") or None,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
