from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

PRODUCTION_ENVS = {"production", "prod"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"
    APP_NAME: str = "storefront-auth"
    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT_SECONDS: int = 10
    DB_TRANSIENT_RETRIES: int = 3
    DB_RETRY_BACKOFF_SECONDS: float = 0.5

    JWT_SECRET: str = ""
    JWT_TTL_HOURS: int = 24

    OTP_LENGTH: int = 6
    OTP_TTL_MINUTES: int = 5
    OTP_SMS_TEMPLATE: str = "Your verification code is {code}"
    OTP_DEV_MODE: bool = False

    SMS_PROVIDER: str = "dummy"  # dummy | http
    SMS_GATEWAY_URL: str = ""
    SMS_GATEWAY_API_KEY: str = ""
    SMS_SENDER_ID: str = "DRYFDS"
    SMS_TIMEOUT_SECONDS: float = 10.0

    AUTH_PROVIDER: str = "local"  # local | supabase
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    SUPABASE_TIMEOUT_SECONDS: float = 15.0

    REDIS_URL: str = ""
    OTP_RATE_LIMIT_WINDOW_SECONDS: int = 300
    # 0 disables the corresponding limit.
    OTP_SEND_RATE_LIMIT: int = 0
    OTP_VERIFY_RATE_LIMIT: int = 0
    # Only read X-Forwarded-For when a trusted proxy sets it.
    TRUST_FORWARDED_FOR: bool = False

    DIAGNOSTICS_ENABLED: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return str(self.APP_ENV or "").strip().lower() in PRODUCTION_ENVS


settings = Settings()
