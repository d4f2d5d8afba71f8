# ticket_auth/core/config.py
import os
from pydantic_settings import BaseSettings
from pydantic import Field, model_validator
from pydantic_settings import SettingsConfigDict
from typing import Optional, List
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Application Settings
    APP_NAME: str = "Ticket Auth Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True
    API_PREFIX: str = "/api/v1/auth"

    # Server Settings
    HOST: str = "0.0.0.0"
    PORT: int = int(os.environ.get("PORT", 8000))

    # Database Settings
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./ticket_auth.db")

    # Cache Settings (empty -> in-process cache, development only)
    REDIS_URL: Optional[str] = os.environ.get("REDIS_URL", None)
    REDIS_SOCKET_TIMEOUT: float = 5.0

    # Token Settings
    JWT_SECRET: str = "change-me-access"
    JWT_REFRESH_SECRET: str = "change-me-refresh"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_SECONDS: int = 3600
    REFRESH_TOKEN_EXPIRE_SECONDS: int = 7 * 24 * 3600

    # OTP Settings
    OTP_LENGTH: int = 6
    OTP_TTL_SECONDS: int = 120
    OTP_MAX_REQUESTS: int = 4
    OTP_RATE_LIMIT_WINDOW_SECONDS: int = 24 * 3600
    OTP_DELIVERY_CHANNEL: str = "zalo"

    # Firebase Settings
    FIREBASE_PROJECT_ID: str = ""
    FIREBASE_SERVICE_ACCOUNT_PATH: str = ""
    FIREBASE_API_KEY: str = ""
    FIREBASE_TOKEN_VALIDATION_URL: str = "https://identitytoolkit.googleapis.com/v1/accounts:lookup"

    # Zalo OA Settings
    ZALO_APP_ID: str = ""
    ZALO_APP_SECRET: str = ""
    ZALO_REFRESH_TOKEN: str = ""
    ZALO_OTP_TEMPLATE_ID: str = "487517"
    ZALO_TEMPLATE_URL: str = "https://business.openapi.zalo.me/message/template"
    ZALO_TOKEN_URL: str = "https://oauth.zaloapp.com/v4/oa/access_token"

    # Twilio Settings
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""

    # Profile service
    PROFILE_SERVICE_URL: str = "http://localhost:3001/api/v1"

    # Upstream calls (identity, messaging, profile)
    PROVIDER_TIMEOUT_SECONDS: float = 10.0

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # CORS Settings
    ALLOWED_ORIGINS: str = os.environ.get("ALLOWED_ORIGINS", "*")

    @model_validator(mode="after")
    def check_token_secrets(self) -> "Settings":
        if self.JWT_SECRET == self.JWT_REFRESH_SECRET:
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must differ")
        if self.OTP_DELIVERY_CHANNEL not in ("zalo", "twilio"):
            raise ValueError("OTP_DELIVERY_CHANNEL must be 'zalo' or 'twilio'")
        return self

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

@lru_cache()
def get_settings() -> Settings:
    return Settings()

settings: Settings = get_settings()
