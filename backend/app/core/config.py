from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import Any, ClassVar
import json
from pathlib import Path
import os


class Settings(BaseSettings):
    API_V1_STR: str = "/api/v1"

    # Remote document store. Use an absolute path so running the app from
    # different directories always resolves the same DB file.
    BASE_DIR: ClassVar[Path] = Path(__file__).resolve().parents[2]
    SQLALCHEMY_DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'bookings.db'}"
    # When disabled every operation is served by the local mirror only.
    REMOTE_STORE_ENABLED: bool = True
    # Seconds before the connectivity probe reports the remote store offline
    CONNECTIVITY_PROBE_TIMEOUT: float = 1.5
    # Load demo clients/interpreters/rates into the local mirror at startup
    SEED_LOCAL_MIRROR: bool = False

    LOG_LEVEL: str = "INFO"

    # CORS origins
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Billing defaults used when system/settings or a client record is silent
    DEFAULT_CURRENCY: str = "GBP"
    DEFAULT_PAYMENT_TERMS_DAYS: int = 30
    INVOICE_PREFIX: str = "INV"
    GUEST_BOOKING_REF_PREFIX: str = "LL"

    # Fallback rates when no rate record matches (per hour)
    DEFAULT_CLIENT_RATE: float = 40.0
    DEFAULT_INTERPRETER_RATE: float = 25.0
    DEFAULT_MINIMUM_UNITS: float = 1.0

    model_config = SettingsConfigDict(
        extra="ignore",
        env_file=os.getenv("ENV_FILE", str(Path(__file__).resolve().parents[3] / ".env")),
        case_sensitive=True,
    )

    @field_validator("CORS_ORIGINS", mode="before")
    def split_origins(cls, v: Any) -> list[str]:
        """Parse comma-separated or JSON list of origins from environment."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return parsed
            except json.JSONDecodeError:
                pass
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("LOG_LEVEL", "INVOICE_PREFIX", "GUEST_BOOKING_REF_PREFIX", mode="before")
    def strip_whitespace(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v


settings = Settings()
