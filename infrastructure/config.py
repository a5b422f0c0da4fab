"""
Application settings (Pydantic Settings).
"""
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

_env_path = Path(__file__).resolve().parent.parent / ".env"

SNAP_SANDBOX_URL = "https://app.sandbox.midtrans.com/snap/v1/transactions"
SNAP_PRODUCTION_URL = "https://app.midtrans.com/snap/v1/transactions"


class Settings(BaseSettings):
    # Midtrans: MIDTRANS_SERVER_KEY and MIDTRANS_CLIENT_KEY in .env
    midtrans_server_key: str = ""
    midtrans_client_key: str = ""
    midtrans_is_production: bool = False
    midtrans_timeout_seconds: float = 30.0

    site_url: str = "http://localhost:3000"

    # Access tokens are issued by the auth provider and only verified here
    jwt_secret: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"
    access_token_expire_minutes: int = 30

    batch_chunk_size: int = 10
    display_timezone: str = "UTC"
    log_level: str = "INFO"

    class Config:
        env_file = _env_path
        extra = "ignore"

    @field_validator("midtrans_server_key", "midtrans_client_key", mode="after")
    @classmethod
    def strip_keys(cls, v: str) -> str:
        return (v or "").strip()

    @property
    def snap_url(self) -> str:
        return SNAP_PRODUCTION_URL if self.midtrans_is_production else SNAP_SANDBOX_URL

    @property
    def finish_url(self) -> str:
        return f"{self.site_url.rstrip('/')}/client-bookings"


@lru_cache
def get_settings() -> Settings:
    return Settings()
