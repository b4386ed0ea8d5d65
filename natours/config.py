"""
Application settings loaded from environment variables.

All settings can be overridden with the ``NATOURS_`` prefix
(e.g. ``NATOURS_ENVIRONMENT=development``) or from a ``.env`` file.
List and dict settings are read as JSON.
"""

from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_DIR = Path(__file__).resolve().parent

DEFAULT_CSP_DIRECTIVES: Dict[str, List[str]] = {
    "default-src": ["'self'"],
    "connect-src": ["'self'", "https://api.mapbox.com", "https://events.mapbox.com"],
    "frame-src": ["https://js.stripe.com"],
    "script-src": ["'self'", "https://api.mapbox.com", "https://js.stripe.com/v3/"],
    "script-src-elem": ["'self'", "https://api.mapbox.com", "https://js.stripe.com/v3/"],
    "worker-src": ["'self'", "blob:"],
    "img-src": ["'self'", "data:", "blob:"],
    "style-src-elem": ["'self'", "data:", "https://fonts.googleapis.com", "https://api.mapbox.com"],
    "object-src": ["'none'"],
}

HPP_WHITELIST = [
    "duration",
    "ratingsQuantity",
    "ratingsAverage",
    "maxGroupSize",
    "difficulty",
    "price",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="NATOURS_",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = Field(default="Natours", description="Application name")
    environment: Literal["development", "production"] = Field(
        default="production",
        description="development enables access logs and detailed error responses",
    )
    log_level: str = Field(default="INFO")

    api_prefix: str = Field(default="/api", description="Prefix guarded by the rate limiter")
    webhook_path: str = Field(default="/webhook-checkout")

    body_limit: int = Field(default=10 * 1024, gt=0, description="Max request body in bytes")
    webhook_body_limit: int = Field(default=100 * 1024, gt=0, description="Max webhook body in bytes")
    compression_minimum_size: int = Field(default=1024, ge=0)

    rate_limit_max: int = Field(default=100, gt=0)
    rate_limit_window_seconds: int = Field(default=60 * 60, gt=0)
    rate_limit_storage_uri: str = Field(default="memory://")
    rate_limit_message: str = Field(
        default="Too many requests from this IP, please try again in an hour!"
    )
    trust_proxy: bool = Field(default=True, description="Honour X-Forwarded-For")

    csp_directives: Dict[str, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_CSP_DIRECTIVES.items()}
    )
    csp_dev_connect_src: List[str] = Field(
        default_factory=list,
        description="Extra connect-src entries (e.g. ws://localhost:39281/) used in development",
    )
    hpp_whitelist: List[str] = Field(default_factory=lambda: list(HPP_WHITELIST))

    data_dir: Path = Field(default=PACKAGE_DIR / "data")
    public_dir: Path = Field(default=PACKAGE_DIR / "public")
    templates_dir: Path = Field(default=PACKAGE_DIR / "templates")

    stripe_secret_key: str = Field(default="")
    stripe_publishable_key: str = Field(default="")
    stripe_webhook_secret: str = Field(default="")
    stripe_currency: str = Field(default="usd")
    checkout_base_url: str = Field(default="https://checkout.stripe.com/pay")

    mapbox_access_token: str = Field(default="")
    mapbox_style: str = Field(default="mapbox://styles/mapbox/light-v11")

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    return Settings()
