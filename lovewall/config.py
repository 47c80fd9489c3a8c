"""Configuration helpers for the Love Wall application."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Type

_BASE_DIR = Path(__file__).resolve().parent.parent


def _coerce_positive_int(
    raw_value: str | None,
    *,
    fallback: int,
    minimum: int = 1,
    maximum: int | None = None,
) -> int:
    """Best-effort conversion of an environment value into a bounded integer."""

    if raw_value is None:
        return fallback

    try:
        parsed = int(raw_value)
    except (TypeError, ValueError):
        return fallback

    if parsed < minimum:
        return minimum

    if maximum is not None and parsed > maximum:
        return maximum

    return parsed


def _as_bool(raw_value: str | None, *, default: bool) -> bool:
    if raw_value is None or raw_value.strip() == "":
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _resolve_database_uri(
    env_name: str = "DATABASE_URL", *, default: str | None = None
) -> str:
    url = os.getenv(env_name)
    if not url:
        if default is not None:
            return default
        return f"sqlite:///{_BASE_DIR / 'lovewall.db'}"

    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)

    scheme, sep, remainder = url.partition("://")
    if scheme == "postgresql" and sep:
        url = f"postgresql+psycopg://{remainder}"

    return url


def _build_engine_options(uri: str) -> dict[str, Any]:
    options: dict[str, Any] = {"pool_pre_ping": True}
    if not uri.startswith("sqlite"):
        options["pool_recycle"] = int(os.getenv("SQLALCHEMY_POOL_RECYCLE", 300))
        options["pool_timeout"] = int(os.getenv("SQLALCHEMY_POOL_TIMEOUT", 30))
    return options


class BaseConfig:
    """Default configuration shared by all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SITE_URL = os.getenv("SITE_URL", "http://localhost:5000")
    SQLALCHEMY_DATABASE_URI = _resolve_database_uri()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = _build_engine_options(SQLALCHEMY_DATABASE_URI)
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", 20 * 1024 * 1024))  # 20MB
    MAX_PHOTO_UPLOAD_BYTES = int(
        os.getenv("MAX_PHOTO_UPLOAD_BYTES", 10 * 1024 * 1024)
    )  # 10MB
    WTF_CSRF_ENABLED = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    ALLOWED_EXTENSIONS = tuple(
        ext.strip().lower()
        for ext in os.getenv("ALLOWED_EXTENSIONS", "jpg,jpeg,png,webp,heic,heif").split(",")
        if ext.strip()
    )

    ADMIN_USERNAME = os.getenv("ADMIN_USERNAME")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

    # Record store / public API
    API_DEFAULT_LIMIT = _coerce_positive_int(os.getenv("API_DEFAULT_LIMIT"), fallback=100)
    API_MAX_LIMIT = _coerce_positive_int(
        os.getenv("API_MAX_LIMIT"), fallback=1000, minimum=1
    )
    WALL_FETCH_LIMIT = _coerce_positive_int(os.getenv("WALL_FETCH_LIMIT"), fallback=1000)
    # 0 leaves the view uncapped.
    CAROUSEL_FETCH_LIMIT = _coerce_positive_int(
        os.getenv("CAROUSEL_FETCH_LIMIT"), fallback=0, minimum=0
    )
    ALBUM_FETCH_LIMIT = _coerce_positive_int(
        os.getenv("ALBUM_FETCH_LIMIT"), fallback=0, minimum=0
    )
    SLUG_MAX_ATTEMPTS = _coerce_positive_int(
        os.getenv("SLUG_MAX_ATTEMPTS"), fallback=10, maximum=50
    )

    # Per-view staleness windows; 0 disables a view's cache.
    WALL_CACHE_SECONDS = _coerce_positive_int(
        os.getenv("WALL_CACHE_SECONDS"), fallback=120, minimum=0
    )
    WALL_POLL_SECONDS = _coerce_positive_int(os.getenv("WALL_POLL_SECONDS"), fallback=60)
    CAROUSEL_CACHE_SECONDS = _coerce_positive_int(
        os.getenv("CAROUSEL_CACHE_SECONDS"), fallback=30, minimum=0
    )
    CAROUSEL_POLL_SECONDS = _coerce_positive_int(
        os.getenv("CAROUSEL_POLL_SECONDS"), fallback=30
    )
    CAROUSEL_INTERVAL_MILLISECONDS = _coerce_positive_int(
        os.getenv("CAROUSEL_INTERVAL_MILLISECONDS"), fallback=4500, minimum=2000
    )
    ALBUM_CACHE_SECONDS = _coerce_positive_int(
        os.getenv("ALBUM_CACHE_SECONDS"), fallback=30, minimum=0
    )
    ALBUM_POLL_SECONDS = _coerce_positive_int(os.getenv("ALBUM_POLL_SECONDS"), fallback=45)
    ALBUM_PAGE_SIZE = _coerce_positive_int(os.getenv("ALBUM_PAGE_SIZE"), fallback=6)

    # Payment
    REQUIRE_PAYMENT = _as_bool(os.getenv("REQUIRE_PAYMENT"), default=True)
    SUBMISSION_PRICE_CENTS = _coerce_positive_int(
        os.getenv("SUBMISSION_PRICE_CENTS"), fallback=100, minimum=100
    )
    SUBMISSION_CURRENCY = os.getenv("SUBMISSION_CURRENCY", "usd").lower()
    PAYMENT_FLAG_SECONDS = _coerce_positive_int(
        os.getenv("PAYMENT_FLAG_SECONDS"), fallback=3600
    )
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_API_BASE = os.getenv("STRIPE_API_BASE", "https://api.stripe.com/v1")
    STRIPE_TIMEOUT = _coerce_positive_int(os.getenv("STRIPE_TIMEOUT"), fallback=15)

    # Image hosting
    AWS_REGION = os.getenv("AWS_REGION")
    S3_BUCKET_NAME = os.getenv("S3_BUCKET_NAME")
    S3_BUCKET_PREFIX = os.getenv("S3_BUCKET_PREFIX", "")
    S3_UPLOAD_FOLDER = os.getenv("S3_UPLOAD_FOLDER", "wedding-photos")
    S3_PUBLIC_BASE_URL = os.getenv("S3_PUBLIC_BASE_URL") or os.getenv(
        "S3_PUBLIC_DOMAIN"
    )
    S3_USE_OAC = os.getenv("S3_USE_OAC")
    S3_OBJECT_ACL = os.getenv("S3_OBJECT_ACL")
    S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL")
    IMAGE_MAX_WIDTH = _coerce_positive_int(os.getenv("IMAGE_MAX_WIDTH"), fallback=2048)
    THUMBNAIL_SIZE = _coerce_positive_int(os.getenv("THUMBNAIL_SIZE"), fallback=400)

    # Email
    MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.sendgrid.net")
    MAIL_PORT = _coerce_positive_int(os.getenv("MAIL_PORT"), fallback=587)
    MAIL_USERNAME = os.getenv("MAIL_USERNAME", "apikey")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD") or os.getenv("SENDGRID_API_KEY")
    MAIL_USE_TLS = _as_bool(os.getenv("MAIL_USE_TLS"), default=True)
    MAIL_FROM = os.getenv("MAIL_FROM", "noreply@lovewall.example")
    MAIL_TIMEOUT = _coerce_positive_int(os.getenv("MAIL_TIMEOUT"), fallback=10)

    NTFY_TOPIC = os.getenv("NTFY_TOPIC")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    SESSION_COOKIE_SECURE = False


class TestingConfig(BaseConfig):
    TESTING = True
    SESSION_COOKIE_SECURE = False
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = _resolve_database_uri(
        "DATABASE_URL_TEST", default="sqlite:///:memory:"
    )
    SQLALCHEMY_ENGINE_OPTIONS = _build_engine_options(SQLALCHEMY_DATABASE_URI)
    REQUIRE_PAYMENT = False
    NTFY_TOPIC = None
    MAIL_SERVER = None
    STRIPE_SECRET_KEY = None


class ProductionConfig(BaseConfig):
    SESSION_COOKIE_SECURE = True


_CONFIG_MAP: dict[str | None, Type[BaseConfig]] = {
    None: BaseConfig,
    "default": BaseConfig,
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config(name: str | None) -> Type[BaseConfig]:
    """Pick a configuration object based on the provided name."""
    key = (name or os.getenv("FLASK_ENV") or "default").lower()
    return _CONFIG_MAP.get(key, BaseConfig)
