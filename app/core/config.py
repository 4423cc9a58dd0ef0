"""Configuration module for the CRM application."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

from dotenv import load_dotenv

from app.core.exceptions import ConfigurationError

load_dotenv()


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _optional(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclass(frozen=True)
class Config:
    """Runtime configuration with validation."""

    APP_NAME: str
    APP_VERSION: str
    ENV: str
    DEBUG: bool
    DATABASE_URL: str
    JWT_SECRET: str
    JWT_ACCESS_TTL_MINUTES: int
    JWT_REFRESH_TTL_DAYS: int
    JWT_PERMISSIONS_VERSION: int
    API_PREFIX: str
    LOG_LEVEL: str
    LOG_FILE: str
    MAILGUN_API_KEY: str | None
    MAILGUN_DOMAIN: str | None
    MAILGUN_REGION: str | None
    MAILGUN_FROM_EMAIL: str | None
    MAILGUN_DEFAULT_SENDER_NAME: str | None
    MAILGUN_WEBHOOK_SIGNING_KEY: str | None
    MAILGUN_TIMEOUT_SECONDS: int
    SECURITY_EVENT_RETENTION_DAYS: int

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"


def _build_config(env: str | None = None) -> Config:
    resolved_env = (env or os.getenv("ENV", "development")).strip().lower()
    debug = _as_bool(os.getenv("DEBUG"), default=(resolved_env != "production"))
    region = _optional("MAILGUN_REGION")

    config = Config(
        APP_NAME="LeadHub CRM",
        APP_VERSION=os.getenv("APP_VERSION", "1.0.0"),
        ENV=resolved_env,
        DEBUG=debug if resolved_env != "production" else False,
        DATABASE_URL=os.getenv("DATABASE_URL", "sqlite:///./leadhub.db"),
        JWT_SECRET=os.getenv("JWT_SECRET", "change_me_jwt_secret"),
        JWT_ACCESS_TTL_MINUTES=int(os.getenv("JWT_ACCESS_TTL_MINUTES", "15")),
        JWT_REFRESH_TTL_DAYS=int(os.getenv("JWT_REFRESH_TTL_DAYS", "14")),
        JWT_PERMISSIONS_VERSION=int(os.getenv("JWT_PERMISSIONS_VERSION", "1")),
        API_PREFIX=os.getenv("API_PREFIX", "/api/v1"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        LOG_FILE=os.getenv("LOG_FILE", ""),
        MAILGUN_API_KEY=_optional("MAILGUN_API_KEY"),
        MAILGUN_DOMAIN=_optional("MAILGUN_DOMAIN"),
        MAILGUN_REGION=region.lower() if region else None,
        MAILGUN_FROM_EMAIL=_optional("MAILGUN_FROM_EMAIL"),
        MAILGUN_DEFAULT_SENDER_NAME=_optional("MAILGUN_DEFAULT_SENDER_NAME"),
        MAILGUN_WEBHOOK_SIGNING_KEY=_optional("MAILGUN_WEBHOOK_SIGNING_KEY"),
        MAILGUN_TIMEOUT_SECONDS=int(os.getenv("MAILGUN_TIMEOUT_SECONDS", "30")),
        SECURITY_EVENT_RETENTION_DAYS=int(os.getenv("SECURITY_EVENT_RETENTION_DAYS", "90")),
    )
    _validate_config(config)
    return config


def _validate_database_url(database_url: str) -> None:
    parsed = urlparse(database_url)
    if parsed.scheme not in {"sqlite", "postgresql", "postgresql+psycopg2"}:
        raise ConfigurationError(
            "DATABASE_URL must use sqlite:// or postgresql:// style URL."
        )
    if parsed.scheme.startswith("postgresql") and not parsed.hostname:
        raise ConfigurationError("PostgreSQL DATABASE_URL is missing hostname.")


def _validate_config(config: Config) -> None:
    _validate_database_url(config.DATABASE_URL)

    if config.JWT_ACCESS_TTL_MINUTES < 1:
        raise ConfigurationError("JWT_ACCESS_TTL_MINUTES must be >= 1.")
    if config.JWT_REFRESH_TTL_DAYS < 1:
        raise ConfigurationError("JWT_REFRESH_TTL_DAYS must be >= 1.")
    if config.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigurationError("LOG_LEVEL must be one of DEBUG/INFO/WARNING/ERROR/CRITICAL.")
    if config.MAILGUN_REGION is not None and config.MAILGUN_REGION not in {"us", "eu"}:
        raise ConfigurationError("MAILGUN_REGION must be 'us' or 'eu'.")
    if config.MAILGUN_TIMEOUT_SECONDS < 1:
        raise ConfigurationError("MAILGUN_TIMEOUT_SECONDS must be >= 1.")
    if config.SECURITY_EVENT_RETENTION_DAYS < 1:
        raise ConfigurationError("SECURITY_EVENT_RETENTION_DAYS must be >= 1.")
    if config.is_production and "change_me" in config.JWT_SECRET.lower():
        raise ConfigurationError("Production JWT_SECRET uses placeholder value.")


@lru_cache(maxsize=8)
def get_config(env: str | None = None) -> Config:
    """Get validated configuration for the requested environment."""
    return _build_config(env)
