# ---------------------------------------------------------------------------
# config.py
#
# Application configuration.
#
# This module centralizes all environment-driven settings used by the API.
# Required values (database URL, JWT secret, WhatsApp verify token) have no
# defaults and are checked up front by `validate_env()`; everything else is
# read with a safe default appropriate for local development.
#
# Values that must be present at startup are read through functions at call
# time so that the optional `.env` overlay (loaded by the entrypoint) and test
# monkeypatching are both honoured.
# ---------------------------------------------------------------------------

from __future__ import annotations

import logging
import os
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Required variable -> human-readable purpose.
REQUIRED_ENV: dict[str, str] = {
    "DATABASE_URL": "PostgreSQL connection string",
    "JWT_SECRET": "Secret key for JWT token signing",
    "WHATSAPP_VERIFY_TOKEN": "Token for WhatsApp webhook verification",
}

DEFAULT_ALLOWED_ORIGINS = "http://localhost:3000"
DEFAULT_PORT = 5000


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable with a safe fallback."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_env_overlay(path: str = ".env") -> bool:
    """Load a local .env file on top of the process environment.

    Variables already set in the environment win. A missing file is not an
    error.
    """
    if not os.path.isfile(path):
        logger.info("No .env file found, using system env")
        return False
    load_dotenv(path, override=False)
    logger.info("Loaded environment overlay from %s", path)
    return True


def missing_env(environ: Optional[Mapping[str, str]] = None) -> list[str]:
    """Return `KEY (description)` for every required variable that is unset or empty."""
    env = os.environ if environ is None else environ
    return [
        f"{key} ({description})"
        for key, description in REQUIRED_ENV.items()
        if not (env.get(key) or "").strip()
    ]


def validate_env(environ: Optional[Mapping[str, str]] = None) -> None:
    """Fail with a single consolidated ConfigurationError if anything is missing."""
    missing = missing_env(environ)
    if missing:
        raise ConfigurationError(missing)
    logger.info("All required environment variables are set")


def jwt_secret() -> str:
    return os.getenv("JWT_SECRET", "")


def whatsapp_verify_token() -> str:
    return os.getenv("WHATSAPP_VERIFY_TOKEN", "")


def allowed_origins(raw: Optional[str] = None) -> list[str]:
    """Parse the CORS origin list, falling back to the local dev origin."""
    value = os.getenv("ALLOWED_ORIGINS", "") if raw is None else raw
    if not value.strip():
        logger.info("ALLOWED_ORIGINS not set, using default: %s", DEFAULT_ALLOWED_ORIGINS)
        value = DEFAULT_ALLOWED_ORIGINS
    return [origin.strip() for origin in value.split(",") if origin.strip()]


def listen_port() -> int:
    return _env_int("PORT", DEFAULT_PORT)


# Optional settings below are read at call time so a `.env` overlay loaded
# after import still applies.

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_JWT_ALGORITHM = "HS256"
DEFAULT_JWT_TTL_HOURS = 72
DEFAULT_MAX_BODY_BYTES = 1 * 1024 * 1024  # often also enforced at the reverse proxy
DEFAULT_RATE_LIMIT_RPM = 600


def log_level() -> str:
    """Level for the `zapmanejo` logger."""
    return os.getenv("LOG_LEVEL", "").strip() or DEFAULT_LOG_LEVEL


def jwt_algorithm() -> str:
    return os.getenv("JWT_ALGORITHM", "").strip() or DEFAULT_JWT_ALGORITHM


def jwt_ttl_hours() -> int:
    return _env_int("JWT_TTL_HOURS", DEFAULT_JWT_TTL_HOURS)


def max_body_bytes() -> int:
    return _env_int("MAX_BODY_BYTES", DEFAULT_MAX_BODY_BYTES)


def rate_limit_rpm() -> int:
    """Requests per minute allowed per client by the in-memory limiter."""
    return _env_int("RATE_LIMIT_RPM", DEFAULT_RATE_LIMIT_RPM)
