# ---------------------------------------------------------------------------
# main.py
#
# FastAPI application entrypoint.
#
# Startup runs strictly in order, each step gated on the previous one:
#   .env overlay (optional) -> required env validation -> pooled connection
#   (ping, migrate, seed) -> FastAPI app + middleware + CORS -> routes ->
#   uvicorn listener on 0.0.0.0:PORT
#
# Stages below `run()` raise StartupError; `run()` is the only place that
# logs the failure and exits the process.
# ---------------------------------------------------------------------------

from __future__ import annotations

import logging
import os
import sys
from typing import Mapping, Optional, Sequence

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import config, routers
from .db import DEFAULT_POOL_POLICY, Database, PoolPolicy, connect
from .errors import StartupError
from .logging_utils import setup_logging
from .middleware import BodySizeLimitMiddleware, RateLimitMiddleware, RequestLoggingMiddleware

logger = logging.getLogger(__name__)

CORS_ALLOW_HEADERS = ["Origin", "Content-Type", "Accept", "Authorization"]
CORS_ALLOW_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]


def create_app(database: Database, allowed_origins: Optional[Sequence[str]] = None) -> FastAPI:
    """Build the HTTP application around an already-connected Database."""
    app = FastAPI(title="ZapManejo", version="1.0", openapi_url="/api/openapi.json", docs_url="/api/docs")
    app.state.database = database

    # Request-level safety and observability; limits come from the environment
    # as it stands once the .env overlay has been applied.
    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=config.max_body_bytes())
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RateLimitMiddleware, limit_per_minute=config.rate_limit_rpm())

    # Added last so it wraps everything (preflight never hits the limiter).
    origins = config.allowed_origins() if allowed_origins is None else list(allowed_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
    )

    routers.setup(app)
    return app


def bootstrap(
    environ: Optional[Mapping[str, str]] = None,
    env_file: Optional[str] = ".env",
    policy: PoolPolicy = DEFAULT_POOL_POLICY,
) -> Database:
    """Overlay, validate, connect (which migrates and seeds).

    Pass `env_file=None` when the caller has already applied the overlay.
    """
    if env_file is not None:
        config.load_env_overlay(env_file)
    env = os.environ if environ is None else environ
    config.validate_env(env)
    return connect(env["DATABASE_URL"], policy)


def run() -> None:
    # The overlay may set LOG_LEVEL, so logging is configured once before it
    # (to report the overlay itself) and again after it.
    setup_logging(config.log_level())
    if config.load_env_overlay():
        setup_logging(config.log_level())

    try:
        database = bootstrap(env_file=None)
    except StartupError as e:
        logger.critical("FATAL: %s", e)
        sys.exit(1)

    app = create_app(database)

    port = config.listen_port()
    logger.info("ZapManejo backend running on :%d", port)
    uvicorn.run(app, host="0.0.0.0", port=port, log_config=None)


if __name__ == "__main__":
    run()
