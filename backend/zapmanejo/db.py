# ---------------------------------------------------------------------------
# db.py
#
# SQLAlchemy database setup (Connection Manager).
#
# This module defines:
# - `Base`: the declarative base class for ORM models
# - `PoolPolicy`: bounds on open/idle connections and their lifetimes
# - `Database`: the Engine (connection pool and DB driver) plus the session
#   factory used for per-request sessions
# - `connect()`: opens the pool, verifies it with a round trip, then runs the
#   schema migrator before handing the live handle back to the entrypoint
#
# There is exactly one Database per process. It is created during startup and
# injected into the FastAPI app (`app.state.database`); nothing looks it up
# through a module global.
# ---------------------------------------------------------------------------

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from sqlalchemy import create_engine, event, exc, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .errors import STAGE_OPEN, STAGE_PING, STAGE_POOL, StartupError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base class for all ORM models."""

    pass


@dataclass(frozen=True)
class PoolPolicy:
    """Connection pool bounds.

    SQLAlchemy's QueuePool keeps `pool_size` connections around and allows
    `max_overflow` more under load, so max_idle maps to the former and
    max_open - max_idle to the latter. Lifetimes are in seconds.
    """

    max_idle: int = 10
    max_open: int = 20
    max_lifetime: float = 3600.0
    max_idle_time: float = 600.0

    def __post_init__(self) -> None:
        if self.max_idle < 1 or self.max_open < 1:
            raise ValueError("pool sizes must be positive")
        if self.max_idle > self.max_open:
            raise ValueError(
                f"max_idle ({self.max_idle}) must not exceed max_open ({self.max_open})"
            )
        if self.max_lifetime <= 0 or self.max_idle_time <= 0:
            raise ValueError("pool lifetimes must be positive")

    def engine_kwargs(self) -> dict:
        return {
            "pool_size": self.max_idle,
            "max_overflow": self.max_open - self.max_idle,
            "pool_recycle": int(self.max_lifetime),
        }


# Managed Postgres (basic tier) allows 22 connections; 2 are left for admin
# and monitoring sessions.
DEFAULT_POOL_POLICY = PoolPolicy(max_idle=10, max_open=20, max_lifetime=3600.0, max_idle_time=600.0)


def _install_idle_timeout(engine: Engine, max_idle_time: float) -> None:
    """Discard pooled connections that sat idle longer than `max_idle_time`."""

    @event.listens_for(engine, "checkin")
    def _stamp_checkin(dbapi_connection, connection_record):
        connection_record.info["checked_in_at"] = time.monotonic()

    @event.listens_for(engine, "checkout")
    def _check_idle(dbapi_connection, connection_record, connection_proxy):
        checked_in_at = connection_record.info.get("checked_in_at")
        if checked_in_at is not None and time.monotonic() - checked_in_at > max_idle_time:
            # The pool invalidates this record and retries with a fresh connection.
            connection_record.info.pop("checked_in_at", None)
            raise exc.DisconnectionError("connection exceeded max idle time")


def create_db_engine(url: str, policy: PoolPolicy = DEFAULT_POOL_POLICY) -> Engine:
    # pool_pre_ping proactively checks connections to avoid stale sockets.
    return create_engine(url, pool_pre_ping=True, future=True, **policy.engine_kwargs())


class Database:
    """The process-wide pooled database handle."""

    def __init__(self, engine: Engine, policy: PoolPolicy = DEFAULT_POOL_POLICY):
        self.engine = engine
        self.policy = policy
        # Disable autocommit/autoflush to make writes explicit and predictable.
        self.SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    def session(self) -> Session:
        return self.SessionLocal()

    def ping(self) -> None:
        """Round-trip a trivial query; raises on an unreachable backend."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def dispose(self) -> None:
        self.engine.dispose()

    def __repr__(self) -> str:
        return f"Database(url={self.engine.url.render_as_string(hide_password=True)!r})"


def connect(url: str, policy: PoolPolicy = DEFAULT_POOL_POLICY, *, migrate: bool = True) -> Database:
    """Open the pool, verify it, and (by default) migrate and seed the schema.

    Raises StartupError tagged `open`, `pool`, `ping` (or `migrate`, from the
    migrator) on failure.
    """
    try:
        engine = create_db_engine(url, policy)
    except (exc.ArgumentError, ImportError, TypeError, ValueError) as e:
        # ValueError: URL parsing (e.g. a non-numeric port).
        raise StartupError(STAGE_OPEN, f"Failed to connect to database: {e}") from e

    # Pool stage: attaching the idle-time listeners to the engine's pool.
    try:
        _install_idle_timeout(engine, policy.max_idle_time)
    except exc.SQLAlchemyError as e:
        engine.dispose()
        raise StartupError(STAGE_POOL, f"Failed to get database instance: {e}") from e

    database = Database(engine, policy)

    # Drivers connect lazily; a successful create_engine() proves nothing.
    try:
        database.ping()
    except exc.SQLAlchemyError as e:
        engine.dispose()
        raise StartupError(STAGE_PING, f"Database ping failed: {e}") from e

    logger.info(
        "Connected to %s with connection pooling (max_open=%d, max_idle=%d)",
        engine.url.render_as_string(hide_password=True),
        policy.max_open,
        policy.max_idle,
    )

    if migrate:
        from .migrate import migrate as run_migrations

        run_migrations(database)

    return database
