# ---------------------------------------------------------------------------
# errors.py
#
# Startup failure types.
#
# Every stage of the startup sequence (config -> open -> pool -> ping ->
# migrate) reports failure by raising a StartupError tagged with the stage
# that failed. The process entrypoint is the only place that turns these into
# an exit code; everything below it stays catchable so tests can exercise the
# failure paths without terminating the interpreter.
# ---------------------------------------------------------------------------

from __future__ import annotations

STAGE_CONFIG = "config"
STAGE_OPEN = "open"
STAGE_POOL = "pool"
STAGE_PING = "ping"
STAGE_MIGRATE = "migrate"


class StartupError(Exception):
    """A fatal startup failure, tagged with the stage that produced it."""

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage
        self.message = message

    def __str__(self) -> str:
        return f"[{self.stage}] {self.message}"


class ConfigurationError(StartupError):
    """Raised when required environment variables are missing."""

    def __init__(self, missing: list[str]):
        lines = "".join(f"\n  - {entry}" for entry in missing)
        super().__init__(STAGE_CONFIG, "Required environment variables not set:" + lines)
        self.missing = list(missing)
