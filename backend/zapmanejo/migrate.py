# ---------------------------------------------------------------------------
# migrate.py
#
# Schema Migrator.
#
# Lightweight, additive migration run on every start (no Alembic):
# - create any table declared in models.py that is missing
# - add any column declared on a model but missing from its live table
#   (existing column types/constraints are never modified)
# - create the supplementary `animals` indexes with IF NOT EXISTS
# - seed the lifetime-slot reference table (seed.py)
#
# Structural failures are fatal (StartupError, stage "migrate"); index and
# seed failures are logged warnings and startup continues.
#
# The "what needs to change" decision is `plan_schema_changes()`, a pure
# function over a {table: {columns}} snapshot, so it can be checked without a
# database.
# ---------------------------------------------------------------------------

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Mapping

from sqlalchemy import Column, MetaData, inspect, literal, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from . import models  # noqa: F401  (registers tables on Base.metadata)
from .db import Base
from .errors import STAGE_MIGRATE, StartupError
from .seed import seed_lifetime_slots

if TYPE_CHECKING:
    from .db import Database

logger = logging.getLogger(__name__)

# (index name, table, column)
SUPPLEMENTARY_INDEXES: tuple[tuple[str, str, str], ...] = (
    ("idx_animals_brinco", "animals", "brinco"),
    ("idx_animals_birth", "animals", "birth_date"),
)


@dataclass
class SchemaPlan:
    create_tables: list[str] = field(default_factory=list)
    add_columns: list[tuple[str, str]] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.create_tables and not self.add_columns


@dataclass
class MigrationReport:
    plan: SchemaPlan
    failed_indexes: list[str] = field(default_factory=list)
    seeded: int = 0


def plan_schema_changes(metadata: MetaData, existing: Mapping[str, set[str]]) -> SchemaPlan:
    """Compare declared tables against a live snapshot and list what is missing."""
    plan = SchemaPlan()
    for table_name, table in metadata.tables.items():
        if table_name not in existing:
            plan.create_tables.append(table_name)
            continue

        present = existing[table_name]
        for col in table.columns:
            if col.name not in present:
                plan.add_columns.append((table_name, col.name))
    return plan


def inspect_schema(engine: Engine) -> dict[str, set[str]]:
    """Snapshot the live schema as {table_name: {column names}}."""
    insp = inspect(engine)
    return {
        table_name: {c["name"] for c in insp.get_columns(table_name)}
        for table_name in insp.get_table_names()
    }


def _add_column(conn: Connection, col: Column) -> None:
    coltype = col.type.compile(dialect=conn.dialect)

    # NOT NULL columns need a default for existing rows.
    extra = ""
    default = col.default
    if not col.nullable and default is not None and getattr(default, "is_scalar", False):
        default_sql = literal(default.arg).compile(dialect=conn.dialect, compile_kwargs={"literal_binds": True})
        extra = f" NOT NULL DEFAULT {default_sql}"

    conn.execute(text(f'ALTER TABLE "{col.table.name}" ADD COLUMN "{col.name}" {coltype}{extra}'))
    logger.info("[schema] added %s.%s %s%s", col.table.name, col.name, coltype, extra)

    # ADD COLUMN only carries type, NOT NULL and a literal default.
    skipped = []
    if not col.nullable and not extra:
        skipped.append("NOT NULL")
    if col.unique:
        skipped.append("UNIQUE")
    if col.foreign_keys:
        skipped.append("FOREIGN KEY")
    if col.index:
        skipped.append("INDEX")
    if skipped:
        logger.warning(
            "[schema] %s.%s added without %s; apply manually",
            col.table.name,
            col.name,
            ", ".join(skipped),
        )


def create_indexes(engine: Engine) -> list[str]:
    """Create the supplementary indexes; return the names that failed."""
    failed: list[str] = []
    for name, table, column in SUPPLEMENTARY_INDEXES:
        try:
            with engine.begin() as conn:
                conn.execute(text(f"CREATE INDEX IF NOT EXISTS {name} ON {table}({column})"))
        except SQLAlchemyError as e:
            logger.warning("Failed to create %s: %s", name, e)
            failed.append(name)

    if not failed:
        logger.info("Indexes created successfully")
    return failed


def migrate(database: "Database") -> MigrationReport:
    """Reconcile the live schema with models.py, then index and seed."""
    logger.info("Starting database migration...")

    try:
        plan = plan_schema_changes(Base.metadata, inspect_schema(database.engine))
        with database.engine.begin() as conn:
            Base.metadata.create_all(bind=conn)
            for table_name, column_name in plan.add_columns:
                _add_column(conn, Base.metadata.tables[table_name].c[column_name])
    except SQLAlchemyError as e:
        raise StartupError(STAGE_MIGRATE, f"Failed to migrate database schema: {e}") from e

    if plan.empty:
        logger.info("Database schema already up to date")
    else:
        logger.info(
            "Database schema migrated successfully (tables created: %d, columns added: %d)",
            len(plan.create_tables),
            len(plan.add_columns),
        )

    report = MigrationReport(plan=plan)
    report.failed_indexes = create_indexes(database.engine)

    logger.info("Seeding lifetime slots...")
    with database.session() as session:
        report.seeded = seed_lifetime_slots(session)

    logger.info("Migration completed successfully")
    return report
