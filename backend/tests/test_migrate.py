"""
Tests for the schema migrator: planning, cold/warm runs, additive columns, indexes.
"""
import logging

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, create_engine, inspect, text

from zapmanejo import migrate as migrate_module
from zapmanejo.db import Base, connect
from zapmanejo.migrate import (
    SUPPLEMENTARY_INDEXES,
    create_indexes,
    inspect_schema,
    migrate,
    plan_schema_changes,
)
from zapmanejo.seed import LIFETIME_SLOTS

EXPECTED_TABLES = {"users", "animals", "health_records", "cost_configs", "payments", "lifetime_slots"}


def _declared_snapshot():
    return {name: {c.name for c in table.columns} for name, table in Base.metadata.tables.items()}


def test_schema_descriptor_has_six_tables():
    assert set(Base.metadata.tables) == EXPECTED_TABLES


def test_plan_for_empty_database_creates_everything():
    plan = plan_schema_changes(Base.metadata, {})
    assert set(plan.create_tables) == EXPECTED_TABLES
    assert plan.add_columns == []
    assert not plan.empty


def test_plan_for_matching_schema_is_empty():
    plan = plan_schema_changes(Base.metadata, _declared_snapshot())
    assert plan.empty


def test_plan_lists_missing_columns_only():
    snapshot = _declared_snapshot()
    snapshot["animals"] -= {"notes", "weight_kg"}
    snapshot["unrelated_table"] = {"id"}

    plan = plan_schema_changes(Base.metadata, snapshot)
    assert plan.create_tables == []
    assert sorted(plan.add_columns) == [("animals", "notes"), ("animals", "weight_kg")]


def test_cold_start_builds_full_schema(database):
    insp = inspect(database.engine)
    assert EXPECTED_TABLES <= set(insp.get_table_names())

    index_names = {ix["name"] for ix in insp.get_indexes("animals")}
    assert {"idx_animals_brinco", "idx_animals_birth"} <= index_names

    assert plan_schema_changes(Base.metadata, inspect_schema(database.engine)).empty


def test_warm_start_is_a_no_op(database):
    before = inspect_schema(database.engine)

    report = migrate(database)

    assert report.plan.empty
    assert report.failed_indexes == []
    assert report.seeded == 0
    assert inspect_schema(database.engine) == before


def test_repeated_index_creation_does_not_fail(database):
    assert create_indexes(database.engine) == []
    assert create_indexes(database.engine) == []


def test_missing_columns_are_added_to_existing_tables(db_url, caplog):
    database = connect(db_url, migrate=False)
    try:
        with database.engine.begin() as conn:
            conn.execute(text(
                "CREATE TABLE users (id INTEGER PRIMARY KEY, email VARCHAR(320) NOT NULL, "
                "password_hash TEXT NOT NULL, created_at DATETIME NOT NULL)"
            ))
            conn.execute(text(
                "CREATE TABLE lifetime_slots (id INTEGER PRIMARY KEY, code VARCHAR(32) NOT NULL, "
                "label VARCHAR(100) NOT NULL, min_months INTEGER NOT NULL, max_months INTEGER)"
            ))
            conn.execute(text(
                "INSERT INTO users (email, password_hash, created_at) VALUES ('old@example.com', 'x', '2024-01-01')"
            ))

        with caplog.at_level(logging.WARNING, logger="zapmanejo"):
            report = migrate(database)

        assert sorted(report.plan.add_columns) == [
            ("lifetime_slots", "position"),
            ("users", "name"),
            ("users", "phone"),
        ]
        assert {"users", "lifetime_slots"}.isdisjoint(report.plan.create_tables)

        columns = inspect_schema(database.engine)
        assert {"name", "phone"} <= columns["users"]
        assert "position" in columns["lifetime_slots"]

        with database.engine.connect() as conn:
            row = conn.execute(text("SELECT email, name FROM users")).one()
        assert row.email == "old@example.com"
        assert row.name is None
        assert report.seeded == len(LIFETIME_SLOTS)

        # users.phone is declared indexed; ADD COLUMN cannot carry that.
        assert "[schema] users.phone added without INDEX" in caplog.text
        assert "lifetime_slots.position added without" not in caplog.text
        assert "users.name added without" not in caplog.text
    finally:
        database.dispose()


def test_index_failure_is_only_a_warning(database, monkeypatch, caplog):
    monkeypatch.setattr(
        migrate_module,
        "SUPPLEMENTARY_INDEXES",
        SUPPLEMENTARY_INDEXES + (("idx_animals_bogus", "animals", "no_such_column"),),
    )

    with caplog.at_level(logging.WARNING, logger="zapmanejo"):
        report = migrate(database)

    assert report.failed_indexes == ["idx_animals_bogus"]
    assert "Failed to create idx_animals_bogus" in caplog.text


def test_constraints_dropped_by_add_column_are_reported(tmp_path, caplog):
    engine = create_engine(f"sqlite:///{tmp_path / 'constraints.db'}")
    metadata = MetaData()
    Table("parents", metadata, Column("id", Integer, primary_key=True))
    children = Table(
        "children",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("code", String(8), nullable=False, unique=True),
        Column("parent_id", Integer, ForeignKey("parents.id")),
    )
    try:
        with engine.begin() as conn:
            conn.execute(text("CREATE TABLE children (id INTEGER PRIMARY KEY)"))
            with caplog.at_level(logging.WARNING, logger="zapmanejo"):
                migrate_module._add_column(conn, children.c.code)
                migrate_module._add_column(conn, children.c.parent_id)
    finally:
        engine.dispose()

    assert "children.code added without NOT NULL, UNIQUE" in caplog.text
    assert "children.parent_id added without FOREIGN KEY" in caplog.text
