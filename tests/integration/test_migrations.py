"""Test Alembic migrations against a throwaway SQLite database."""

import os
import uuid

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError


SCRIPT_LOCATION = os.path.join(
    os.path.dirname(__file__), "..", "..", "accessgraph", "migrations"
)

EXPECTED_TABLES = {"relationships", "relationship_history", "audit_entries"}


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'migrations.db'}"


@pytest.fixture
def alembic_cfg(database_url):
    cfg = Config()
    cfg.set_main_option("script_location", SCRIPT_LOCATION)
    cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def _insert_relationship(conn, subject_id, object_id, status):
    conn.execute(
        text(
            "INSERT INTO relationships (id, kind, subject_id, object_type, object_id, "
            "capability_overrides, status, extra_data) "
            "VALUES (:id, 'document_review', :subject, 'document', :object, '{}', :status, '{}')"
        ),
        {"id": uuid.uuid4().hex, "subject": subject_id, "object": object_id, "status": status},
    )


class TestMigrations:
    """Run upgrade, verify, downgrade, verify."""

    def test_upgrade_creates_tables(self, alembic_cfg, database_url):
        command.upgrade(alembic_cfg, "head")

        engine = create_engine(database_url)
        tables = set(inspect(engine).get_table_names())
        engine.dispose()
        assert EXPECTED_TABLES <= tables

    def test_live_link_unique_only_while_live(self, alembic_cfg, database_url):
        command.upgrade(alembic_cfg, "head")
        subject, obj = uuid.uuid4().hex, uuid.uuid4().hex

        engine = create_engine(database_url)
        with engine.begin() as conn:
            _insert_relationship(conn, subject, obj, "cancelled")
            _insert_relationship(conn, subject, obj, "ended")
            _insert_relationship(conn, subject, obj, "active")

        with pytest.raises(IntegrityError):
            with engine.begin() as conn:
                _insert_relationship(conn, subject, obj, "pending")
        engine.dispose()

    def test_downgrade_removes_tables(self, alembic_cfg, database_url):
        command.upgrade(alembic_cfg, "head")
        command.downgrade(alembic_cfg, "base")

        engine = create_engine(database_url)
        tables = set(inspect(engine).get_table_names())
        engine.dispose()
        assert not (EXPECTED_TABLES & tables)
