"""Initial schema: relationships, relationship history, audit entries

Revision ID: 0001
Revises:
Create Date: 2026-03-02

This migration:
1. Creates the relationship store with a partial unique index so a
   subject/object pair holds at most one pending, active or paused
   relationship per kind
2. Creates the transition history table
3. Creates the decision audit table and, on PostgreSQL, a trigger that
   rejects updates (retention deletes remain allowed)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

LIVE_STATUS_SQL = "status IN ('pending', 'active', 'paused')"


def upgrade() -> None:
    op.create_table(
        "relationships",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("kind", sa.String(50), nullable=False),
        sa.Column("subject_id", sa.Uuid(), nullable=False),
        sa.Column("object_type", sa.String(50), nullable=False),
        sa.Column("object_id", sa.Uuid(), nullable=False),
        sa.Column("context_id", sa.Uuid(), nullable=True),
        sa.Column("role", sa.String(50), nullable=True),
        sa.Column("capability_overrides", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("valid_from", sa.DateTime(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("extra_data", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_relationships_kind", "relationships", ["kind"])
    op.create_index("ix_relationships_subject_id", "relationships", ["subject_id"])
    op.create_index("ix_relationships_object_id", "relationships", ["object_id"])
    op.create_index("ix_relationships_context_id", "relationships", ["context_id"])
    op.create_index("ix_relationships_status", "relationships", ["status"])
    op.create_index("ix_relationships_expires_at", "relationships", ["expires_at"])
    op.create_index(
        "ix_relationships_subject_kind_status",
        "relationships",
        ["subject_id", "kind", "status"],
    )
    op.create_index(
        "ix_relationships_object_kind_status",
        "relationships",
        ["object_type", "object_id", "kind", "status"],
    )
    op.create_index(
        "uq_relationships_live_link",
        "relationships",
        ["kind", "subject_id", "object_type", "object_id"],
        unique=True,
        sqlite_where=sa.text(LIVE_STATUS_SQL),
        postgresql_where=sa.text(LIVE_STATUS_SQL),
    )

    op.create_table(
        "relationship_history",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("relationship_id", sa.Uuid(), sa.ForeignKey("relationships.id"), nullable=False),
        sa.Column("from_status", sa.String(20), nullable=True),
        sa.Column("to_status", sa.String(20), nullable=False),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("actor_id", sa.Uuid(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index(
        "ix_relationship_history_relationship_id", "relationship_history", ["relationship_id"]
    )
    op.create_index("ix_relationship_history_created_at", "relationship_history", ["created_at"])

    op.create_table(
        "audit_entries",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("actor_id", sa.Uuid(), nullable=False),
        sa.Column("resource_type", sa.String(50), nullable=False),
        sa.Column("resource_id", sa.Uuid(), nullable=False),
        sa.Column("capability", sa.String(50), nullable=False),
        sa.Column("allowed", sa.Boolean(), nullable=False),
        sa.Column("grant_source", sa.String(50), nullable=True),
        sa.Column("granting_relationship_id", sa.Uuid(), nullable=True),
        sa.Column("evaluated_at", sa.DateTime(), nullable=False),
        sa.Column("context", sa.JSON(), nullable=True),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("compliance", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_audit_entries_actor_id", "audit_entries", ["actor_id"])
    op.create_index("ix_audit_entries_resource_type", "audit_entries", ["resource_type"])
    op.create_index("ix_audit_entries_resource_id", "audit_entries", ["resource_id"])
    op.create_index("ix_audit_entries_allowed", "audit_entries", ["allowed"])
    op.create_index("ix_audit_entries_compliance", "audit_entries", ["compliance"])
    op.create_index("ix_audit_entries_created_at", "audit_entries", ["created_at"])

    if op.get_bind().dialect.name == "postgresql":
        op.execute("""
            CREATE OR REPLACE FUNCTION prevent_audit_entry_update()
            RETURNS TRIGGER AS $trigger$
            BEGIN
                RAISE EXCEPTION 'Audit entries are immutable. Record ID: %', OLD.id;
            END;
            $trigger$ LANGUAGE plpgsql;
        """)
        op.execute("""
            CREATE TRIGGER audit_entries_prevent_update
            BEFORE UPDATE ON audit_entries
            FOR EACH ROW
            EXECUTE FUNCTION prevent_audit_entry_update();
        """)


def downgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TRIGGER IF EXISTS audit_entries_prevent_update ON audit_entries;")
        op.execute("DROP FUNCTION IF EXISTS prevent_audit_entry_update();")

    op.drop_table("audit_entries")
    op.drop_index("ix_relationship_history_created_at", table_name="relationship_history")
    op.drop_index("ix_relationship_history_relationship_id", table_name="relationship_history")
    op.drop_table("relationship_history")
    op.drop_index("uq_relationships_live_link", table_name="relationships")
    op.drop_table("relationships")
