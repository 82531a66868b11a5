"""Initial schema.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all initial tables."""
    # --- stations ---
    op.create_table(
        "stations",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("owner", sa.String(100), nullable=False, comment="Responsible party label, not a user account"),
        sa.Column("completion_rule", sa.String(20), server_default="all_filled", nullable=False, comment="all_filled | custom"),
        sa.Column("estimated_duration_minutes", sa.Integer(), server_default="0", nullable=False, comment="0 means no estimate"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("completion_rule IN ('all_filled', 'custom')", name="ck_stations_completion_rule"),
        sa.CheckConstraint("estimated_duration_minutes >= 0", name="ck_stations_duration_non_negative"),
    )

    # --- field_definitions ---
    op.create_table(
        "field_definitions",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("station_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("type", sa.String(20), nullable=False, comment="text | number | date | select | checkbox | textarea"),
        sa.Column("required", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("options", postgresql.JSONB(), nullable=True, comment="Ordered option labels for select fields"),
        sa.Column("default_value", sa.String(255), nullable=True),
        sa.Column("validation_rules", postgresql.JSONB(), nullable=True, comment='{"min": 0, "max": 10, "pattern": "..."}'),
        sa.Column("position", sa.Integer(), server_default="0", nullable=False, comment="Display order within the station"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "type IN ('text', 'number', 'date', 'select', 'checkbox', 'textarea')",
            name="ck_field_definitions_type",
        ),
    )
    op.create_index("ix_field_definitions_station_id", "field_definitions", ["station_id"])

    # --- routes ---
    op.create_table(
        "routes",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        sa.Column("version", sa.Integer(), server_default="1", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("supersedes_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["supersedes_id"], ["routes.id"], ondelete="SET NULL"),
        sa.CheckConstraint("version >= 1", name="ck_routes_version_positive"),
    )

    # --- route_stations ---
    op.create_table(
        "route_stations",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("route_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("station_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("sequence_order", sa.Integer(), nullable=False, comment="1-based, dense, unique per route"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["route_id"], ["routes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"]),
        sa.UniqueConstraint("route_id", "sequence_order", name="uq_route_stations_route_sequence"),
        sa.CheckConstraint("sequence_order >= 1", name="ck_route_stations_sequence_positive"),
    )
    op.create_index("ix_route_stations_route_id", "route_stations", ["route_id"])
    op.create_index("ix_route_stations_station_id", "route_stations", ["station_id"])

    # --- products ---
    op.create_table(
        "products",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("route_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("current_station_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("progress_percent", sa.Integer(), server_default="0", nullable=False),
        sa.Column("status_override", sa.String(20), nullable=True, comment="Explicit override; wins over the derived status"),
        sa.Column("current_due_at", sa.DateTime(timezone=True), nullable=True, comment="Deadline of the open station visit"),
        sa.Column("priority", sa.String(10), server_default="medium", nullable=False),
        sa.Column("terminated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(100), server_default="system", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["route_id"], ["routes.id"]),
        sa.ForeignKeyConstraint(["current_station_id"], ["stations.id"]),
        sa.CheckConstraint("progress_percent BETWEEN 0 AND 100", name="ck_products_progress_range"),
        sa.CheckConstraint("priority IN ('low', 'medium', 'high')", name="ck_products_priority"),
        sa.CheckConstraint(
            "status_override IS NULL OR status_override IN ('normal', 'overdue')",
            name="ck_products_status_override",
        ),
    )
    op.create_index("ix_products_route_id", "products", ["route_id"])
    op.create_index("ix_products_current_station_id", "products", ["current_station_id"])
    op.create_index("ix_products_created_at", "products", ["created_at"])

    # --- station_history ---
    op.create_table(
        "station_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("product_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("station_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("sequence_order", sa.Integer(), nullable=False),
        sa.Column("station_name", sa.String(100), nullable=False, comment="Snapshot at visit time"),
        sa.Column("owner", sa.String(100), nullable=False, comment="Snapshot at visit time"),
        sa.Column("start_time", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False, comment="pending | in_progress | completed | skipped"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(100), server_default="system", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"]),
        sa.CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'skipped')",
            name="ck_station_history_status",
        ),
        sa.CheckConstraint("end_time IS NULL OR end_time >= start_time", name="ck_station_history_time_order"),
    )
    op.create_index("ix_station_history_product_start", "station_history", ["product_id", "start_time"])
    op.create_index("ix_station_history_station_id", "station_history", ["station_id"])
    op.create_index("ix_station_history_owner", "station_history", ["owner"])
    # At most one open visit per product
    op.create_index(
        "uq_station_history_open_entry",
        "station_history",
        ["product_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'in_progress')"),
    )

    # --- station_field_values ---
    op.create_table(
        "station_field_values",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("entry_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("field_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("field_name", sa.String(100), nullable=False, comment="Snapshot at capture time"),
        sa.Column("value", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["entry_id"], ["station_history.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["field_id"], ["field_definitions.id"]),
        sa.UniqueConstraint("entry_id", "field_id", name="uq_station_field_values_entry_field"),
    )
    op.create_index("ix_station_field_values_entry_id", "station_field_values", ["entry_id"])
    op.create_index("ix_station_field_values_field_id", "station_field_values", ["field_id"])

    # --- audit_log ---
    op.create_table(
        "audit_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("table_name", sa.String(50), nullable=False),
        sa.Column("record_id", sa.String(64), nullable=False),
        sa.Column("action", sa.String(10), nullable=False, comment="create | update | delete"),
        sa.Column("old_values", postgresql.JSONB(), nullable=True),
        sa.Column("new_values", postgresql.JSONB(), nullable=True),
        sa.Column("changed_by", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_log_table_record", "audit_log", ["table_name", "record_id"])
    op.create_index("ix_audit_log_changed_by", "audit_log", ["changed_by"])
    op.create_index("ix_audit_log_created_at", "audit_log", ["created_at"])


def downgrade() -> None:
    """Drop all tables in reverse order."""
    op.drop_table("audit_log")
    op.drop_table("station_field_values")
    op.drop_index("uq_station_history_open_entry", table_name="station_history")
    op.drop_table("station_history")
    op.drop_table("products")
    op.drop_table("route_stations")
    op.drop_table("routes")
    op.drop_table("field_definitions")
    op.drop_table("stations")
