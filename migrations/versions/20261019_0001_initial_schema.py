# migrations/versions/20261019_0001_initial_schema.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Create grid, reconciliation and audit ticket tables.

Revision ID: 20261019_0001_initial_schema
Revises:
Create Date: 2026-10-19

Grid tables are read-only for the service; reconciliation and audit ticket
tables are owned by it.
"""

from __future__ import annotations

import os
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "20261019_0001_initial_schema"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

SCHEMA: str | None = os.getenv("DB_SCHEMA") or None

_ACTIVE_PREDICATE = sa.text("status IN ('OPEN', 'IN_REVIEW')")


def _fk(target: str) -> str:
    return f"{SCHEMA}.{target}" if SCHEMA else target


def _ts(name: str, *, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def _kwh(name: str, *, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.Numeric(20, 6), nullable=nullable)


def upgrade() -> None:
    if SCHEMA:
        op.execute(sa.text(f'CREATE SCHEMA IF NOT EXISTS "{SCHEMA}"'))

    # --- Grid topology and readings -------------------------------------
    op.create_table(
        "grid_zones",
        sa.Column("zone_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("min_lat", sa.Float, nullable=True),
        sa.Column("min_lng", sa.Float, nullable=True),
        sa.Column("max_lat", sa.Float, nullable=True),
        sa.Column("max_lng", sa.Float, nullable=True),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("zone_id", name="pk_grid_zones"),
        schema=SCHEMA,
    )
    op.create_table(
        "grid_meters",
        sa.Column("meter_id", sa.String(64), nullable=False),
        _ts("registered_at"),
        sa.PrimaryKeyConstraint("meter_id", name="pk_grid_meters"),
        schema=SCHEMA,
    )
    op.create_table(
        "grid_zone_meters",
        sa.Column("zone_id", sa.String(64), nullable=False),
        sa.Column("meter_id", sa.String(64), nullable=False),
        sa.PrimaryKeyConstraint("zone_id", "meter_id", name="pk_grid_zone_meters"),
        sa.ForeignKeyConstraint(
            ["zone_id"],
            [_fk("grid_zones.zone_id")],
            name="fk_grid_zone_meters_zone_id_grid_zones",
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_grid_zone_meters_meter_id", "grid_zone_meters", ["meter_id"], schema=SCHEMA
    )
    op.create_table(
        "grid_zone_substations",
        sa.Column("zone_id", sa.String(64), nullable=False),
        sa.Column("substation_id", sa.String(64), nullable=False),
        sa.PrimaryKeyConstraint("zone_id", "substation_id", name="pk_grid_zone_substations"),
        sa.ForeignKeyConstraint(
            ["zone_id"],
            [_fk("grid_zones.zone_id")],
            name="fk_grid_zone_substations_zone_id_grid_zones",
        ),
        schema=SCHEMA,
    )
    op.create_table(
        "energy_readings",
        sa.Column("id", sa.BigInteger, autoincrement=True, nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("entity_kind", sa.String(16), nullable=False),
        sa.Column("kind", sa.String(16), nullable=False),
        _ts("timestamp"),
        _kwh("quantity_kwh", nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_energy_readings"),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_energy_readings_entity_ts",
        "energy_readings",
        ["entity_kind", "entity_id", "timestamp"],
        schema=SCHEMA,
    )

    # --- Reconciliation runs --------------------------------------------
    op.create_table(
        "reconciliation_reports",
        sa.Column("run_id", sa.String(36), nullable=False),
        sa.Column("triggered_by", sa.String(128), nullable=False),
        _ts("window_start"),
        _ts("window_end"),
        sa.Column("status", sa.String(16), nullable=False),
        _ts("started_at"),
        _ts("completed_at", nullable=True),
        sa.Column("failure_code", sa.String(64), nullable=True),
        sa.Column("failure_message", sa.Text, nullable=True),
        sa.Column("orphaned_meter_ids", sa.JSON, nullable=False),
        sa.PrimaryKeyConstraint("run_id", name="pk_reconciliation_reports"),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_reconciliation_reports_status_completed",
        "reconciliation_reports",
        ["status", "completed_at"],
        schema=SCHEMA,
    )
    op.create_table(
        "reconciliation_zone_entries",
        sa.Column("id", sa.BigInteger, autoincrement=True, nullable=False),
        sa.Column("run_id", sa.String(36), nullable=False),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("zone_id", sa.String(64), nullable=False),
        sa.Column("zone_name", sa.String(200), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("error_code", sa.String(64), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("degraded_reasons", sa.JSON, nullable=False),
        sa.Column("ticket_action", sa.String(16), nullable=False),
        sa.Column("ticket_id", sa.String(36), nullable=True),
        sa.Column("meter_count", sa.Integer, nullable=False, server_default="0"),
        _kwh("output_kwh"),
        _kwh("consumption_kwh"),
        _kwh("delta_kwh"),
        sa.Column("delta_ratio", sa.Numeric(20, 10), nullable=True),
        _ts("computed_at", nullable=True),
        sa.Column("severity", sa.String(16), nullable=True),
        sa.Column("suspect", sa.Boolean, nullable=False),
        sa.Column("silent_meter_ids", sa.JSON, nullable=False),
        sa.Column("excluded_meter_ids", sa.JSON, nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_reconciliation_zone_entries"),
        sa.ForeignKeyConstraint(
            ["run_id"],
            [_fk("reconciliation_reports.run_id")],
            name="fk_reconciliation_zone_entries_run_id_reconciliation_reports",
            ondelete="CASCADE",
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_reconciliation_zone_entries_zone_run",
        "reconciliation_zone_entries",
        ["zone_id", "run_id"],
        schema=SCHEMA,
    )

    # --- Audit tickets --------------------------------------------------
    op.create_table(
        "audit_tickets",
        sa.Column("ticket_id", sa.String(36), nullable=False),
        sa.Column("ticket_number", sa.String(16), nullable=False),
        sa.Column("zone_id", sa.String(64), nullable=False),
        sa.Column("zone_name", sa.String(200), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("origin", sa.String(16), nullable=False),
        _ts("window_start"),
        _ts("window_end"),
        _kwh("delta_kwh", nullable=False),
        sa.Column("delta_ratio", sa.Numeric(20, 10), nullable=True),
        sa.Column("severity", sa.String(16), nullable=True),
        sa.Column("estimated_loss", sa.Numeric(20, 2), nullable=False),
        sa.Column("tariff_rate", sa.Numeric(20, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.Column("created_by", sa.String(128), nullable=True),
        sa.Column("suspected_latitude", sa.Float, nullable=True),
        sa.Column("suspected_longitude", sa.Float, nullable=True),
        sa.Column("suspected_address", sa.String(500), nullable=True),
        sa.Column("resolution_notes", sa.Text, nullable=True),
        _ts("resolved_at", nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("ticket_id", name="pk_audit_tickets"),
        sa.UniqueConstraint("ticket_number", name="uq_audit_tickets_ticket_number"),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_audit_tickets_status_updated",
        "audit_tickets",
        ["status", "updated_at"],
        schema=SCHEMA,
    )
    op.create_index(
        "uq_audit_tickets_active_zone",
        "audit_tickets",
        ["zone_id"],
        unique=True,
        schema=SCHEMA,
        postgresql_where=_ACTIVE_PREDICATE,
        sqlite_where=_ACTIVE_PREDICATE,
    )
    op.create_table(
        "audit_ticket_evidence",
        sa.Column("evidence_id", sa.String(36), nullable=False),
        sa.Column("ticket_id", sa.String(36), nullable=False),
        sa.Column("run_id", sa.String(36), nullable=True),
        _ts("window_start"),
        _ts("window_end"),
        _kwh("output_kwh"),
        _kwh("consumption_kwh"),
        _kwh("delta_kwh", nullable=False),
        sa.Column("delta_ratio", sa.Numeric(20, 10), nullable=True),
        sa.Column("severity", sa.String(16), nullable=True),
        sa.Column("tariff_rate", sa.Numeric(20, 2), nullable=False),
        sa.Column("estimated_loss", sa.Numeric(20, 2), nullable=False),
        _ts("recorded_at"),
        sa.PrimaryKeyConstraint("evidence_id", name="pk_audit_ticket_evidence"),
        sa.ForeignKeyConstraint(
            ["ticket_id"],
            [_fk("audit_tickets.ticket_id")],
            name="fk_audit_ticket_evidence_ticket_id_audit_tickets",
            ondelete="CASCADE",
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_audit_ticket_evidence_ticket_id",
        "audit_ticket_evidence",
        ["ticket_id"],
        schema=SCHEMA,
    )
    op.create_table(
        "audit_ticket_notes",
        sa.Column("note_id", sa.String(36), nullable=False),
        sa.Column("ticket_id", sa.String(36), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        _ts("created_at"),
        sa.Column("author", sa.String(128), nullable=True),
        sa.Column("status_from", sa.String(32), nullable=True),
        sa.Column("status_to", sa.String(32), nullable=True),
        sa.PrimaryKeyConstraint("note_id", name="pk_audit_ticket_notes"),
        sa.ForeignKeyConstraint(
            ["ticket_id"],
            [_fk("audit_tickets.ticket_id")],
            name="fk_audit_ticket_notes_ticket_id_audit_tickets",
            ondelete="CASCADE",
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_audit_ticket_notes_ticket_id", "audit_ticket_notes", ["ticket_id"], schema=SCHEMA
    )
    counters = op.create_table(
        "audit_ticket_counters",
        sa.Column("name", sa.String(32), nullable=False),
        sa.Column("value", sa.Integer, nullable=False),
        sa.PrimaryKeyConstraint("name", name="pk_audit_ticket_counters"),
        schema=SCHEMA,
    )
    op.bulk_insert(counters, [{"name": "audit_ticket", "value": 0}])


def downgrade() -> None:
    op.drop_table("audit_ticket_counters", schema=SCHEMA)
    op.drop_table("audit_ticket_notes", schema=SCHEMA)
    op.drop_table("audit_ticket_evidence", schema=SCHEMA)
    op.drop_index("uq_audit_tickets_active_zone", table_name="audit_tickets", schema=SCHEMA)
    op.drop_table("audit_tickets", schema=SCHEMA)
    op.drop_table("reconciliation_zone_entries", schema=SCHEMA)
    op.drop_table("reconciliation_reports", schema=SCHEMA)
    op.drop_table("energy_readings", schema=SCHEMA)
    op.drop_table("grid_zone_substations", schema=SCHEMA)
    op.drop_table("grid_zone_meters", schema=SCHEMA)
    op.drop_table("grid_meters", schema=SCHEMA)
    op.drop_table("grid_zones", schema=SCHEMA)
