"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from __future__ import annotations

from typing import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create initial database schema."""

    # Sites table
    op.create_table(
        "sites",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sites_user_id", "sites", ["user_id"])

    # Search queries table
    op.create_table(
        "search_queries",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("site_id", sa.String(length=64), nullable=True),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("query", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["site_id"], ["sites.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_search_queries_site_id", "search_queries", ["site_id"])

    # Mining profiles table
    op.create_table(
        "icp_mining",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("search_query_id", sa.String(length=64), nullable=False),
        sa.Column("site_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("total_targets", sa.Integer(), nullable=True),
        sa.Column("processed_targets", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("found_matches", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_page", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("errors", sa.JSON(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        sa.Column("last_progress_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["search_query_id"], ["search_queries.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["site_id"], ["sites.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_icp_mining_search_query_id", "icp_mining", ["search_query_id"])
    op.create_index("ix_icp_mining_site_id", "icp_mining", ["site_id"])
    op.create_index("ix_icp_mining_status", "icp_mining", ["status"])
    op.create_index("ix_icp_mining_site_status", "icp_mining", ["site_id", "status"])

    # Audit events table
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("workflow_id", sa.String(length=200), nullable=False),
        sa.Column("workflow_type", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("input", sa.JSON(), nullable=True),
        sa.Column("output", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_events_workflow_id", "audit_events", ["workflow_id"])
    op.create_index("ix_audit_events_status", "audit_events", ["status"])
    op.create_index("ix_audit_events_created_at", "audit_events", ["created_at"])

    # Scheduled jobs table
    op.create_table(
        "scheduled_jobs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("sites_json", sa.JSON(), nullable=True),
        sa.Column("schedule_type", sa.String(length=50), nullable=False, server_default="hourly"),
        sa.Column("time_of_day", sa.String(length=10), nullable=True),
        sa.Column("interval_minutes", sa.Integer(), nullable=True),
        sa.Column("cron_expression", sa.String(length=100), nullable=True),
        sa.Column("timezone", sa.String(length=50), server_default="UTC"),
        sa.Column("jitter_minutes", sa.Integer(), server_default="0"),
        sa.Column("max_runtime_minutes", sa.Integer(), server_default="60"),
        sa.Column("last_run_at", sa.DateTime(), nullable=True),
        sa.Column("last_status", sa.String(length=50), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scheduled_jobs_name", "scheduled_jobs", ["name"], unique=True)

    # Run locks table
    op.create_table(
        "run_locks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("lock_name", sa.String(length=100), nullable=False),
        sa.Column("acquired_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("holder_id", sa.String(length=100), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lock_name"),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("run_locks")
    op.drop_index("ix_scheduled_jobs_name", table_name="scheduled_jobs")
    op.drop_table("scheduled_jobs")
    op.drop_index("ix_audit_events_created_at", table_name="audit_events")
    op.drop_index("ix_audit_events_status", table_name="audit_events")
    op.drop_index("ix_audit_events_workflow_id", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_index("ix_icp_mining_site_status", table_name="icp_mining")
    op.drop_index("ix_icp_mining_status", table_name="icp_mining")
    op.drop_index("ix_icp_mining_site_id", table_name="icp_mining")
    op.drop_index("ix_icp_mining_search_query_id", table_name="icp_mining")
    op.drop_table("icp_mining")
    op.drop_index("ix_search_queries_site_id", table_name="search_queries")
    op.drop_table("search_queries")
    op.drop_index("ix_sites_user_id", table_name="sites")
    op.drop_table("sites")
