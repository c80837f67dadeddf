"""Initial fleet scoring schema

Revision ID: 0001
Revises:
Create Date: 2026-10-17

Creates the scoring pipeline tables:
- violations: Append-only violation history with reading snapshot
- driver_scores: Current score per driver (versioned)
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ==========================================================================
    # violations table
    # ==========================================================================
    op.create_table(
        "violations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("fingerprint", sa.String(64), nullable=False),
        sa.Column("truck_id", sa.String(64), nullable=False),
        sa.Column("driver_id", sa.String(64), nullable=False),
        sa.Column("violation_type", sa.String(32), nullable=False),
        sa.Column("severity", sa.String(16), nullable=False),
        sa.Column("message", sa.Text(), nullable=False, server_default=""),
        sa.Column("rule_id", sa.String(32), nullable=False, server_default=""),
        sa.Column("points_deducted", sa.Integer(), nullable=False),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("reading_timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("speed", sa.Float(), nullable=True),
        sa.Column("fuel_level", sa.Float(), nullable=True),
        sa.Column("engine_temp", sa.Float(), nullable=True),
        sa.Column("tire_front_left", sa.Float(), nullable=True),
        sa.Column("tire_front_right", sa.Float(), nullable=True),
        sa.Column("tire_rear_left", sa.Float(), nullable=True),
        sa.Column("tire_rear_right", sa.Float(), nullable=True),
        sa.Column("location_lat", sa.Float(), nullable=True),
        sa.Column("location_lon", sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("fingerprint"),
    )

    # Window reads filter by driver and recording time
    op.create_index(
        "ix_violations_driver_recorded", "violations", ["driver_id", "recorded_at"]
    )

    # ==========================================================================
    # driver_scores table
    # ==========================================================================
    op.create_table(
        "driver_scores",
        sa.Column("driver_id", sa.String(64), nullable=False),
        sa.Column("current_score", sa.Integer(), nullable=False),
        sa.Column("score_category", sa.String(16), nullable=False),
        sa.Column("total_violations", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_violation_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("explain", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.PrimaryKeyConstraint("driver_id"),
        sa.CheckConstraint(
            "current_score >= 0 AND current_score <= 100",
            name="ck_driver_scores_range",
        ),
    )

    op.create_index("ix_driver_scores_category", "driver_scores", ["score_category"])


def downgrade() -> None:
    op.drop_index("ix_driver_scores_category", table_name="driver_scores")
    op.drop_table("driver_scores")
    op.drop_index("ix_violations_driver_recorded", table_name="violations")
    op.drop_table("violations")
