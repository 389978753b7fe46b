"""Initial schema: the ride ledger.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("request_id", sa.String(64), unique=True, nullable=True),
        sa.Column("rider_id", sa.String(64), nullable=False),
        sa.Column("driver_id", sa.String(64), nullable=True),
        sa.Column("pickup", sa.String(255), nullable=False),
        sa.Column("dropoff", sa.String(255), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "requested",
                "assigned",
                "accepted",
                "ongoing",
                "completed",
                "rider_cancelled",
                "driver_cancelled",
                name="ride_status",
                native_enum=False,
                length=20,
            ),
            server_default="requested",
            nullable=False,
        ),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_rider", "rides", ["rider_id"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])


def downgrade() -> None:
    op.drop_index("idx_rides_driver", table_name="rides")
    op.drop_index("idx_rides_rider", table_name="rides")
    op.drop_index("idx_rides_status", table_name="rides")
    op.drop_table("rides")
