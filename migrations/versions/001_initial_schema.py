"""Initial schema: users, rides and passenger bookings.

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
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone", sa.String(32), nullable=False),
        sa.Column(
            "role",
            sa.Enum("rider", "driver", "admin", name="role"),
            nullable=False,
            server_default="rider",
        ),
        sa.Column(
            "approved_to_drive", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column("average_rating", sa.Float, nullable=False, server_default="0"),
        sa.Column("num_ratings", sa.Integer, nullable=False, server_default="0"),
        sa.Column("rating_total", sa.Integer, nullable=False, server_default="0"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("driver_name", sa.String(120), nullable=False),
        sa.Column("driver_phone", sa.String(32), nullable=False),
        sa.Column("origin", sa.String(255), nullable=False),
        sa.Column("destination", sa.String(255), nullable=False),
        sa.Column("origin_lat", sa.Float, nullable=True),
        sa.Column("origin_lng", sa.Float, nullable=True),
        sa.Column("destination_lat", sa.Float, nullable=True),
        sa.Column("destination_lng", sa.Float, nullable=True),
        sa.Column("distance_label", sa.String(64), nullable=True),
        sa.Column("duration_label", sa.String(64), nullable=True),
        sa.Column("price_per_seat", sa.Float, nullable=False),
        sa.Column("total_seats", sa.Integer, nullable=False),
        sa.Column("seats_available", sa.Integer, nullable=False),
        sa.Column("departure_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            sa.Enum("active", "completed", "cancelled", name="ridestatus"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "seats_available >= 0 AND seats_available <= total_seats",
            name="ck_rides_seats_in_range",
        ),
    )
    op.create_index(
        "idx_rides_status_departure", "rides", ["status", "departure_time"]
    )
    op.create_index("idx_rides_driver", "rides", ["driver_id"])

    # ── passenger_bookings ────────────────────────────────────────────
    op.create_table(
        "passenger_bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column(
            "rider_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("booked_seats", sa.Integer, nullable=False),
        sa.Column("pickup", sa.String(255), nullable=False),
        sa.Column("dropoff", sa.String(255), nullable=False),
        sa.Column("contact_phone", sa.String(32), nullable=False),
        sa.Column("price_per_seat", sa.Float, nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "accepted",
                "cancelled_by_rider",
                "cancelled_by_driver",
                "completed_by_driver",
                name="bookingstatus",
            ),
            nullable=False,
            server_default="accepted",
        ),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("rated", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("booked_seats > 0", name="ck_bookings_seats_positive"),
    )
    op.create_index("idx_bookings_ride", "passenger_bookings", ["ride_id"])
    op.create_index("idx_bookings_rider", "passenger_bookings", ["rider_id"])


def downgrade() -> None:
    op.drop_table("passenger_bookings")
    op.drop_table("rides")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS bookingstatus")
    op.execute("DROP TYPE IF EXISTS ridestatus")
    op.execute("DROP TYPE IF EXISTS role")
