"""Initial schema: users, preferences, vehicles, trips and bookings.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

user_role = sa.Enum("passenger", "driver", "admin", name="userrole")
trip_status = sa.Enum("open", "full", "cancelled", name="tripstatus")
booking_status = sa.Enum("pending", "confirmed", "cancelled", name="bookingstatus")


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("credits", sa.Float, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),
    )

    # ── user_preferences ──────────────────────────────────────────────
    op.create_table(
        "user_preferences",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id"),
            unique=True,
            nullable=False,
        ),
        sa.Column("smoker", sa.Boolean, nullable=False),
        sa.Column("pets", sa.Boolean, nullable=False),
        sa.Column("music", sa.Boolean, nullable=False),
        sa.Column("chatter", sa.Boolean, nullable=False),
    )

    # ── vehicles ──────────────────────────────────────────────────────
    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "owner_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("brand", sa.String(60), nullable=False),
        sa.Column("model", sa.String(60), nullable=False),
        sa.Column("color", sa.String(30), nullable=True),
        sa.Column("license_plate", sa.String(20), unique=True, nullable=False),
        sa.Column("seat_count", sa.Integer, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("seat_count >= 2", name="ck_vehicles_seat_count"),
    )
    op.create_index("idx_vehicles_owner", "vehicles", ["owner_id"])

    # ── trips ─────────────────────────────────────────────────────────
    op.create_table(
        "trips",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "vehicle_id", sa.Integer, sa.ForeignKey("vehicles.id"), nullable=False
        ),
        sa.Column("departure_city", sa.String(120), nullable=False),
        sa.Column("arrival_city", sa.String(120), nullable=False),
        sa.Column("departure_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("arrival_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("offered_seats", sa.Integer, nullable=False),
        sa.Column("available_seats", sa.Integer, nullable=False),
        sa.Column("price", sa.Float, nullable=False),
        sa.Column("status", trip_status, nullable=False),
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
            "available_seats >= 0 AND available_seats <= offered_seats",
            name="ck_trips_available_seats",
        ),
        sa.CheckConstraint("price >= 0", name="ck_trips_price_non_negative"),
    )
    op.create_index("idx_trips_status", "trips", ["status"])
    op.create_index("idx_trips_driver", "trips", ["driver_id"])
    op.create_index("idx_trips_departure", "trips", ["departure_date"])

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "trip_id", sa.Integer, sa.ForeignKey("trips.id"), nullable=False
        ),
        sa.Column("seat_count", sa.Integer, nullable=False),
        sa.Column("total_price", sa.Float, nullable=False),
        sa.Column("status", booking_status, nullable=False),
        sa.Column(
            "canceller_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True
        ),
        sa.Column("refunded_amount", sa.Float, nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
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
        sa.CheckConstraint("seat_count >= 1", name="ck_bookings_seat_count"),
    )
    op.create_index("idx_bookings_user", "bookings", ["user_id"])
    op.create_index("idx_bookings_trip", "bookings", ["trip_id"])
    # One active booking per passenger per trip
    op.create_index(
        "uq_bookings_active_passenger_trip",
        "bookings",
        ["user_id", "trip_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'"),
        sqlite_where=sa.text("status <> 'cancelled'"),
    )


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("trips")
    op.drop_table("vehicles")
    op.drop_table("user_preferences")
    op.drop_table("users")
    bind = op.get_bind()
    for enum_type in (booking_status, trip_status, user_role):
        enum_type.drop(bind, checkfirst=True)
