"""
SQLAlchemy ORM models.

Tables
------
* ``users``             -- identities with their credit balance
* ``user_preferences``  -- one-to-one ride-comfort flags
* ``vehicles``          -- cars owned by drivers (seat_count includes driver)
* ``trips``             -- published rides with seat counter and status
* ``bookings``          -- passenger reservations against a trip

Indexes
-------
* **B-Tree** on ``trips.status``, ``trips.driver_id``, ``trips.departure_date``,
  ``bookings.user_id``, ``bookings.trip_id`` for the listing and search queries.
* **Partial unique** on ``bookings (user_id, trip_id)`` where the booking is
  not cancelled: one active booking per passenger per trip, even when two
  requests race past the application check.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    text,
)
from sqlalchemy.orm import relationship

from .database import Base
from carpool.domain.enums import BookingStatus, TripStatus, UserRole


def _values(enum_cls):
    return [member.value for member in enum_cls]


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    role = Column(
        Enum(UserRole, name="userrole", values_callable=_values),
        default=UserRole.PASSENGER,
        nullable=False,
    )
    credits = Column(Float, default=0.0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    preferences = relationship(
        "UserPreferencesModel", back_populates="user", uselist=False
    )

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),
    )


class UserPreferencesModel(Base):
    __tablename__ = "user_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    smoker = Column(Boolean, default=False, nullable=False)
    pets = Column(Boolean, default=False, nullable=False)
    music = Column(Boolean, default=True, nullable=False)
    chatter = Column(Boolean, default=True, nullable=False)

    user = relationship("UserModel", back_populates="preferences")


class VehicleModel(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    brand = Column(String(60), nullable=False)
    model = Column(String(60), nullable=False)
    color = Column(String(30), nullable=True)
    license_plate = Column(String(20), unique=True, nullable=False)
    seat_count = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_vehicles_owner", "owner_id"),
        CheckConstraint("seat_count >= 2", name="ck_vehicles_seat_count"),
    )


class TripModel(Base):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    departure_city = Column(String(120), nullable=False)
    arrival_city = Column(String(120), nullable=False)
    departure_date = Column(DateTime(timezone=True), nullable=False)
    arrival_date = Column(DateTime(timezone=True), nullable=False)

    # Seats published by the driver; upper bound for available_seats
    offered_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    price = Column(Float, nullable=False)
    status = Column(
        Enum(TripStatus, name="tripstatus", values_callable=_values),
        default=TripStatus.OPEN,
        nullable=False,
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    driver = relationship("UserModel", lazy="raise")
    vehicle = relationship("VehicleModel", lazy="raise")

    __table_args__ = (
        Index("idx_trips_status", "status"),
        Index("idx_trips_driver", "driver_id"),
        Index("idx_trips_departure", "departure_date"),
        CheckConstraint(
            "available_seats >= 0 AND available_seats <= offered_seats",
            name="ck_trips_available_seats",
        ),
        CheckConstraint("price >= 0", name="ck_trips_price_non_negative"),
    )


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False)
    seat_count = Column(Integer, nullable=False)
    total_price = Column(Float, nullable=False)
    status = Column(
        Enum(BookingStatus, name="bookingstatus", values_callable=_values),
        default=BookingStatus.PENDING,
        nullable=False,
    )
    canceller_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    refunded_amount = Column(Float, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    trip = relationship("TripModel", lazy="raise")

    __table_args__ = (
        Index("idx_bookings_user", "user_id"),
        Index("idx_bookings_trip", "trip_id"),
        Index(
            "uq_bookings_active_passenger_trip",
            "user_id",
            "trip_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        CheckConstraint("seat_count >= 1", name="ck_bookings_seat_count"),
    )
