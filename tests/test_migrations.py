"""The Alembic migration builds the schema the ORM models describe."""

import importlib.util
from pathlib import Path

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import CheckConstraint, create_engine, inspect, text
from sqlalchemy.exc import IntegrityError

from carpool.infrastructure import models  # noqa: F401
from carpool.infrastructure.database import Base

MIGRATION = (
    Path(__file__).resolve().parents[1]
    / "migrations"
    / "versions"
    / "001_initial_schema.py"
)


def load_migration():
    spec = importlib.util.spec_from_file_location("initial_schema", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def run(engine, step):
    with engine.begin() as connection:
        with Operations.context(MigrationContext.configure(connection)):
            step()


@pytest.fixture
def migrated(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'migrated.db'}")
    migration = load_migration()
    run(engine, migration.upgrade)
    yield engine, migration
    engine.dispose()


def insert_trip(connection, *, offered=3, available=3):
    connection.execute(
        text(
            "INSERT INTO users (id, name, email, role, credits) "
            "VALUES (1, 'Dana', 'dana@example.com', 'driver', 20), "
            "(2, 'Pat', 'pat@example.com', 'passenger', 20)"
        )
    )
    connection.execute(
        text(
            "INSERT INTO vehicles (id, owner_id, brand, model, license_plate, seat_count) "
            "VALUES (1, 1, 'Renault', 'Clio', 'AB-123-CD', 5)"
        )
    )
    connection.execute(
        text(
            "INSERT INTO trips (id, driver_id, vehicle_id, departure_city, arrival_city, "
            "departure_date, arrival_date, offered_seats, available_seats, price, status) "
            "VALUES (1, 1, 1, 'Paris', 'Lyon', '2030-01-01 08:00:00', "
            "'2030-01-01 13:00:00', :offered, :available, 10, 'open')"
        ),
        {"offered": offered, "available": available},
    )


BOOK = text(
    "INSERT INTO bookings (user_id, trip_id, seat_count, total_price, status) "
    "VALUES (2, 1, 1, 10, :status)"
)


class TestInitialSchema:
    def test_tables_and_columns_match_models(self, migrated):
        engine, _ = migrated
        inspector = inspect(engine)

        assert set(inspector.get_table_names()) == set(Base.metadata.tables)
        for name, table in Base.metadata.tables.items():
            reflected = {column["name"] for column in inspector.get_columns(name)}
            assert reflected == set(table.columns.keys()), name

    def test_indexes_and_checks_match_models(self, migrated):
        engine, _ = migrated
        inspector = inspect(engine)

        for name, table in Base.metadata.tables.items():
            indexes = {index["name"] for index in inspector.get_indexes(name)}
            assert indexes == {index.name for index in table.indexes}, name
            checks = {check["name"] for check in inspector.get_check_constraints(name)}
            assert checks == {
                c.name for c in table.constraints if isinstance(c, CheckConstraint)
            }, name

    def test_one_active_booking_per_passenger_and_trip(self, migrated):
        engine, _ = migrated
        with engine.begin() as connection:
            insert_trip(connection)
            connection.execute(BOOK, {"status": "confirmed"})

        with pytest.raises(IntegrityError):
            with engine.begin() as connection:
                connection.execute(BOOK, {"status": "pending"})

        with engine.begin() as connection:
            connection.execute(text("UPDATE bookings SET status = 'cancelled'"))
            connection.execute(BOOK, {"status": "confirmed"})
            count = connection.execute(text("SELECT COUNT(*) FROM bookings")).scalar()
        assert count == 2

    def test_available_seats_cannot_exceed_offered(self, migrated):
        engine, _ = migrated
        with pytest.raises(IntegrityError):
            with engine.begin() as connection:
                insert_trip(connection, offered=2, available=3)

    def test_downgrade_drops_everything(self, migrated):
        engine, migration = migrated
        run(engine, migration.downgrade)

        assert inspect(engine).get_table_names() == []
