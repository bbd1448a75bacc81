import pytest
import os
from datetime import date, timedelta
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from app.database import Base, get_db
from app.main import app
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def enable_sqlite_savepoints(target_engine):
    """Let SQLAlchemy, not pysqlite, emit BEGIN so SAVEPOINTs nest properly."""
    @event.listens_for(target_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


enable_sqlite_savepoints(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create tables once for the whole test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """
    Clean database session per test. Service commits and rollbacks act on
    savepoints, so everything is discarded when the outer transaction rolls back.
    """
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(scope="function")
def make_employee(db_session):
    """Factory for directory rows."""
    from app.models.employee import Employee

    def _make(
        status="permanent",
        gender="female",
        date_of_joining=date(2022, 1, 3),
        base_salary=60000.0,
        full_name="Test Employee",
    ):
        employee = Employee(
            full_name=full_name,
            gender=gender,
            employment_status=status,
            date_of_joining=date_of_joining,
            base_salary=base_salary,
            is_active=True,
        )
        db_session.add(employee)
        db_session.commit()
        return employee
    return _make


@pytest.fixture(scope="function")
def seed_balances(db_session):
    """Seed the default allocation for an employee and year."""
    from app.services.directory import EmployeeDirectory
    from app.services.leave_ledger import LeaveLedger

    def _seed(employee, year):
        record = EmployeeDirectory(db_session).get_employee(employee.id)
        LeaveLedger(db_session).seed_balances(record, year)
        db_session.commit()
    return _seed


@pytest.fixture(scope="function")
def permanent_employee(make_employee, seed_balances):
    employee = make_employee()
    seed_balances(employee, 2025)
    return employee


@pytest.fixture(scope="function")
def next_monday():
    """A Monday at least two weeks out, for API tests that use today's date."""
    day = date.today() + timedelta(days=14)
    return day + timedelta(days=(7 - day.weekday()) % 7)


@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
