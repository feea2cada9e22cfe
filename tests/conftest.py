import os

# Settings are read at import time, so the environment must be ready first
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_bnb.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ALGORITHM", "HS256")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ["PROPERTY_SERVICE_URL"] = ""

import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from bnbmanager import models
from bnbmanager.config import settings
from bnbmanager.database import Base, get_db, get_redis_client
from bnbmanager.main import app
from bnbmanager.routers import booking_router

# --- Test Database Setup ---
engine = create_engine(
    os.environ["DATABASE_URL"], connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Every API test runs "today" on this date
TODAY = datetime.date(2030, 1, 1)


def create_test_token(user_id: str = "user-1", is_admin: bool = False) -> str:
    """Mints a token the way the identity provider would."""
    payload = {"sub": user_id, "app_metadata": {"is_admin": is_admin}}
    token = jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return f"Bearer {token}"


# --- Database Management Fixtures ---
@pytest.fixture(scope="session", autouse=True)
def setup_db():
    """Creates and drops the test database tables."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Provides a clean database session for each test."""
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def make_property(db_session):
    """Inserts a property and returns it."""
    def _make_property(owner_id: str = "owner-1", price_per_night="100.00", is_available: bool = True, **fields):
        db_property = models.Property(
            name=fields.pop("name", "Seaside cottage"),
            description=fields.pop("description", "Two bedrooms, sea view"),
            location=fields.pop("location", "Brighton"),
            price_per_night=Decimal(price_per_night),
            is_available=is_available,
            owner_id=owner_id,
            **fields,
        )
        db_session.add(db_property)
        db_session.commit()
        db_session.refresh(db_property)
        return db_property
    return _make_property


@pytest.fixture
def make_booking(db_session):
    """Inserts a booking directly, bypassing admission."""
    def _make_booking(property_id: int, check_in: datetime.date, check_out: datetime.date,
                      user_id: str = "user-99", total_price="0.00"):
        db_booking = models.Booking(
            property_id=property_id,
            user_id=user_id,
            check_in=check_in,
            check_out=check_out,
            total_price=Decimal(total_price),
        )
        db_session.add(db_booking)
        db_session.commit()
        db_session.refresh(db_booking)
        return db_booking
    return _make_booking


# --- Auth headers ---
@pytest.fixture
def auth_headers():
    """Authorization headers for the default test user (user-1)."""
    return {"Authorization": create_test_token()}


@pytest.fixture
def other_auth_headers():
    return {"Authorization": create_test_token("user-2")}


@pytest.fixture
def admin_headers():
    return {"Authorization": create_test_token("admin-1", is_admin=True)}


# --- Mocking External Services ---
@pytest.fixture(scope="function", autouse=True)
def mock_rate_limiter_init(mocker):
    """
    FastAPILimiter.init talks to Redis on startup; the limiters themselves
    are overridden in the client fixture.
    """
    mocker.patch("bnbmanager.main.FastAPILimiter.init", new_callable=AsyncMock)


@pytest.fixture
def redis_mock():
    """A Redis client with an always-empty cache."""
    client = MagicMock()
    client.get.return_value = None
    client.scan_iter.return_value = []
    return client


# --- API Test Client Fixture ---
@pytest.fixture(scope="function")
def client(db_session, redis_mock):
    """Provides a TestClient with the database, cache, clock and limiters overridden."""
    def override_get_db():
        # db_session closes it; closing here would detach the test's fixtures
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis_client] = lambda: redis_mock
    app.dependency_overrides[booking_router.get_clock] = lambda: (lambda: TODAY)
    app.dependency_overrides[booking_router.write_rate_limit] = lambda: None
    app.dependency_overrides[booking_router.read_rate_limit] = lambda: None

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
