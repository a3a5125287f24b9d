"""Test configuration and fixtures."""

import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.settings import DatabaseSettings, Settings, StripeOptions
from db.models import Base
from main import app


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Setup test environment variables before each test."""
    original_env = dict(os.environ)

    os.environ.update(
        {
            "DB_URL": "sqlite:///:memory:",  # Use in-memory for faster tests
            "STRIPE_API_KEY": "sk_test_dummy",
            "STRIPE_WEBHOOK_SECRET": "whsec_test_dummy",
            "APP_NAME": "Test Storefront",
            "ENVIRONMENT": "development",
            "DISABLE_TRACING": "true",
            "DEBUG": "true",
        }
    )

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def mock_settings():
    return Settings(
        db=DatabaseSettings(URL="sqlite:///:memory:"),
        STRIPE_API_KEY="sk_test_mock",
        STRIPE_WEBHOOK_SECRET="whsec_test_mock",
        APP_NAME="Test Storefront",
        DEBUG=True,
        ENVIRONMENT="development",
    )


@pytest.fixture
def stripe_options():
    return StripeOptions(api_key="sk_test_mock", webhook_secret="whsec_test_mock")


@pytest.fixture
def test_db_engine():
    """Create a test database engine and setup tables."""
    # Use StaticPool and check_same_thread=False for SQLite testing
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine):
    """Create test database session using the shared engine."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(test_db_engine):
    """Test client with proper database setup."""
    from db.session import get_db, reset_engines

    reset_engines()

    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=test_db_engine
    )

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    reset_engines()


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests (SQLite)")
    config.addinivalue_line("markers", "slow: marks tests as slow running")
