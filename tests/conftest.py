"""
Shared fixtures: in-memory SQLite database and a TestClient wired to
provider fakes.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import pathwise.db.models  # noqa: F401
from pathwise.api.deps import get_analysis_service, get_email_service, get_payment_provider
from pathwise.core.auth_dependency import get_db
from pathwise.core.rate_limit import reset_rate_limits
from pathwise.db.base import Base
from pathwise.main import app
from pathwise.services.analysis_service import AnalysisService
from tests.helpers import FakeEmailService, FakeStripe

# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def fake_stripe():
    return FakeStripe()


@pytest.fixture
def fake_email():
    return FakeEmailService()


@pytest.fixture
def analysis_service():
    return AnalysisService(None)


@pytest.fixture
def client(db, fake_stripe, fake_email, analysis_service):
    def override_get_db():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_provider] = lambda: fake_stripe
    app.dependency_overrides[get_email_service] = lambda: fake_email
    app.dependency_overrides[get_analysis_service] = lambda: analysis_service
    reset_rate_limits()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    reset_rate_limits()
