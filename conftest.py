import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, init_db
from dependencies import get_db, limiter
from main import app

# One shared in-memory SQLite connection, so every session sees the same data
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield


@pytest.fixture
def db_session():
    """Fresh tables per test, dropped afterwards."""
    init_db(bind=test_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def client_factory(db_session):
    """
    Builds TestClients against the test database. Each client has its own
    cookie jar, i.e. behaves like a separate browser.
    """
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    # Host header must match TrustedHostMiddleware
    yield lambda: TestClient(app, base_url="http://localhost:8000")
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def client(client_factory):
    return client_factory()


@pytest.fixture
def register_user(client_factory):
    """Registers ``username`` and returns a client logged in as that user."""
    def _register(username: str, password: str = "password1") -> TestClient:
        c = client_factory()
        res = c.post("/register", json={"username": username, "password": password})
        assert res.status_code == 201, res.text
        return c
    return _register
