"""
Integration tests for registration and login endpoints.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from chatquota.main import app
from chatquota.db.base import Base
from chatquota.db.models import Subscription, User
from chatquota.core.auth_dependency import get_db
from chatquota.core.config import APP_ENV
from chatquota.core.security import create_access_token, decode_access_token


TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


def override_get_db():
    """Override get_db dependency for testing."""
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function", autouse=True)
def setup_db():
    """Create and drop tables for each test."""
    app.dependency_overrides[get_db] = override_get_db
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


def _register(client, username="frank", password="SecurePass123", **extra):
    return client.post("/auth/register", json={"username": username, "password": password, **extra})


def test_register_creates_user_with_free_entitlement(client):
    """Test registration creates the user and a Free subscription."""
    response = _register(client)

    assert response.status_code == 201
    data = response.json()
    assert data["username"] == "frank"
    assert data["role"] == "User"

    db = TestSessionLocal()
    try:
        subs = db.query(Subscription).filter(Subscription.user_id == data["id"]).all()
        assert len(subs) == 1
        assert subs[0].plan_type == "Free"
        assert db.query(User).one().password_hash != "SecurePass123"
    finally:
        db.close()


def test_register_duplicate_username(client):
    """Test a taken username returns 400."""
    _register(client)
    response = _register(client)

    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


def test_register_cannot_self_assign_admin(client):
    """Test an anonymous caller asking for Admin is registered as a plain User."""
    response = _register(client, role="Admin")

    assert response.status_code == 201
    assert response.json()["role"] == "User"

    login = client.post("/auth/login", data={"username": "frank", "password": "SecurePass123"})
    token = login.json()["access_token"]
    assert decode_access_token(token)["role"] == "User"

    response = client.put(
        "/payment/admin/update-subscription",
        params={"user_id": response.json()["id"], "plan_type": "Premium", "is_paid": True},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 403

    db = TestSessionLocal()
    try:
        assert db.query(User).one().role == "User"
    finally:
        db.close()


def test_register_short_password(client):
    """Test schema validation rejects short passwords."""
    response = _register(client, password="short")
    assert response.status_code == 422


def test_login_success(client):
    """Test login returns a bearer token carrying the user id and role."""
    user_id = _register(client).json()["id"]

    response = client.post(
        "/auth/login",
        data={"username": "frank", "password": "SecurePass123"},
        headers={"Content-Type": "application/x-www-form-urlencoded"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    payload = decode_access_token(data["access_token"])
    assert payload["sub"] == str(user_id)
    assert payload["role"] == "User"


def test_login_wrong_password(client):
    """Test login with wrong password returns 401."""
    _register(client)
    response = client.post("/auth/login", data={"username": "frank", "password": "wrong_password_123"})
    assert response.status_code == 401


def test_login_unknown_user(client):
    """Test login with non-existent user returns 401."""
    response = client.post("/auth/login", data={"username": "nobody", "password": "whatever123"})
    assert response.status_code == 401


def test_protected_route_requires_token(client):
    """Test protected endpoints reject missing and invalid tokens."""
    assert client.get("/chat/tokens").status_code == 401
    response = client.get("/chat/tokens", headers={"Authorization": "Bearer invalid_token"})
    assert response.status_code == 401


def test_token_for_deleted_user(client):
    """Test a valid token for an unknown user returns 404."""
    token = create_access_token({"sub": "999", "role": "User"})
    response = client.get("/chat/tokens", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 404


def test_health(client):
    """Test the health endpoint reports the database as connected."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["database"] == "connected"


def test_detailed_health(client):
    """Test the detailed health endpoint reports environment and uptime."""
    response = client.get("/health/detailed")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["version"] == "1.0.0"
    assert data["environment"] == APP_ENV
    assert data["uptime_seconds"] >= 0
