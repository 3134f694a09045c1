"""
Integration tests for /admin endpoints.
"""
import pytest
from datetime import timedelta
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from chatquota.main import app
from chatquota.db.base import Base
from chatquota.db.models import ChatHistory, User
from chatquota.db.models.user import ROLE_ADMIN
from chatquota.core.auth_dependency import get_db
from chatquota.core.clock import utcnow
from chatquota.core.security import create_user_token
from chatquota.services import entitlement_store


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
def db_session():
    """Provide a database session for tests."""
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()


def _create_user(db, username, role="User"):
    user = User(username=username, password_hash="not-a-real-hash", role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_headers(db_session):
    admin = _create_user(db_session, "admin", role=ROLE_ADMIN)
    return {"Authorization": f"Bearer {create_user_token(admin)}"}


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


def test_analytics(client, admin_headers, db_session):
    """Test analytics totals and per-plan buckets over HTTP."""
    buyer = _create_user(db_session, "ivan")
    entitlement_store.upsert_paid(db_session, buyer.id, "Premium", "199000", "card", "tx-1")

    response = client.get("/admin/analytics", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total_users"] == 2
    assert Decimal(data["total_revenue"]) == Decimal("199000")
    buckets = {b["plan_type"]: b for b in data["plan_analytics"]}
    assert set(buckets) == {"Basic", "Premium", "Free"}
    assert buckets["Premium"]["active_subscribers"] == 1
    # the admin has no rows and is counted as Free
    assert buckets["Free"]["total_subscribers"] == 1


def test_analytics_forbidden_for_users(client, db_session):
    """Test non-admins get 403."""
    user = _create_user(db_session, "judy")
    response = client.get("/admin/analytics", headers={"Authorization": f"Bearer {create_user_token(user)}"})
    assert response.status_code == 403


def test_users_listing(client, admin_headers, db_session):
    """Test the admin user listing includes each user's current plan."""
    user = _create_user(db_session, "ken")
    entitlement_store.create_default_free(db_session, user.id)

    response = client.get("/admin/users", headers=admin_headers)

    assert response.status_code == 200
    users = {u["username"]: u for u in response.json()}
    assert users["ken"]["plan_type"] == "Free"
    assert users["ken"]["tokens_limit"] == 500
    assert users["admin"]["subscription_id"] is None


def test_subscriptions_listing(client, admin_headers, db_session):
    """Test every subscription row is listed with its owner."""
    buyer = _create_user(db_session, "lena")
    entitlement_store.create_default_free(db_session, buyer.id)
    entitlement_store.upsert_paid(db_session, buyer.id, "Basic", "99000", "card", "tx-1")

    response = client.get("/admin/subscriptions", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 2
    assert {s["plan_type"] for s in data["subscriptions"]} == {"Free", "Basic"}
    assert all(s["username"] == "lena" for s in data["subscriptions"])
    basic = next(s for s in data["subscriptions"] if s["plan_type"] == "Basic")
    assert basic["is_paid"] is True
    assert basic["tokens_limit"] == 10000


def test_chat_histories_newest_first_with_limit(client, admin_headers, db_session):
    """Test recent chats across users are returned newest first and capped by limit."""
    user = _create_user(db_session, "max")
    now = utcnow()
    for minutes in range(3):
        db_session.add(ChatHistory(
            user_id=user.id,
            user_message=f"question {minutes}",
            ai_response="answer",
            tokens_used=5,
            model="gpt-3.5-turbo",
            created_at=now - timedelta(minutes=minutes),
        ))
    db_session.commit()

    response = client.get("/admin/chat-histories", params={"limit": 2}, headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 2
    assert data["limit"] == 2
    assert [c["user_message"] for c in data["chats"]] == ["question 0", "question 1"]
    assert data["chats"][0]["username"] == "max"


def test_chat_histories_default_limit(client, admin_headers):
    response = client.get("/admin/chat-histories", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"count": 0, "limit": 50, "chats": []}


@pytest.mark.parametrize("path", ["/admin/subscriptions", "/admin/chat-histories"])
def test_admin_listings_forbidden_for_users(client, db_session, path):
    """Test non-admins cannot read other users' data."""
    user = _create_user(db_session, "nina")
    response = client.get(path, headers={"Authorization": f"Bearer {create_user_token(user)}"})
    assert response.status_code == 403


def test_chat_histories_rejects_bad_limit(client, admin_headers):
    assert client.get("/admin/chat-histories", params={"limit": 0}, headers=admin_headers).status_code == 422
