"""
Integration tests for /chat endpoints with a fake completion provider.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from chatquota.main import app
from chatquota.db.base import Base
from chatquota.db.models import ChatHistory, Subscription, User
from chatquota.db.models.user import ROLE_ADMIN
from chatquota.core.auth_dependency import get_db
from chatquota.core.errors import UpstreamError
from chatquota.core.security import create_user_token
from chatquota.llm.provider import Completion, CompletionProvider
from chatquota.llm.router import get_completion_provider
from chatquota.services import entitlement_store


TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeProvider(CompletionProvider):
    def __init__(self):
        self.tokens_used = 10
        self.error = None
        self.connected = True

    def complete(self, message, model):
        if self.error is not None:
            raise self.error
        return Completion(text=f"reply to {message}", tokens_used=self.tokens_used, model=model)

    def validate_connection(self):
        return self.connected


fake_provider = FakeProvider()


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
    fake_provider.__init__()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_completion_provider] = lambda: fake_provider
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
def test_user(db_session):
    return _create_user(db_session, "grace")


@pytest.fixture
def auth_headers(test_user):
    return {"Authorization": f"Bearer {create_user_token(test_user)}"}


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


def test_send_success(client, auth_headers, test_user, db_session):
    """Test a send returns the reply and debits the tokens."""
    response = client.post("/chat/send", json={"message": "hello"}, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["response"] == "reply to hello"
    assert data["tokens_used"] == 10
    assert data["model"] == "gpt-3.5-turbo"
    assert entitlement_store.get_current(db_session, test_user.id).tokens_used == 10


def test_send_quota_exhausted_returns_429(client, auth_headers, test_user, db_session):
    """Test an exhausted budget returns a structured 429."""
    free = entitlement_store.create_default_free(db_session, test_user.id)
    db_session.query(Subscription).filter(Subscription.id == free.id).update({"tokens_used": free.tokens_limit})
    db_session.commit()

    response = client.post("/chat/send", json={"message": "hello"}, headers=auth_headers)

    assert response.status_code == 429
    detail = response.json()["detail"]
    assert detail["error"] == "quota_exhausted"
    assert detail["remaining_tokens"] == 0


def test_send_would_exceed_returns_429(client, auth_headers, test_user, db_session):
    """Test a reply larger than the remaining budget is refused and not recorded."""
    free = entitlement_store.create_default_free(db_session, test_user.id)
    db_session.query(Subscription).filter(Subscription.id == free.id).update(
        {"tokens_used": free.tokens_limit - 3}
    )
    db_session.commit()
    fake_provider.tokens_used = 5

    response = client.post("/chat/send", json={"message": "hello"}, headers=auth_headers)

    assert response.status_code == 429
    detail = response.json()["detail"]
    assert detail["error"] == "would_exceed_budget"
    assert detail["remaining_tokens"] == 3
    assert detail["requested_tokens"] == 5
    assert db_session.query(ChatHistory).count() == 0


def test_send_inactive_subscription_returns_402(client, auth_headers, test_user, db_session):
    """Test an unpaid catalog plan returns 402."""
    entitlement_store.set_entitlement(db_session, test_user.id, "Basic", False)

    response = client.post("/chat/send", json={"message": "hello"}, headers=auth_headers)

    assert response.status_code == 402
    assert response.json()["detail"]["error"] == "no_active_subscription"


def test_send_upstream_error_returns_502(client, auth_headers):
    """Test provider failures return 502 with the error kind."""
    fake_provider.error = UpstreamError(UpstreamError.TIMEOUT, "The AI service is taking too long to respond.")

    response = client.post("/chat/send", json={"message": "hello"}, headers=auth_headers)

    assert response.status_code == 502
    assert response.json()["detail"]["kind"] == "timeout"


def test_send_empty_message_rejected(client, auth_headers):
    """Test empty and whitespace-only messages are rejected."""
    assert client.post("/chat/send", json={"message": ""}, headers=auth_headers).status_code == 422
    assert client.post("/chat/send", json={"message": "   "}, headers=auth_headers).status_code == 400


def test_permission_and_tokens(client, auth_headers):
    """Test a new user may chat with the Free allowance."""
    response = client.get("/chat/permission", headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {"can_chat": True, "remaining_tokens": 500}

    response = client.get("/chat/tokens", headers=auth_headers)
    assert response.json() == {"remaining_tokens": 500}


def test_history(client, auth_headers):
    """Test history lists the caller's messages newest first."""
    client.post("/chat/send", json={"message": "first"}, headers=auth_headers)
    client.post("/chat/send", json={"message": "second"}, headers=auth_headers)

    response = client.get("/chat/history?page=1&page_size=10", headers=auth_headers)

    assert response.status_code == 200
    items = response.json()["items"]
    assert [item["user_message"] for item in items] == ["second", "first"]


def test_connection_requires_admin(client, auth_headers, db_session):
    """Test the provider probe is admin-only."""
    assert client.get("/chat/test-connection", headers=auth_headers).status_code == 403

    admin = _create_user(db_session, "root", role=ROLE_ADMIN)
    headers = {"Authorization": f"Bearer {create_user_token(admin)}"}
    response = client.get("/chat/test-connection", headers=headers)

    assert response.status_code == 200
    assert response.json()["is_connected"] is True
