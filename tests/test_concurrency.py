"""
Concurrency tests against a file-backed SQLite database.

Each worker thread uses its own session, as request handlers do.
"""
import threading
import pytest
from concurrent.futures import ThreadPoolExecutor

from sqlalchemy.orm import sessionmaker

from chatquota.core.plan_catalog import DEFAULT_PLANS, PlanCatalog
from chatquota.db.base import Base
from chatquota.db.models import ChatHistory, Entitlement, Subscription, User
from chatquota.db.session import build_engine
from chatquota.llm.provider import Completion, CompletionProvider
from chatquota.services import chat_service, entitlement_store, quota_service, usage_recorder
from chatquota.services.chat_service import ChatDenied, ChatSuccess

CATALOG = PlanCatalog(DEFAULT_PLANS, free_token_limit=500)
WORKERS = 8


class FixedProvider(CompletionProvider):
    """Thread-safe fake that bills a fixed number of tokens per call."""

    def __init__(self, tokens_used):
        self.tokens_used = tokens_used
        self._lock = threading.Lock()
        self.calls = 0

    def complete(self, message, model):
        with self._lock:
            self.calls += 1
        return Completion(text="ok", tokens_used=self.tokens_used, model=model)


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def user_id(session_factory):
    db = session_factory()
    try:
        user = User(username="erin", password_hash="not-a-real-hash")
        db.add(user)
        db.commit()
        return user.id
    finally:
        db.close()


def _run_concurrently(count, fn):
    barrier = threading.Barrier(count)

    def worker(i):
        barrier.wait()
        return fn(i)

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(worker, range(count)))


def _in_session(session_factory, fn):
    db = session_factory()
    try:
        return fn(db)
    finally:
        db.close()


def test_concurrent_first_permission_creates_one_free_row(session_factory, user_id):
    """Test racing first permission checks produce exactly one Free row."""
    results = _run_concurrently(
        WORKERS,
        lambda i: _in_session(session_factory, lambda db: quota_service.has_permission(db, user_id, CATALOG)),
    )

    assert all(results)
    db = session_factory()
    try:
        rows = db.query(Subscription).filter(Subscription.user_id == user_id).all()
        assert len(rows) == 1
        assert rows[0].plan_type == "Free"
        assert db.get(Entitlement, user_id).subscription_id == rows[0].id
    finally:
        db.close()


def test_concurrent_debits_sum_exactly(session_factory, user_id):
    """Test N concurrent debits are all recorded with no lost update."""
    free_id = _in_session(session_factory, lambda db: entitlement_store.create_default_free(db, user_id, CATALOG).id)

    _run_concurrently(
        WORKERS,
        lambda i: _in_session(session_factory, lambda db: usage_recorder.debit(db, free_id, 7)),
    )

    used = _in_session(session_factory, lambda db: db.get(Subscription, free_id).tokens_used)
    assert used == 7 * WORKERS


def test_concurrent_sends_sum_exactly(session_factory, user_id):
    """Test concurrent successful sends debit the sum of their token counts."""
    provider = FixedProvider(tokens_used=11)

    results = _run_concurrently(
        WORKERS,
        lambda i: _in_session(
            session_factory,
            lambda db: chat_service.send_chat(db, user_id, f"message {i}", "gpt-3.5-turbo", provider, CATALOG),
        ),
    )

    assert all(isinstance(result, ChatSuccess) for result in results)

    def check(db):
        current = entitlement_store.get_current(db, user_id)
        assert current.tokens_used == 11 * WORKERS
        assert db.query(ChatHistory).filter(ChatHistory.user_id == user_id).count() == WORKERS
        assert db.query(Subscription).filter(Subscription.user_id == user_id).count() == 1

    _in_session(session_factory, check)


def test_concurrent_sends_never_overspend(session_factory, user_id):
    """Test racing sends near the limit never push usage past it."""
    free_id = _in_session(session_factory, lambda db: entitlement_store.create_default_free(db, user_id, CATALOG).id)
    _in_session(session_factory, lambda db: usage_recorder.debit(db, free_id, 470))
    provider = FixedProvider(tokens_used=10)

    results = _run_concurrently(
        WORKERS,
        lambda i: _in_session(
            session_factory,
            lambda db: chat_service.send_chat(db, user_id, f"message {i}", "gpt-3.5-turbo", provider, CATALOG),
        ),
    )

    successes = [r for r in results if isinstance(r, ChatSuccess)]
    denials = [r for r in results if isinstance(r, ChatDenied)]
    assert len(successes) == 3
    assert len(successes) + len(denials) == WORKERS

    def check(db):
        sub = db.get(Subscription, free_id)
        assert sub.tokens_used == 500
        assert sub.tokens_used <= sub.tokens_limit
        assert db.query(ChatHistory).filter(ChatHistory.user_id == user_id).count() == 3

    _in_session(session_factory, check)
