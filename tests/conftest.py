"""Pytest configuration and shared fixtures."""

import re
import threading
from typing import List, Sequence
from urllib.parse import unquote

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from meditrap.core.approval import RequestLockManager, ThresholdApprovalService
from meditrap.core.config import Settings, get_settings
from meditrap.core.kv_store import MemoryKeyValueStore
from meditrap.db.base import Base
import meditrap.db.models  # noqa: F401
from meditrap.services.notifications import (
    ApprovalNotifier,
    DeliveryResult,
    DeliveryStatus,
    EmailMessage,
)
from tests.factories import (
    create_admin,
    create_purchaser,
    create_staff,
    create_stockist,
    create_user,
)


class RecordingNotifier(ApprovalNotifier):
    """Collects outgoing mail instead of sending it."""

    def __init__(self):
        self.messages: List[EmailMessage] = []
        self._lock = threading.Lock()

    def dispatch(self, messages: Sequence[EmailMessage]) -> List[DeliveryResult]:
        with self._lock:
            self.messages.extend(messages)
        return [DeliveryResult(m.recipient, DeliveryStatus.SENT) for m in messages]

    def for_recipient(self, email: str) -> List[EmailMessage]:
        return [m for m in self.messages if m.recipient == email]

    def token_for(self, email: str) -> str:
        """Raw token from the latest link mailed to a recipient."""
        message = self.for_recipient(email)[-1]
        match = re.search(r"token=([^\s&\"]+)", message.text)
        return unquote(match.group(1))


# ---------------------------------------------------------------------------
# Settings and infrastructure
# ---------------------------------------------------------------------------


@pytest.fixture
def settings():
    """Settings isolated from any .env file."""
    return Settings(
        _env_file=None,
        kv_backend="memory",
        frontend_url="http://app.test",
        approval_threshold=3,
        approval_lock_timeout=10.0,
        approval_lock_ttl=30,
        smtp_host=None,
        log_to_file=False,
    )


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so several sessions (and threads) share one database."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'meditrap-test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def lock_manager(kv_store, settings):
    return RequestLockManager(kv_store, timeout=settings.approval_lock_timeout, ttl=settings.approval_lock_ttl)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def approval_service(db_session, lock_manager, notifier, settings):
    return ThresholdApprovalService(db_session, lock_manager, notifier=notifier, settings=settings)


@pytest.fixture
def service_for(session_factory, lock_manager, settings):
    """Build an approval service on a fresh session, as a separate API worker would."""
    sessions = []

    def _make(notifier=None, grants=None):
        session = session_factory()
        sessions.append(session)
        return ThresholdApprovalService(session, lock_manager, notifier=notifier, grants=grants, settings=settings)

    yield _make
    for session in sessions:
        session.close()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def user_factory(db_session):
    def _create(**kwargs):
        user = create_user(db_session, **kwargs)
        db_session.commit()
        return user
    return _create


@pytest.fixture
def admin_factory(db_session):
    def _create(**kwargs):
        admin = create_admin(db_session, **kwargs)
        db_session.commit()
        return admin
    return _create


@pytest.fixture
def stockist_factory(db_session):
    def _create(**kwargs):
        stockist = create_stockist(db_session, **kwargs)
        db_session.commit()
        return stockist
    return _create


@pytest.fixture
def purchaser_factory(db_session):
    def _create(**kwargs):
        purchaser = create_purchaser(db_session, **kwargs)
        db_session.commit()
        return purchaser
    return _create


@pytest.fixture
def staff_factory(db_session):
    def _create(stockist, **kwargs):
        staff = create_staff(db_session, stockist, **kwargs)
        db_session.commit()
        return staff
    return _create


@pytest.fixture
def stockists(stockist_factory):
    """Five approved stockists."""
    return [stockist_factory() for _ in range(5)]


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


@pytest.fixture
def client(session_factory, kv_store, notifier, settings):
    """Test client wired to the SQLite database, memory store and recording notifier."""
    from meditrap.api import deps
    from meditrap.api.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[deps.get_db] = _get_db
    app.dependency_overrides[deps.get_kv_store] = lambda: kv_store
    app.dependency_overrides[deps.get_mailer] = lambda: notifier
    app.dependency_overrides[get_settings] = lambda: settings

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
