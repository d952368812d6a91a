"""
Pytest configuration and shared fixtures.
"""
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from datetime import date, time, timedelta
from typing import Generator, Optional
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from models.database import Base
from models.schemas import BookingCreate
from conversation.session_store import SessionStore
from conversation.state_manager import ConversationStateMachine
from services.booking_service import BookingService
from services.responder import Responder
from agent.dispatcher import EventDispatcher
from agent.events import InboundEvent
from error_handling.exceptions import NotificationError


TENANT_ID = "tenant-001"
USER_ID = "U1234567890"


# ============================================================================
# Test doubles
# ============================================================================

class FakeRedisLock:
    """Lock double backed by a threading.Lock per name."""

    def __init__(self, server: "FakeRedis", name: str, blocking_timeout: Optional[float]):
        self.server = server
        self.name = name
        self.blocking_timeout = blocking_timeout
        self._lock = server.named_lock(name)

    def acquire(self) -> bool:
        if self.blocking_timeout == 0:
            acquired = self._lock.acquire(blocking=False)
        elif self.blocking_timeout is None:
            acquired = self._lock.acquire()
        else:
            acquired = self._lock.acquire(timeout=self.blocking_timeout)
        if acquired:
            self.server.lock_acquisitions.append(self.name)
        return acquired

    def release(self) -> None:
        self._lock.release()


class FakeRedis:
    """
    In-memory stand-in for the handful of Redis commands the app uses.

    TTLs are recorded, not enforced; tests call expire_now() to simulate expiry.
    """

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.lock_acquisitions = []
        self.calls = []
        self._locks = {}
        self._guard = threading.Lock()

    def named_lock(self, name: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(name, threading.Lock())

    def get(self, key):
        self.calls.append(("get", key))
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.calls.append(("set", key))
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = ex
        else:
            self.ttls.pop(key, None)
        return True

    def expire(self, key, seconds):
        self.calls.append(("expire", key))
        if key not in self.data:
            return False
        self.ttls[key] = seconds
        return True

    def delete(self, *keys):
        self.calls.append(("delete",) + keys)
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    def incr(self, key):
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value)
        return value

    def decr(self, key):
        value = int(self.data.get(key, 0)) - 1
        self.data[key] = str(value)
        return value

    def lock(self, name, timeout=None, blocking_timeout=None):
        return FakeRedisLock(self, name, blocking_timeout)

    def expire_now(self, key):
        self.data.pop(key, None)
        self.ttls.pop(key, None)


class RecordingMessagingClient:
    """Messaging client double that records what would have been sent."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.replies = []
        self.pushes = []

    def reply(self, tenant_id, reply_token, message):
        if self.fail:
            raise NotificationError("reply token expired", channel="reply")
        self.replies.append((tenant_id, reply_token, message))

    def push(self, tenant_id, user_id, message):
        if self.fail:
            raise NotificationError("push rejected", channel="push")
        self.pushes.append((tenant_id, user_id, message))

    @property
    def sent(self):
        return [m for _, _, m in self.replies] + [m for _, _, m in self.pushes]


# ============================================================================
# Database
# ============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """
    Create an in-memory SQLite database with all tables.
    One shared connection so background threads see the same data.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """
    Create a database session for testing.
    """
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def session_scope(maker: sessionmaker):
    """Context manager factory with the same contract as models.database.get_db_session."""

    @contextmanager
    def factory():
        session = maker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return factory


@pytest.fixture(scope="function")
def db_session_factory(session_factory):
    return session_scope(session_factory)


@pytest.fixture(scope="function")
def file_db_engine(tmp_path):
    """
    File-backed SQLite database with a connection per session.
    Unlike db_engine, concurrent sessions really run in separate transactions.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'bookings.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def file_session_factory(file_db_engine):
    return sessionmaker(bind=file_db_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def tomorrow() -> date:
    return date.today() + timedelta(days=1)


@pytest.fixture(scope="function")
def booking_service(db_session: Session) -> BookingService:
    """
    Create a BookingService instance without retry pauses.
    """
    return BookingService(db_session, retry_wait_seconds=0)


@pytest.fixture(scope="function")
def make_booking_data(tomorrow):
    """
    Factory for booking requests; defaults to a 30 minute booking with staff-amy tomorrow.
    """

    def factory(**overrides) -> BookingCreate:
        data = {
            "tenant_id": TENANT_ID,
            "customer_id": "cust-1",
            "service_id": "svc-cut",
            "service_name": "Haircut",
            "duration_minutes": 30,
            "staff_id": "staff-amy",
            "booking_date": tomorrow,
            "start_time": time(10, 0),
        }
        data.update(overrides)
        return BookingCreate(**data)

    return factory


# ============================================================================
# Conversation components
# ============================================================================

@pytest.fixture(scope="function")
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture(scope="function")
def session_store(fake_redis) -> SessionStore:
    return SessionStore(fake_redis, ttl_seconds=1800, key_prefix="line:conversation:")


@pytest.fixture(scope="function")
def state_machine() -> ConversationStateMachine:
    return ConversationStateMachine()


@pytest.fixture(scope="function")
def messaging_client() -> RecordingMessagingClient:
    return RecordingMessagingClient()


@pytest.fixture(scope="function")
def dispatcher(session_store, state_machine, messaging_client, db_session_factory) -> EventDispatcher:
    """
    Fully wired dispatcher over fake Redis, in-memory SQLite and a recording transport.
    """
    return EventDispatcher(
        session_store,
        state_machine,
        Responder(messaging_client),
        db_session_factory=db_session_factory,
        booking_service_factory=lambda db: BookingService(db, retry_wait_seconds=0),
    )


# ============================================================================
# Event builders
# ============================================================================

@pytest.fixture(scope="function")
def postback_event():
    def factory(data: str, user_id: str = USER_ID, reply_token: Optional[str] = "reply-token") -> InboundEvent:
        return InboundEvent.model_validate({
            "type": "postback",
            "replyToken": reply_token,
            "source": {"type": "user", "userId": user_id},
            "postback": {"data": data},
        })
    return factory


@pytest.fixture(scope="function")
def text_event():
    def factory(text: str, user_id: str = USER_ID, reply_token: Optional[str] = "reply-token") -> InboundEvent:
        return InboundEvent.model_validate({
            "type": "message",
            "replyToken": reply_token,
            "source": {"type": "user", "userId": user_id},
            "message": {"id": "m1", "type": "text", "text": text},
        })
    return factory
