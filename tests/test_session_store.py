"""
Tests for the Redis-backed SessionStore.
"""
import threading
import pytest
from unittest.mock import MagicMock
from redis.exceptions import ConnectionError as RedisConnectionError

from conversation.context import ConversationContext
from conversation.session_store import SessionStore
from conversation.states import ConversationState
from error_handling.exceptions import SessionStoreError


class TestKeysAndTTL:
    """Test key layout and sliding expiration."""

    def test_key_format(self, session_store):
        assert session_store.build_key("tenant-001", "U1") == "line:conversation:tenant-001:U1"

    def test_save_sets_ttl(self, session_store, fake_redis):
        session_store.save(ConversationContext.create("t1", "U1"))
        assert fake_redis.ttls["line:conversation:t1:U1"] == 1800

    def test_read_refreshes_ttl(self, session_store, fake_redis):
        session_store.save(ConversationContext.create("t1", "U1"))
        fake_redis.ttls["line:conversation:t1:U1"] = 5

        session_store.get("t1", "U1")

        assert fake_redis.ttls["line:conversation:t1:U1"] == 1800
        assert ("expire", "line:conversation:t1:U1") in fake_redis.calls

    def test_miss_does_not_refresh(self, session_store, fake_redis):
        assert session_store.get("t1", "nobody") is None
        assert not any(call[0] == "expire" for call in fake_redis.calls)


class TestGetOrCreate:
    """Test the get-or-create lifecycle."""

    def test_miss_yields_fresh_idle_context(self, session_store):
        context = session_store.get_or_create("t1", "U1")
        assert context.state == ConversationState.IDLE
        assert context.history == []
        assert context.tenant_id == "t1"
        assert context.user_id == "U1"

    def test_is_idempotent(self, session_store, fake_redis):
        first = session_store.get_or_create("t1", "U1")
        second = session_store.get_or_create("t1", "U1")
        assert first.state == second.state == ConversationState.IDLE
        assert first.history == second.history == []
        # nothing is written until the caller saves
        assert fake_redis.data == {}

    def test_returns_saved_context(self, session_store):
        context = ConversationContext.create("t1", "U1")
        context.state = ConversationState.SELECTING_DATE
        context.history = [ConversationState.SELECTING_SERVICE]
        context.service_id = "svc"
        session_store.save(context)

        loaded = session_store.get_or_create("t1", "U1")
        assert loaded.state == ConversationState.SELECTING_DATE
        assert loaded.history == [ConversationState.SELECTING_SERVICE]
        assert loaded.service_id == "svc"

    def test_expired_session_starts_over(self, session_store, fake_redis):
        context = ConversationContext.create("t1", "U1")
        context.state = ConversationState.SELECTING_TIME
        session_store.save(context)
        fake_redis.expire_now("line:conversation:t1:U1")

        assert session_store.get_or_create("t1", "U1").state == ConversationState.IDLE

    def test_sessions_are_isolated_per_tenant_and_user(self, session_store):
        context = ConversationContext.create("t1", "U1")
        context.state = ConversationState.SELECTING_DATE
        session_store.save(context)

        assert session_store.get("t2", "U1") is None
        assert session_store.get("t1", "U2") is None

    def test_corrupt_payload_is_treated_as_missing(self, session_store, fake_redis):
        fake_redis.data["line:conversation:t1:U1"] = "{not json"
        assert session_store.get("t1", "U1") is None
        assert session_store.get_or_create("t1", "U1").state == ConversationState.IDLE


class TestDeleteAndLock:
    """Test deletion and the per-user lock."""

    def test_delete(self, session_store, fake_redis):
        session_store.save(ConversationContext.create("t1", "U1"))
        session_store.delete("t1", "U1")
        assert fake_redis.data == {}

    def test_delete_missing_is_fine(self, session_store):
        session_store.delete("t1", "ghost")

    def test_lock_uses_session_key(self, session_store, fake_redis):
        with session_store.lock("t1", "U1"):
            pass
        assert fake_redis.lock_acquisitions == ["lock:line:conversation:t1:U1"]

    def test_lock_timeout_raises(self, fake_redis):
        store = SessionStore(fake_redis, lock_wait_seconds=0)
        held = fake_redis.named_lock("lock:line:conversation:t1:U1")
        held.acquire()
        try:
            with pytest.raises(SessionStoreError):
                with store.lock("t1", "U1"):
                    pass
        finally:
            held.release()

    def test_lock_serializes_writers(self, session_store):
        order = []
        inside = threading.Event()
        release = threading.Event()

        def first():
            with session_store.lock("t1", "U1"):
                order.append("first-in")
                inside.set()
                release.wait(timeout=2)
                order.append("first-out")

        def second():
            inside.wait(timeout=2)
            with session_store.lock("t1", "U1"):
                order.append("second-in")

        t1 = threading.Thread(target=first)
        t2 = threading.Thread(target=second)
        t1.start()
        t2.start()
        inside.wait(timeout=2)
        release.set()
        t1.join(timeout=5)
        t2.join(timeout=5)

        assert order == ["first-in", "first-out", "second-in"]


class TestRedisFailures:
    """Test that Redis errors surface as SessionStoreError."""

    def test_read_failure(self):
        client = MagicMock()
        client.get.side_effect = RedisConnectionError("down")
        store = SessionStore(client)
        with pytest.raises(SessionStoreError) as exc_info:
            store.get("t1", "U1")
        assert exc_info.value.key == "line:conversation:t1:U1"

    def test_write_failure(self):
        client = MagicMock()
        client.set.side_effect = RedisConnectionError("down")
        store = SessionStore(client)
        with pytest.raises(SessionStoreError):
            store.save(ConversationContext.create("t1", "U1"))
