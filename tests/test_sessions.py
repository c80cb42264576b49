"""Tests for the per-session engine registry."""
import pytest

from app.thinking.engine import ThinkingEngine
from app.thinking.sessions import SessionRegistry


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(limits, clock):
    def factory(session_id):
        return ThinkingEngine(limits=limits, disable_thought_logging=True, session_id=session_id)
    return SessionRegistry(factory, ttl_seconds=60, clock=clock)


class TestSessionRegistry:
    """Engines per session id."""

    def test_same_session_same_engine(self, registry):
        """Repeated lookups return the same engine."""
        first = registry.get("alice")
        assert registry.get("alice") is first
        assert first.session_id == "alice"

    def test_sessions_are_isolated(self, registry, make_thought):
        """Different session ids get separate engines."""
        registry.get("alice").process(make_thought(1))
        result = registry.get("bob").process(make_thought(1))
        assert result["thoughtHistoryLength"] == 1
        assert len(registry) == 2

    def test_missing_id_uses_default(self, registry):
        """No session id means the default session."""
        assert registry.get(None) is registry.get("default")

    def test_idle_sessions_expire(self, registry, clock):
        """Sessions idle past the TTL are dropped."""
        stale = registry.get("stale")
        clock.now = 30
        registry.get("fresh")
        clock.now = 61

        assert registry.expire() == 1
        assert "stale" not in registry
        assert "fresh" in registry
        assert registry.get("stale") is not stale

    def test_use_refreshes_session(self, registry, clock):
        """Using a session resets its idle time."""
        engine = registry.get("alice")
        clock.now = 50
        registry.get("alice")
        clock.now = 100
        assert registry.get("alice") is engine

    def test_drop(self, registry):
        registry.get("alice")
        assert registry.drop("alice") is True
        assert registry.drop("alice") is False

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValueError):
            SessionRegistry(lambda session_id: None, ttl_seconds=0)
