import pytest
from fastapi.testclient import TestClient

from app.database import create_db_engine, create_session_factory, init_db
from app.main import app, get_registry
from app.thinking.core_types import EvictionLimits
from app.thinking.engine import SequenceLocks, ThinkingEngine
from app.thinking.sessions import SessionRegistry


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """File-backed SQLite database per test, schema and FTS index created."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'sequences.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def db(session_factory):
    """A plain session; tests commit explicitly where they need to."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def limits():
    return EvictionLimits(max_thought_history=20, max_branches=3, max_thoughts_per_branch=10)


@pytest.fixture
def sequence_locks():
    return SequenceLocks()


@pytest.fixture
def engine(limits, session_factory, sequence_locks):
    """Engine backed by the per-test database."""
    return ThinkingEngine(
        limits=limits,
        session_factory=session_factory,
        sequence_locks=sequence_locks,
        disable_thought_logging=True,
    )


@pytest.fixture
def memory_engine(limits):
    """Engine without sequence storage."""
    return ThinkingEngine(limits=limits, disable_thought_logging=True)


@pytest.fixture
def make_thought():
    """Build a camelCase thought submission."""
    def _make(number, thought=None, total=None, next_needed=True, **extra):
        payload = {
            "thought": thought or f"Thought number {number}",
            "thoughtNumber": number,
            "totalThoughts": total or max(number, 5),
            "nextThoughtNeeded": next_needed,
        }
        payload.update(extra)
        return payload
    return _make


@pytest.fixture
def client(limits, session_factory, sequence_locks):
    """Test client whose sessions use the per-test database."""
    def factory(session_id):
        return ThinkingEngine(
            limits=limits,
            session_factory=session_factory,
            sequence_locks=sequence_locks,
            disable_thought_logging=True,
            session_id=session_id,
        )

    test_registry = SessionRegistry(factory, ttl_seconds=3600)
    app.dependency_overrides[get_registry] = lambda: test_registry
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_registry, None)
