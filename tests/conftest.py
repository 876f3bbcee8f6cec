import os

# Must be set before stackit reads its settings
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("NODE_ENV", "test")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from stackit.config import get_settings  # noqa: E402
from stackit.core import StackitCore  # noqa: E402
from stackit.crud import crud  # noqa: E402
from stackit.database import Base  # noqa: E402
from stackit.database import make_engine  # noqa: E402
from stackit.database import make_sessionmaker  # noqa: E402
from stackit.events import EventBus  # noqa: E402
from stackit.models.enums import UserRole  # noqa: E402


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """Keep retry back-off negligible so contention tests stay quick."""
    monkeypatch.setattr(get_settings(), "retry_base_delay", 0.001)


@pytest.fixture
def test_engine(tmp_path):
    """
    File-backed SQLite database per test.

    Services run their units of work in worker threads, so the tests need a
    real database file that several connections can share (an in-memory
    database is private to one connection).
    """
    engine = make_engine(f"sqlite:///{tmp_path / 'stackit-test.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return make_sessionmaker(test_engine)


@pytest.fixture
def db_session(session_factory):
    """Plain session for CRUD-level tests; the test commits explicitly."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def bus():
    return EventBus()


@pytest_asyncio.fixture
async def core(session_factory, bus):
    """Wired core; pending event deliveries are drained on teardown."""
    stackit_core = StackitCore(session_factory=session_factory, bus=bus)
    yield stackit_core
    await stackit_core.close()


@pytest.fixture
def make_profile(session_factory):
    """Factory inserting a committed profile directly through CRUD."""

    def _make(username: str, role: UserRole = UserRole.USER):
        db = session_factory()
        try:
            profile = crud.create_profile(
                db,
                username=username,
                email=f"{username}@example.com",
                password_hash=f"hash-{username}",
                role=role,
            )
            db.commit()
            return profile
        finally:
            db.close()

    return _make


@pytest.fixture
def asker(make_profile):
    return make_profile("asker")


@pytest.fixture
def answerer(make_profile):
    return make_profile("answerer")


@pytest.fixture
def voter(make_profile):
    return make_profile("voter")


@pytest.fixture
def admin(make_profile):
    return make_profile("admin", role=UserRole.ADMIN)


@pytest.fixture
def sample_question(session_factory, asker):
    db = session_factory()
    try:
        question = crud.create_question(
            db, author_id=asker.id, title="How do I merge dicts?", body="Two dicts, one result.", tags={"python"}
        )
        db.commit()
        return question
    finally:
        db.close()


@pytest.fixture
def sample_answer(session_factory, sample_question, answerer):
    db = session_factory()
    try:
        answer = crud.create_answer(
            db, question_id=sample_question.id, author_id=answerer.id, content="Use the | operator."
        )
        db.commit()
        return answer
    finally:
        db.close()
