import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from feedback360.main import app
from feedback360.db.base import Base
from feedback360.db.session import get_db
from feedback360.core.notifications import get_dispatcher
from feedback360.services.emailing_list_cache import EmailingListCache, get_emailing_list_cache

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite://")

if TEST_DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite defers BEGIN on its own; take over so SAVEPOINTs nest correctly
    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")
else:
    engine = create_engine(TEST_DATABASE_URL, pool_pre_ping=True)

TestingSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    join_transaction_mode="create_savepoint",
)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session", autouse=True)
def create_test_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session():
    """
    Uses one outer transaction per test. The session runs inside a SAVEPOINT
    of it, so application code can commit freely and the test still rolls
    everything back at the end.
    """
    connection = engine.connect()
    outer_tx = connection.begin()

    session = TestingSessionLocal(bind=connection)

    try:
        yield session
    finally:
        session.close()
        outer_tx.rollback()
        connection.close()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def cache(clock):
    return EmailingListCache(sliding_seconds=300, absolute_seconds=1800, timer=clock)


@pytest.fixture(autouse=True)
def override_get_db(db_session, cache):
    def _get_db_override():
        try:
            yield db_session
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

    app.dependency_overrides[get_db] = _get_db_override
    app.dependency_overrides[get_emailing_list_cache] = lambda: cache
    yield
    app.dependency_overrides.clear()


class RecordingDispatcher:
    def __init__(self, fail_for: set[str] | None = None):
        self.fail_for = fail_for or set()
        self.assignment_notices = []
        self.reminders = []

    def send_assignment_notice(self, notice):
        if notice.evaluator_email in self.fail_for:
            raise ConnectionError("smtp down")
        self.assignment_notices.append(notice)

    def send_reminder(self, notice):
        if notice.evaluator_email in self.fail_for:
            raise ConnectionError("smtp down")
        self.reminders.append(notice)


@pytest.fixture()
def dispatcher():
    d = RecordingDispatcher()
    app.dependency_overrides[get_dispatcher] = lambda: d
    return d
