from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from feedback360.core.config import settings

# SQLite (local runs, tests) shares one connection across the request threadpool
_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True, connect_args=_connect_args)

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


def get_db():
    """
    One session per request. Commits when the handler returns, rolls back if
    it raises; the emailing list cache listens to both outcomes.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
