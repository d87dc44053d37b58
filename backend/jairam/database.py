from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.orm.exc import StaleDataError
import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./test.db")

if DATABASE_URL.startswith("sqlite"):
    sqlite_args = {"check_same_thread": False, "timeout": 30}
else:
    sqlite_args = {}

engine = create_engine(DATABASE_URL, connect_args=sqlite_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _conflict(exc: StaleDataError):
    from .errors import ConcurrentModification

    return ConcurrentModification(
        "The submission was modified by another request; reload and retry"
    )


def flush_or_conflict(db) -> None:
    """Flush pending changes, surfacing optimistic-lock failures as domain conflicts."""

    try:
        db.flush()
    except StaleDataError as exc:
        raise _conflict(exc) from exc


def commit_or_conflict(db) -> None:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise _conflict(exc) from exc
