from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from foresight.db.models import SessionLocal


@contextmanager
def get_session_context(bind: Engine | None = None) -> Generator[Session, None, None]:
    """Session that is rolled back on error and always closed."""
    db = SessionLocal(bind=bind) if bind is not None else SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
