from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .config import get_settings

# ---------- Engine / Session ----------
DB_URL = get_settings().db_url

# check_same_thread=False: FastAPI runs sync endpoints in a threadpool
_connect_args = {"check_same_thread": False} if DB_URL.startswith("sqlite") else {}

# echo=False to keep tests quiet
engine: Engine = create_engine(DB_URL, echo=False, connect_args=_connect_args)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
)


def init_db() -> None:
    """
    Create ORM tables (no-ops on existing ones).
    """
    # Import models here to avoid circular imports
    from .models import Base  # noqa: WPS433 (import inside function)

    Base.metadata.create_all(bind=engine)


# convenience context manager used by the history store
@contextmanager
def db_session() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
