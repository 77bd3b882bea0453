from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session

from .config import settings


class Base(DeclarativeBase):
    pass


_is_sqlite = settings.database_url.startswith("sqlite")

engine = create_engine(
    settings.database_url,
    echo=settings.log_sql,
    future=True,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def init_db() -> None:
    """Create every table registered on ``Base`` (no-op for existing ones)."""
    from . import models  # noqa: F401 – registers ORM mappings with Base.metadata

    Base.metadata.create_all(bind=engine)


def drop_db() -> None:
    from . import models  # noqa: F401

    Base.metadata.drop_all(bind=engine)


@contextmanager
def db_session():
    """Context-manager style session with automatic commit/rollback."""
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
