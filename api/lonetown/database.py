import os
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from .errors import MatchEngineError, PersistenceError

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg2://postgres:postgres@db:5432/lonetown")

engine = create_engine(DATABASE_URL, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
Base = declarative_base()


def init_db(bind=None) -> None:
    from . import models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def atomic(db, label: str) -> Iterator[None]:
    """Commit the block as one unit; any failure rolls the whole unit back.

    Engine errors and unexpected exceptions propagate unchanged after the
    rollback; store errors surface as PersistenceError.
    """
    try:
        yield
        db.commit()
    except MatchEngineError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"{label} failed: {exc}") from exc
    except Exception:
        db.rollback()
        raise
