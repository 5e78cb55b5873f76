import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from lonetown.database import init_db
from lonetown.models import User, UserState

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'lonetown.db'}", future=True)
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db):
    created = []

    def _make(
        gender: str = "man",
        interested_in: str = "woman",
        emotional_intelligence: int = 70,
        communication_style: int = 70,
        conflict_resolution: int = 70,
        relationship_goals: int = 70,
        life_values: int = 70,
        personality_type: str | None = None,
        attachment_style: str | None = None,
        state: UserState = UserState.AVAILABLE,
        **extra,
    ) -> str:
        user_id = str(uuid.uuid4())
        user = User(
            id=user_id,
            first_name=f"user{len(created)}",
            gender=gender,
            interested_in=interested_in,
            emotional_intelligence=emotional_intelligence,
            communication_style=communication_style,
            conflict_resolution=conflict_resolution,
            relationship_goals=relationship_goals,
            life_values=life_values,
            personality_type=personality_type,
            attachment_style=attachment_style,
            state=state,
            created_at=NOW - timedelta(days=30) + timedelta(minutes=len(created)),
            **extra,
        )
        db.add(user)
        db.commit()
        created.append(user_id)
        return user_id

    return _make


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def load(session_factory):
    """Read a row through a separate session, as another process would see it."""

    def _load(model, row_id: str):
        with session_factory() as s:
            row = s.get(model, row_id)
            if row is not None:
                s.expunge(row)
            return row

    return _load
