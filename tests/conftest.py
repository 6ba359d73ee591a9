from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cinelog.database import init_db
from cinelog.models import LogEntry, User


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    def _make(uid, display_name=None, username=None, photo_url=""):
        user = User(
            id=uid,
            email=f"{uid}@example.com",
            display_name=display_name or uid.title(),
            username=username,
            photo_url=photo_url,
        )
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def make_log(db):
    def _make(user_id, watched_date, title="Untitled", visibility="public", rating=0, **movie):
        log = LogEntry(
            user_id=user_id,
            movie_id=movie.pop("id", None),
            movie={"title": title, **movie},
            watched_date=watched_date,
            rating=rating,
            visibility=visibility,
            created_at=datetime(2026, 1, 1),
        )
        db.add(log)
        db.commit()
        return log
    return _make
