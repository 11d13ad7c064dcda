"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app.config import Settings
from app.database import build_engine, build_session_factory
from app.main import create_app
from app.models import Base, User


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite file shared by every thread."""

    return Settings(database_url_override=f"sqlite+pysqlite:///{tmp_path / 'relay.db'}")


@pytest.fixture()
def test_engine(settings) -> Iterator[Engine]:
    engine = build_engine(settings)
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(test_engine) -> sessionmaker[Session]:
    """Return a session factory bound to the test engine."""

    return build_session_factory(test_engine)


@pytest.fixture()
def make_users(session_factory):
    """Register plain identities directly in the database."""

    def _make(*identities: str) -> None:
        with session_factory.begin() as session:
            for identity in identities:
                session.add(User(email=identity, display_name=identity.split("@")[0]))

    return _make


@pytest.fixture()
def app(settings, session_factory):
    return create_app(settings, session_factory)


@pytest.fixture()
def client(app) -> Iterator[TestClient]:
    """Yield a FastAPI TestClient bound to a fresh relay hub."""

    with TestClient(app) as test_client:
        yield test_client
