"""
Shared fixtures: isolated settings, a fresh declarative base per test and
an in-memory SQLite database.
"""

import os

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import DeclarativeBase, Session

from activealchemy.config import ENV_PREFIX, reset_settings
from activealchemy.i18n import reset_i18n


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Each test starts from default settings and a fresh translation store."""
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key)
    reset_settings()
    reset_i18n()
    yield
    reset_settings()
    reset_i18n()


@pytest.fixture
def base():
    class Base(DeclarativeBase):
        pass

    return Base


@pytest.fixture
def engine():
    engine = create_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def make_session(base, engine):
    """Create the tables of every model defined on ``base`` and open a session."""
    sessions = []

    def factory():
        base.metadata.create_all(engine)
        session = Session(engine)
        sessions.append(session)
        return session

    yield factory

    for session in sessions:
        session.close()


@pytest.fixture
def row_count():
    def count(session, model):
        return session.scalar(select(func.count()).select_from(model))

    return count
