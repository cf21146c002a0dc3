"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient

from shortlinks import identity, main, users
from shortlinks.auth import create_access_token
from shortlinks.config import Settings
from shortlinks.database import Base, make_engine, make_session_factory


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a throwaway SQLite file."""
    return Settings(
        environment="dev",
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        jwt_secret="test-secret",
        public_base_url="http://short.test",
        bcrypt_rounds=4,
        log_level="DEBUG",
    )


@pytest.fixture
def session_factory(settings):
    engine = make_engine(settings.database_url)
    Base.metadata.create_all(bind=engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def shortener_client(settings):
    with TestClient(main.create_app(settings)) as client:
        yield client


@pytest.fixture
def identity_client(settings):
    with TestClient(identity.create_app(settings)) as client:
        yield client


@pytest.fixture
def user(db):
    return users.create_user(db, "owner@example.com", "Secret123!", rounds=4)


@pytest.fixture
def other_user(db):
    return users.create_user(db, "other@example.com", "Secret123!", rounds=4)


@pytest.fixture
def auth_headers(user, settings):
    token = create_access_token(user.id, user.email, settings)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_headers(other_user, settings):
    token = create_access_token(other_user.id, other_user.email, settings)
    return {"Authorization": f"Bearer {token}"}
