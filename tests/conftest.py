# tests/conftest.py
"""
Shared fixtures. Every test gets its own SQLite file under tmp_path and the
mock LLM backend, so nothing touches the network or a shared database.
"""
import pytest
from fastapi.testclient import TestClient

from mailgate.app import create_app
from mailgate.config import Settings
from mailgate.db import Database
from mailgate.prompts import PromptResolver
from mailgate.tokens import TokenIssuer

API_KEY = "right-key-0123456789"
JWT_SECRET = "test-signing-secret-with-at-least-32-bytes!"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'mailgate_test.db'}",
        jwt_secret_key=JWT_SECRET,
        jwt_issuer="mailgate-tests",
        jwt_audience="mailgate-clients",
        jwt_expiration_minutes=60,
        api_key=API_KEY,
        mock_llm=True,
    )


@pytest.fixture
def database(settings):
    db = Database(settings.database_url)
    db.init_db()
    yield db
    db.dispose()


@pytest.fixture
def resolver(database):
    return PromptResolver(database)


@pytest.fixture
def issuer(settings):
    return TokenIssuer(settings)


@pytest.fixture
def app(settings, database):
    return create_app(settings, database=database)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def key_headers():
    return {"X-API-Key": API_KEY}
