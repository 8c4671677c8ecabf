import os
import tempfile
from pathlib import Path

import pytest

# Settings are read at import time, so point the app at a throwaway
# database before any test module imports `study_tracker.main`.
_DB_PATH = Path(tempfile.gettempdir()) / f"study_tracker_test_{os.getpid()}.db"
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["ENV"] = "dev"
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "1000")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from study_tracker.database import create_db_and_tables, drop_db_and_tables  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db():
    """Give every test empty tables."""
    drop_db_and_tables()
    create_db_and_tables()
    yield


@pytest.fixture(scope="session", autouse=True)
def remove_db_file():
    yield
    if _DB_PATH.exists():
        try:
            _DB_PATH.unlink()
        except OSError:
            pass


def register_user(client, username, email=None, password="pw123456"):
    """Register a user and return Authorization headers for it."""
    r = client.post('/auth/register', json={
        'username': username,
        'email': email or f'{username}@x.com',
        'password': password,
    })
    assert r.status_code == 201, r.text
    return {'Authorization': f"Bearer {r.json()['token']}"}


@pytest.fixture
def make_user(client):
    return lambda username, **kwargs: register_user(client, username, **kwargs)


@pytest.fixture
def alice(client):
    return register_user(client, 'alice')


@pytest.fixture
def bob(client):
    return register_user(client, 'bob')


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from study_tracker.main import app
    return TestClient(app)
