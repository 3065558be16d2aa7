"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for GeoPoll tests.
"""

import pytest
import tempfile
import os
import sys
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
_TEST_DIR = Path(tempfile.gettempdir()) / "geopoll_tests"
os.environ["GEOPOLL_DATABASE__PATH"] = str(_TEST_DIR / "geopoll_settings.db")
os.environ["GEOPOLL_LOGGING__FILE_PATH"] = ""
os.environ["GEOPOLL_LOGGING__CONSOLE_LOGGING"] = "false"
os.environ["GEOPOLL_DEBUG"] = "true"

SMTP_ENV = {
    "SMTP_FROM_ADDRESS": "alerts@geopoll.test",
    "SMTP_ADDRESS": "smtp.geopoll.test",
    "SMTP_PORT": "587",
    "SMTP_USER_NAME": "geopoll",
    "SMTP_PASSWORD": "secret",
    "SMTP_DOMAIN": "geopoll.test",
}


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_settings():
    """Drop the cached settings so env changes made by a test are picked up."""
    from geopoll.config import settings as settings_module

    settings_module._settings = None
    yield
    settings_module._settings = None


@pytest.fixture
def smtp_env(monkeypatch):
    """Complete SMTP_* environment."""
    for key, value in SMTP_ENV.items():
        monkeypatch.setenv(key, value)
    return SMTP_ENV


@pytest.fixture
def no_smtp_env(monkeypatch, tmp_path):
    """No SMTP_* variables and no .env file to fall back on."""
    for key in list(os.environ):
        if key.startswith("SMTP_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def smtp_settings(smtp_env):
    from geopoll.config.settings import load_smtp_settings

    return load_smtp_settings()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def test_database(tmp_path):
    """Fresh database file with schema for each test."""
    from geopoll.database.schema import DatabaseSchema

    db_path = tmp_path / "geopoll_test.db"
    DatabaseSchema(str(db_path)).create_tables()
    return str(db_path)


@pytest.fixture
def db_connection(test_database):
    """Create a database connection manager for testing."""
    from geopoll.database.connection import DatabaseConnection

    connection = DatabaseConnection(test_database, pool_size=2)
    yield connection

    connection.close_all_connections()


@pytest.fixture
def publisher_repo(db_connection):
    from geopoll.storage import PublisherRepository

    return PublisherRepository(db_connection)


@pytest.fixture
def event_repo(db_connection):
    from geopoll.storage import EventRepository

    return EventRepository(db_connection)


@pytest.fixture
def sample_publisher():
    """Unsaved publisher with a contact address."""
    from geopoll.database.models import Publisher

    return Publisher(
        title="Pub Example",
        endpoint="https://pub.example/feed?page=1",
        email="contact@pub.example",
        description="City incidents feed",
    )


@pytest.fixture
def stored_publisher(publisher_repo, sample_publisher):
    """Sample publisher saved to the test database."""
    publisher_id = publisher_repo.create_publisher(sample_publisher)
    return publisher_repo.get_publisher(publisher_id)


@pytest.fixture
def sample_features():
    """Three GeoJSON point features."""
    return [
        {
            "type": "Feature",
            "id": f"evt-{index}",
            "geometry": {"type": "Point", "coordinates": [float(index), 48.85]},
            "properties": {"title": f"Event {index}", "description": f"Incident number {index}"},
        }
        for index in range(1, 4)
    ]


# ============================================================================
# HTTP helpers
# ============================================================================


def make_response(payload=None, status_code=200, headers=None, json_error=None):
    """Mock requests.Response for Session.get patches."""
    from unittest.mock import Mock

    from requests.structures import CaseInsensitiveDict

    response = Mock()
    response.status_code = status_code
    response.reason = "OK" if status_code < 400 else "Error"
    response.headers = CaseInsensitiveDict(headers or {})
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def response_factory():
    return make_response
