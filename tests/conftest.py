"""
Pytest configuration and fixtures.
"""

import pytest
from fastapi.testclient import TestClient

from mediarchive.database import create_db_engine
from mediarchive.main import app, get_store
from mediarchive.store import HealthStore


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'mediarchive.db'}"


@pytest.fixture
def engine(database_url):
    """A bare engine on an empty database, no migration run."""
    engine = create_db_engine(database_url)
    yield engine
    engine.dispose()


@pytest.fixture
def health_store(database_url):
    store = HealthStore(database_url)
    store.init()
    yield store
    store.close()


@pytest.fixture
def client(health_store):
    app.dependency_overrides[get_store] = lambda: health_store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def sample_user():
    return {"id": "u1", "name": "Alice", "relationship": "self", "color": "#fff"}


@pytest.fixture
def sample_record():
    """A blood test record in the camelCase shape the UI sends."""
    return {
        "id": "r1",
        "userId": "u1",
        "title": "T",
        "hospital": "H",
        "type": "blood",
        "date": "2024-01-01",
        "keyIndicators": [
            {"name": "WBC", "value": "6.5", "unit": "10^9/L", "isAbnormal": False},
        ],
    }


@pytest.fixture
def sample_disease():
    return {
        "id": "d1",
        "userId": "u1",
        "name": "Hypertension",
        "type": "hypertension",
        "indicators": [
            {
                "name": "Systolic",
                "unit": "mmHg",
                "normalRange": "90-140",
                "values": [
                    {"date": "2024-01-15", "value": 135, "isAbnormal": False},
                    {"date": "2024-02-15", "value": 150, "isAbnormal": True},
                ],
            }
        ],
        "reminders": [
            {
                "id": "rem1",
                "title": "Take amlodipine",
                "description": "5mg after breakfast",
                "date": "2024-01-16",
                "type": "medication",
                "isCompleted": False,
                "isRepeating": True,
                "repeatInterval": 1,
            }
        ],
    }
