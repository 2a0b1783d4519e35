from datetime import date
from pathlib import Path
import sys

import httpx
import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from formpanel.config import Settings
from formpanel.gateway import EmailValidationGateway
from formpanel.service import build_store, create_app
from formpanel.validation import years_before


ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin123"

DELIVERABLE = {"deliverability": "DELIVERABLE", "quality_score": "0.90"}
UNDELIVERABLE = {"deliverability": "UNDELIVERABLE", "quality_score": "0.10"}


@pytest.fixture
def settings(tmp_path):
    return Settings(
        admin_username=ADMIN_USERNAME,
        admin_password=ADMIN_PASSWORD,
        session_secret="tests-secret-key",
        database_path=tmp_path / "records.sqlite3",
        access_log_path=tmp_path / "access.log",
        selection_timeout=1.0,
    )


@pytest.fixture
def store(settings):
    record_store = build_store(settings)
    record_store.initialize()
    return record_store


@pytest.fixture
def make_gateway():
    """Build a gateway whose HTTP calls are answered in-process."""

    def _factory(payload=DELIVERABLE, *, status_code=200, error=None, calls=None, api_key="test-key"):
        def handler(request: httpx.Request) -> httpx.Response:
            if calls is not None:
                calls.append(request)
            if error is not None:
                raise error
            return httpx.Response(status_code, json=payload)

        return EmailValidationGateway(
            api_key,
            base_url="https://validator.test/v1/",
            transport=httpx.MockTransport(handler),
        )

    return _factory


@pytest.fixture
def make_client(settings, store, make_gateway):
    def _factory(gateway=None, **overrides):
        app = create_app(
            settings.with_overrides(**overrides),
            store=store,
            gateway=gateway or make_gateway(),
        )
        return TestClient(app, raise_server_exceptions=False)

    return _factory


@pytest.fixture
def client(make_client):
    with make_client() as test_client:
        yield test_client


@pytest.fixture
def admin_client(make_client):
    with make_client() as test_client:
        response = test_client.post(
            "/admin",
            data={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD},
            follow_redirects=False,
        )
        assert response.status_code == 303
        yield test_client


@pytest.fixture
def valid_fields():
    """Return a factory for a complete, acceptable set of form fields."""

    def _factory(**overrides):
        fields = {
            "name": "Asha Rao",
            "email": "asha@example.com",
            "dob": years_before(date.today(), 30).isoformat(),
            "contact": "9876543210",
            "state": "Karnataka",
            "country": "India",
        }
        fields.update(overrides)
        return fields

    return _factory
