"""
Shared test fixtures.

Every test gets its own SQLite file and storage directory under tmp_path.
"""

import io
import sys
from pathlib import Path

import pytest
import requests
from fastapi.testclient import TestClient
from PIL import Image as PILImage

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.core.config import Settings
from app.main import create_app
from app.repositories.sql import SqlDataBackend
from app.services.storage import LocalStorageBackend

STL_CONTENT = b"solid widget\nfacet normal 0 0 1\nendfacet\nendsolid widget\n"


# ── Settings and backends ─────────────────────────────────────────────

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        SECRET_KEY="test-secret-key",
        DATA_BACKEND="sql",
        STORAGE_BACKEND="local",
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'catalog.db'}",
        LOCAL_STORAGE_DIR=str(tmp_path / "storage"),
        UPLOAD_TMP_DIR=str(tmp_path / "uploads"),
        PUBLIC_BASE_URL="http://testserver",
        FIRST_USER_EMAIL=None,
        FIRST_USER_PASSWORD=None,
    )


@pytest.fixture
def data_backend(settings) -> SqlDataBackend:
    backend = SqlDataBackend(settings.SQLALCHEMY_DATABASE_URI)
    yield backend
    backend.close()


@pytest.fixture
def storage(settings) -> LocalStorageBackend:
    return LocalStorageBackend(settings.LOCAL_STORAGE_DIR, settings.PUBLIC_BASE_URL)


@pytest.fixture
def repos(data_backend):
    """Repositories over a freshly created schema, for service-level tests."""
    data_backend.init()
    with data_backend.session() as bundle:
        yield bundle


# ── HTTP client ───────────────────────────────────────────────────────

@pytest.fixture
def app(settings, data_backend, storage):
    return create_app(settings, data_backend, storage)


@pytest.fixture
def client(app):
    # Entering the context runs startup, which creates the tables
    with TestClient(app) as test_client:
        yield test_client


def _register(client, email, name, password="secret123"):
    response = client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": password, "name": name},
    )
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def auth_headers(client):
    return _register(client, "owner@example.com", "Scan Owner")


@pytest.fixture
def other_headers(client):
    return _register(client, "other@example.com", "Other User")


@pytest.fixture
def upload_scan(client, auth_headers):
    """
    Post a multipart scan upload. Extra keyword arguments become form fields;
    ``headers`` and ``files`` override the defaults.
    """
    def _upload(filename="widget.stl", content=STL_CONTENT, headers=None, files=None, **fields):
        files = files or {}
        files.setdefault("file", (filename, content, "application/octet-stream"))
        data = {key: str(value) for key, value in fields.items()}
        return client.post(
            "/api/v1/scans",
            headers=headers if headers is not None else auth_headers,
            files=files,
            data=data,
        )

    return _upload


@pytest.fixture
def png_bytes() -> bytes:
    buffer = io.BytesIO()
    PILImage.new("RGB", (8, 8), color=(99, 102, 241)).save(buffer, format="PNG")
    return buffer.getvalue()


# ── Fake requests session for the Supabase clients ────────────────────

class FakeResponse:
    def __init__(self, status_code=200, json_data=None, content=b"", headers=None):
        self.status_code = status_code
        self._json = json_data
        self.content = content
        self.headers = headers or {}
        self.text = str(json_data) if json_data is not None else content.decode("utf-8", "replace")

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._json


class FakeSession:
    """Records every call and answers from a queue of FakeResponse objects."""

    def __init__(self, responses=None):
        self.headers = {}
        self.responses = list(responses or [])
        self.calls = []
        self.closed = False

    def queue(self, *responses):
        self.responses.extend(responses)

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.responses:
            return FakeResponse(200, [])
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def delete(self, url, **kwargs):
        return self.request("DELETE", url, **kwargs)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def connection_error():
    return requests.ConnectionError("connection refused")


@pytest.fixture
def make_response():
    return FakeResponse
