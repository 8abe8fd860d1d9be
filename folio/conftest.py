"""
Shared fixtures for the FOLIO tests
"""

import pytest
from fastapi.testclient import TestClient
from passlib.context import CryptContext

import cms_server
from cms_server import AppConfig, SecurityConfig, StorageConfig, app, get_credential_store
from credential_store import CredentialStore
from document_store import DocumentStore

# Minimum bcrypt cost keeps the suite fast
FAST_CONTEXT = CryptContext(schemes=["bcrypt"], bcrypt__rounds=4)

TEST_USERNAME = "admin"
TEST_PASSWORD = "secret"


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def credentials_file(tmp_path):
    return tmp_path / "users.yml"


@pytest.fixture
def store(data_dir):
    return DocumentStore(data_dir)


@pytest.fixture
def credentials(credentials_file):
    return CredentialStore(credentials_file, FAST_CONTEXT)


@pytest.fixture
def client(data_dir, credentials_file, credentials, monkeypatch):
    """Test client wired to temporary storage"""
    test_config = AppConfig(
        storage=StorageConfig(
            data_dir=str(data_dir),
            credentials_file=str(credentials_file)
        ),
        security=SecurityConfig(secret_key="test-secret")
    )
    monkeypatch.setattr(cms_server, "config", test_config)
    app.dependency_overrides[get_credential_store] = lambda: credentials

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def signed_in_client(client, credentials):
    credentials.append(TEST_USERNAME, TEST_PASSWORD)
    response = client.post(
        "/users/signin",
        data={"username": TEST_USERNAME, "password": TEST_PASSWORD}
    )
    assert response.status_code == 200
    assert "Welcome!" in response.text
    return client


def make_document(data_dir, name, content=b""):
    """Write a document straight to disk, bypassing the store"""
    if isinstance(content, str):
        content = content.encode("utf-8")
    (data_dir / name).write_bytes(content)
