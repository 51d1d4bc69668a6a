"""Security-related integration tests."""

from __future__ import annotations

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from sipcoin.config import get_settings
from sipcoin.db.repository import reset_repository_state
from sipcoin.server.app import create_app
from tests.helpers import png_bytes


@pytest.fixture()
def secure_client(tmp_path, monkeypatch) -> TestClient:
    db_path = tmp_path / "secure.db"
    monkeypatch.setenv("SIPCOIN_DATABASE_PATH", str(db_path))
    monkeypatch.setenv("SIPCOIN_API_TOKEN", "secret-token")
    get_settings.cache_clear()
    reset_repository_state()
    app = create_app()
    client = TestClient(app)
    yield client
    monkeypatch.delenv("SIPCOIN_API_TOKEN", raising=False)
    reset_repository_state()
    get_settings.cache_clear()


def _upload(client, headers):
    return client.post(
        "/receipts",
        files={"file": ("receipt.png", png_bytes(), "image/png")},
        headers=headers,
    )


def test_upload_requires_api_token(secure_client):
    response = _upload(secure_client, {"X-User-ID": "user-1"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

    response = _upload(secure_client, {"X-User-ID": "user-1", "Authorization": "Bearer secret-token"})
    assert response.status_code == status.HTTP_201_CREATED


@pytest.mark.parametrize(
    ("headers", "params"),
    [
        ({"X-API-Key": "secret-token"}, {}),
        ({}, {"api_token": "secret-token"}),
    ],
)
def test_alternative_token_carriers(secure_client, headers, params):
    response = secure_client.post(
        "/receipts/1/submit",
        headers={"X-User-ID": "user-1", **headers},
        params=params,
    )

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_wrong_token_is_rejected(secure_client):
    response = secure_client.post(
        "/receipts/1/process",
        headers={"X-User-ID": "user-1", "Authorization": "Bearer nope"},
    )

    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_user_header_is_required(client):
    response = client.get("/receipts")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["detail"] == "Missing X-User-ID header"
