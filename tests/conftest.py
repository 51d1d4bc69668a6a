"""Shared pytest fixtures for the SipCoin test suite."""

from __future__ import annotations

from typing import Dict, Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from sipcoin.config import get_settings
from sipcoin.db.repository import reset_repository_state
from sipcoin.server.app import create_app


@pytest.fixture()
def app() -> Generator[FastAPI, None, None]:
    """Create a new FastAPI app instance for each test and reset overrides."""

    application = create_app()
    yield application
    application.dependency_overrides.clear()


@pytest.fixture()
def client(app) -> TestClient:
    """Return a test client bound to the FastAPI app."""

    return TestClient(app)


@pytest.fixture()
def user_headers() -> Dict[str, str]:
    return {"X-User-ID": "user-1"}


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Ensure each test uses an isolated SQLite database and image store."""

    db_path = tmp_path / "test_sipcoin.db"
    monkeypatch.setenv("SIPCOIN_DATABASE_PATH", str(db_path))
    monkeypatch.setenv("SIPCOIN_IMAGE_STORE_PATH", str(tmp_path / "images"))
    get_settings.cache_clear()
    reset_repository_state()
    yield
    reset_repository_state()
    monkeypatch.delenv("SIPCOIN_DATABASE_PATH", raising=False)
    monkeypatch.delenv("SIPCOIN_IMAGE_STORE_PATH", raising=False)
    get_settings.cache_clear()
