"""Shared fixtures: isolated configuration and a FastAPI client with a fake oracle."""

import os

import pytest
from fastapi.testclient import TestClient

import config as config_module
from fakes import FakeOracle, make_jpeg


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Fresh Config per test, storing uploads under tmp_path."""
    for key in list(os.environ):
        if key.startswith("NUTRIVISION_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("NUTRIVISION_UPLOADS_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("NUTRIVISION_SHUTDOWN_GRACE_SECONDS", "0.5")
    monkeypatch.setattr(config_module, "_config_instance", None)
    return config_module.get_config()


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_jpeg()


@pytest.fixture
def fake_oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def client(monkeypatch, fake_oracle):
    """TestClient whose lifespan wires the dispatcher to ``fake_oracle``."""
    import server.app as app_module

    monkeypatch.setattr(app_module, "OracleClient", lambda **kwargs: fake_oracle)
    with TestClient(app_module.app) as test_client:
        yield test_client
