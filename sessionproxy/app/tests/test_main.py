"""
Unit Tests for Application Startup
==================================

Tests for sessionproxy/app/main.py lifespan wiring.
"""

import json
from unittest.mock import patch

from fastapi import status
from fastapi.testclient import TestClient

from sessionproxy.app.config import Settings
from sessionproxy.app.handshake import HandshakeService
from sessionproxy.app.main import create_app


def test_lifespan_wires_services_from_settings(tmp_path):
    """Startup loads accounts and persisted sessions; shutdown drops the service"""
    accounts_file = tmp_path / "accounts.json"
    accounts_file.write_text(json.dumps({"token-bob": "Bob"}), encoding="utf-8")
    sessions_file = tmp_path / "sessions.json"
    sessions_file.write_text(
        json.dumps({"bob": {"profileId": "uuid-bob", "servers": {"server-1": 1}}}),
        encoding="utf-8",
    )
    settings = Settings(
        _env_file=None,
        ACCOUNTS_FILE=str(accounts_file),
        SESSIONS_FILE=str(sessions_file),
    )

    with patch("sessionproxy.app.main.get_settings", return_value=settings):
        app = create_app()
        with TestClient(app) as client:
            app_state = app.state.app_state
            assert isinstance(app_state.handshake_service, HandshakeService)
            assert app_state.upstream.nameservers == ["1.1.1.1", "1.0.0.1"]

            response = client.get("/health")
            assert response.status_code == status.HTTP_200_OK
            assert response.json()["sessions"] == 1
            assert response.json()["account_backend"] == "file"

        assert app.state.app_state.handshake_service is None


def test_missing_sessions_file_starts_empty(tmp_path):
    accounts_file = tmp_path / "accounts.json"
    accounts_file.write_text("{}", encoding="utf-8")
    settings = Settings(
        _env_file=None,
        ACCOUNTS_FILE=str(accounts_file),
        SESSIONS_FILE=str(tmp_path / "absent.json"),
    )

    with patch("sessionproxy.app.main.get_settings", return_value=settings):
        app = create_app()
        with TestClient(app) as client:
            assert client.get("/health").json()["sessions"] == 0
