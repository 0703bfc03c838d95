"""Tests for application configuration."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from devcms.config import Settings

STRONG_SECRET = "x" * 32
STRONG_TOKEN = "t" * 24


class TestSettings:
    def test_default_settings(self) -> None:
        s = Settings(_env_file=None)
        assert s.secret_key == "change-me-in-production"
        assert s.debug is False
        assert s.port == 8000
        assert s.sync_enabled is True
        assert s.realpad_resource_suffixes == {"Pdf": "pdf", "Plan": "plan", "Image": "image"}

    def test_custom_settings(self, tmp_path: Path) -> None:
        s = Settings(
            _env_file=None,
            secret_key="my-secret",
            debug=True,
            media_dir=tmp_path / "media",
            database_url="sqlite+aiosqlite:///test.db",
        )
        assert s.secret_key == "my-secret"
        assert s.media_dir == tmp_path / "media"

    def test_settings_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SYNC_CONCURRENCY", "8")
        monkeypatch.setenv("REALPAD_RESOURCE_SUFFIXES", '{"Photo": "image"}')
        s = Settings(_env_file=None)
        assert s.sync_concurrency == 8
        assert s.realpad_resource_suffixes == {"Photo": "image"}

    def test_settings_from_fixture(self, test_settings: Settings) -> None:
        assert test_settings.debug is True
        assert test_settings.sync_enabled is False

    def test_invalid_concurrency_rejected(self) -> None:
        with pytest.raises(ValueError):
            Settings(_env_file=None, sync_concurrency=0)


class TestRuntimeSecurity:
    def test_debug_skips_validation(self) -> None:
        Settings(_env_file=None, debug=True).validate_runtime_security()

    def test_default_secrets_rejected(self) -> None:
        with pytest.raises(ValueError, match="SECRET_KEY") as exc_info:
            Settings(_env_file=None).validate_runtime_security()
        assert "ADMIN_TOKEN" in str(exc_info.value)

    def test_short_admin_token_rejected(self) -> None:
        s = Settings(_env_file=None, secret_key=STRONG_SECRET, admin_token="short")
        with pytest.raises(ValueError, match="ADMIN_TOKEN"):
            s.validate_runtime_security()

    def test_unknown_resource_type_rejected(self) -> None:
        s = Settings(
            _env_file=None,
            secret_key=STRONG_SECRET,
            admin_token=STRONG_TOKEN,
            realpad_resource_suffixes={"Video": "video"},
        )
        with pytest.raises(ValueError, match="video"):
            s.validate_runtime_security()

    def test_strong_settings_pass(self) -> None:
        Settings(
            _env_file=None, secret_key=STRONG_SECRET, admin_token=STRONG_TOKEN
        ).validate_runtime_security()


class TestCliEntry:
    def test_cli_entry_uses_app_settings(self) -> None:
        """cli_entry() should use the global app's settings, not create a new Settings()."""
        from devcms.main import app, cli_entry

        original_settings = getattr(app.state, "settings", None)
        app.state.settings = Settings(_env_file=None, host="127.0.0.1", port=9999, debug=True)

        try:
            with patch("uvicorn.run") as mock_run:
                cli_entry()

            mock_run.assert_called_once_with(
                "devcms.main:app",
                host="127.0.0.1",
                port=9999,
                reload=True,
            )
        finally:
            if original_settings is None:
                del app.state.settings
            else:
                app.state.settings = original_settings
