"""Tests for the data models and engine settings."""

import pytest
from pydantic import ValidationError

from layerconf.errors import (
    ConfigurationError,
    KeyUndefinedError,
    ReloadFailure,
    SourceRegistrationConflict,
)
from layerconf.models.schemas import (
    EngineSettings,
    Override,
    ReloadReport,
    ResolvedEntry,
)


class TestValueObjects:
    """Test cases for the resolution value objects."""

    def test_override_presence(self):
        assert Override("map", "").present
        assert Override("map", "1").present
        assert not Override("map").present

    def test_resolved_entry_defined(self):
        assert ResolvedEntry("k", "", "map").defined
        assert not ResolvedEntry("k", None, None).defined

    def test_reload_report_ok(self):
        report = ReloadReport(generation=0)
        assert report.ok

        report.failures.append(ReloadFailure("remote"))
        assert not report.ok

    def test_error_messages(self):
        assert "remote" in str(SourceRegistrationConflict("remote"))
        assert str(ReloadFailure("remote")) == "Reload of provider 'remote' failed"
        assert "timeout" in str(
            ReloadFailure("remote", TimeoutError("timeout"))
        )
        error = KeyUndefinedError("tsd.port")
        assert isinstance(error, ConfigurationError)
        assert "tsd.port" in str(error)


class TestEngineSettings:
    """Test cases for EngineSettings model."""

    def test_defaults(self):
        settings = EngineSettings()

        assert settings.reload_interval == 300.0
        assert settings.reload_workers == 4
        assert settings.shutdown_timeout == 10.0
        assert settings.reload_keys == set()
        assert settings.watch_files is False
        assert settings.concat_separator == ","

    def test_validation(self):
        with pytest.raises(ValidationError):
            EngineSettings(reload_interval=0)
        with pytest.raises(ValidationError):
            EngineSettings(reload_workers=0)
        with pytest.raises(ValidationError):
            EngineSettings(unknown_option=True)

    def test_validate_assignment(self):
        settings = EngineSettings()

        with pytest.raises(ValidationError):
            settings.reload_interval = -5

    def test_reload_keys_from_string(self):
        settings = EngineSettings(reload_keys="tsd.port, tsd.mode,,")

        assert settings.reload_keys == {"tsd.port", "tsd.mode"}

    def test_from_env(self):
        environ = {
            "LAYERCONF_RELOAD_INTERVAL": "15",
            "LAYERCONF_WATCH_FILES": "true",
            "LAYERCONF_RELOAD_KEYS": "a,b",
            "UNRELATED": "x",
        }

        settings = EngineSettings.from_env(environ=environ)

        assert settings.reload_interval == 15.0
        assert settings.watch_files is True
        assert settings.reload_keys == {"a", "b"}
        assert settings.reload_workers == 4

    def test_from_env_custom_prefix(self):
        settings = EngineSettings.from_env(
            prefix="APP_", environ={"APP_RELOAD_WORKERS": "8"}
        )

        assert settings.reload_workers == 8

    def test_from_env_invalid_value(self):
        with pytest.raises(ValidationError):
            EngineSettings.from_env(environ={"LAYERCONF_RELOAD_WORKERS": "many"})
