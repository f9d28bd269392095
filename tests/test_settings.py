"""Tests for settings and logging configuration."""

import logging

import pytest
from pydantic import ValidationError

from fleetmon.utils.errors import ErrorCategory, InventoryValidationError, StepError
from fleetmon.utils.logging_config import get_logger, setup_logging
from fleetmon.utils.settings import Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env()

        assert settings.inventory_path == "production/inventory/servers.yml"
        assert settings.max_parallel == 5
        assert settings.monitoring_network == "10.0.7.0/24"
        assert settings.probe_retries == 3

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("FLEETMON_MAX_PARALLEL", "8")
        monkeypatch.setenv("FLEETMON_MONITORING_NETWORK", "192.168.50.0/24")

        settings = Settings.from_env()

        assert settings.max_parallel == 8
        assert settings.monitoring_network == "192.168.50.0/24"

    def test_overrides_win_over_environment(self, monkeypatch):
        monkeypatch.setenv("FLEETMON_MAX_PARALLEL", "8")

        assert Settings.from_env(max_parallel=2).max_parallel == 2
        assert Settings.from_env(max_parallel=None).max_parallel == 8

    def test_rejects_bad_network(self):
        with pytest.raises(ValidationError):
            Settings(monitoring_network="not-a-network")

    def test_rejects_zero_parallel(self, monkeypatch):
        monkeypatch.setenv("FLEETMON_MAX_PARALLEL", "0")
        with pytest.raises(ValidationError):
            Settings.from_env()


class TestErrors:
    def test_step_error_to_dict(self):
        error = StepError("install_system_agent", "web-01", "exit code 1")

        assert error.to_dict()["category"] == ErrorCategory.EXECUTION.value
        assert error.message == "web-01: install_system_agent failed: exit code 1"

    def test_validation_error_lists_issues(self):
        error = InventoryValidationError(["a: hostname: required", "b: name: duplicate"])

        assert error.to_dict()["issues"] == ["a: hostname: required", "b: name: duplicate"]
        assert "2 validation error(s)" in error.message


class TestLogging:
    def test_setup_logging_adds_one_handler(self):
        setup_logging("DEBUG")
        setup_logging("DEBUG")

        root = logging.getLogger()
        handlers = [h for h in root.handlers if getattr(h, "_fleetmon", False)]
        assert len(handlers) == 1
        assert logging.getLogger("paramiko").level == logging.WARNING

    def test_correlation_id_prefix(self, caplog):
        logger = get_logger("fleetmon.test", "web-01")

        with caplog.at_level(logging.INFO, logger="fleetmon.test"):
            logger.info("installed")

        assert "[web-01] installed" in caplog.text
