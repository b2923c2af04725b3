"""Tests for structured logging setup."""

import json

import pytest
import structlog

from slotguard.core.logging import LogContext, bind_context, configure_logging, get_logger, unbind_context


def _records(capsys):
    return [json.loads(line) for line in capsys.readouterr().err.splitlines() if line.startswith("{")]


class TestConfigureLogging:
    def test_json_output(self, capsys):
        configure_logging(level="INFO", json_format=True)
        get_logger("slotguard.test").info("layout.computed", contract="Vault", items=4)

        (record,) = _records(capsys)
        assert record["event"] == "layout.computed"
        assert record["contract"] == "Vault"
        assert record["items"] == 4
        assert record["log.level"] == "info"
        assert record["logger"] == "slotguard.test"
        assert record["service.name"] == "slotguard"
        assert "@timestamp" in record

    def test_level_filters(self, capsys):
        configure_logging(level="WARNING", json_format=True)
        logger = get_logger("slotguard.test")
        logger.info("quiet")
        logger.warning("loud")
        assert [r["event"] for r in _records(capsys)] == ["loud"]

    def test_service_name_and_no_timestamp(self, capsys):
        configure_logging(level="INFO", json_format=True, service="ci", add_timestamp=False)
        get_logger("slotguard.test").info("hello")
        (record,) = _records(capsys)
        assert record["service.name"] == "ci"
        assert "@timestamp" not in record

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            configure_logging(level="LOUD")


class TestContext:
    def test_log_context_binds_and_unbinds(self, capsys):
        configure_logging(level="INFO", json_format=True)
        logger = get_logger("slotguard.test")
        with LogContext(contract="Vault"):
            logger.info("inside")
        logger.info("outside")

        inside, outside = _records(capsys)
        assert inside["contract"] == "Vault"
        assert "contract" not in outside

    def test_bind_and_unbind(self):
        bind_context(run="abc", contract="Vault")
        unbind_context("run")
        assert structlog.contextvars.get_contextvars() == {"contract": "Vault"}
