"""
Tests for logging setup.
"""

import logging
from pathlib import Path

import pytest

from beacon.logging_config import get_logger, setup_logging


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_configures_beacon_logger(self) -> None:
        """Test level, single stdout handler and no propagation."""
        logger = setup_logging("DEBUG")

        assert logger.name == "beacon"
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert logger.propagate is False

    def test_repeated_setup_does_not_stack_handlers(self) -> None:
        setup_logging("INFO")
        logger = setup_logging("INFO")

        assert len(logger.handlers) == 1

    def test_log_file(self, tmp_path: Path) -> None:
        """Test that records reach the rotating log file."""
        log_file = tmp_path / "beacon.log"
        logger = setup_logging("INFO", log_file=log_file)

        get_logger("beacon.sender").info("sent %d request(s)", 3)
        for handler in logger.handlers:
            handler.flush()

        assert "[INFO] beacon.sender: sent 3 request(s)" in log_file.read_text(encoding="utf-8")

    def test_unknown_level(self) -> None:
        with pytest.raises(ValueError, match="Unknown log level: LOUD"):
            setup_logging("LOUD")


class TestGetLogger:
    """Tests for get_logger."""

    def test_module_names_are_not_doubled(self) -> None:
        assert get_logger("beacon.receiver").name == "beacon.receiver"

    def test_other_names_are_nested(self) -> None:
        assert get_logger("plugin").name == "beacon.plugin"
