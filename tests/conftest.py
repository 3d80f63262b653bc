"""
Pytest configuration and fixtures for Beacon tests.
"""

import logging
from collections.abc import Iterator
from datetime import datetime, timezone

import pytest

# Register the built-in notifiers for every test module
# pylint: disable=unused-import
# ruff: noqa: F401
import beacon.plugins
from beacon.core import Alert, NotificationContext
from beacon.logging_config import ROOT_LOGGER_NAME
from beacon.sender import RecordingSender
from beacon.templating import TemplateEngine

NOW = datetime(2021, 11, 2, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed reference time shared by contexts and alerts."""
    return NOW


@pytest.fixture
def engine() -> TemplateEngine:
    """Template engine with the default templates only."""
    return TemplateEngine()


@pytest.fixture
def sender() -> RecordingSender:
    """Sender double that records requests and answers 200."""
    return RecordingSender()


@pytest.fixture
def ctx() -> NotificationContext:
    """Context grouped on alertname with an empty group value."""
    return NotificationContext(
        group_key="alertname",
        group_labels={"alertname": ""},
        external_url="http://localhost",
        receiver="test_receiver",
        now=NOW,
    )


@pytest.fixture
def firing_alert() -> Alert:
    """One firing alert with dashboard and panel annotations."""
    return Alert(
        labels={"alertname": "alert1", "lbl1": "val1"},
        annotations={"ann1": "annv1", "__dashboardUid__": "abcd", "__panelId__": "efgh"},
    )


@pytest.fixture(autouse=True)
def restore_logging() -> Iterator[None]:
    """Undo setup_logging() calls made by CLI tests so caplog keeps working."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
