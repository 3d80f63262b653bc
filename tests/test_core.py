"""
Tests for core data structures and the error taxonomy.
"""

import threading
import time

import pytest

from beacon.core import Alert, NotificationContext, SendResult, payload_body
from beacon.errors import (
    ChannelConfigError,
    IntegrationRejectedError,
    NotifierError,
    RenderError,
    TransportError,
)


class TestAlert:
    """Tests for Alert."""

    def test_fingerprint_format(self) -> None:
        fingerprint = Alert(labels={"alertname": "a"}).fingerprint()

        assert len(fingerprint) == 16
        int(fingerprint, 16)

    def test_fingerprint_ignores_label_order(self) -> None:
        first = Alert(labels={"a": "1", "b": "2"})
        second = Alert(labels={"b": "2", "a": "1"})

        assert first.fingerprint() == second.fingerprint()

    def test_fingerprint_differs_by_labels(self) -> None:
        assert Alert(labels={"a": "1"}).fingerprint() != Alert(labels={"a": "2"}).fingerprint()
        # name/value boundaries are part of the hash
        assert Alert(labels={"ab": "c"}).fingerprint() != Alert(labels={"a": "bc"}).fingerprint()

    def test_name(self) -> None:
        assert Alert(labels={"alertname": "cpu"}).name == "cpu"
        assert Alert().name == ""


class TestNotificationContext:
    """Tests for NotificationContext."""

    def test_no_deadline(self) -> None:
        ctx = NotificationContext()

        assert ctx.deadline_remaining() is None
        ctx.check_cancelled()

    def test_deadline_remaining(self) -> None:
        ctx = NotificationContext(timeout=30)

        remaining = ctx.deadline_remaining()
        assert remaining is not None
        assert 0 < remaining <= 30

    def test_cancel_event(self) -> None:
        event = threading.Event()
        ctx = NotificationContext(cancel_event=event)
        ctx.check_cancelled()

        event.set()

        with pytest.raises(TransportError, match="context canceled") as exc_info:
            ctx.check_cancelled()
        assert exc_info.value.cancelled
        assert not exc_info.value.retryable

    def test_deadline_exceeded(self) -> None:
        ctx = NotificationContext(timeout=0.01)
        time.sleep(0.02)

        with pytest.raises(TransportError, match="context deadline exceeded"):
            ctx.check_cancelled()


class TestSendResult:
    """Tests for SendResult."""

    def test_success(self) -> None:
        result = SendResult.success()

        assert result.ok
        assert result.error is None

    def test_failure(self) -> None:
        error = TransportError("boom")
        result = SendResult.failure(error)

        assert not result.ok
        assert result.error is error

    def test_failure_requires_error(self) -> None:
        with pytest.raises(ValueError):
            SendResult.failure(None)  # type: ignore[arg-type]

    def test_unpacks(self) -> None:
        ok, err = SendResult.success()

        assert ok is True
        assert err is None


class TestErrors:
    """Tests for error kinds and retryability."""

    def test_kinds(self) -> None:
        assert ChannelConfigError("x").kind == "config"
        assert RenderError("x").kind == "render"
        assert TransportError("x").kind == "transport"
        assert IntegrationRejectedError(400).kind == "rejected"

    def test_all_are_notifier_errors(self) -> None:
        for error in (ChannelConfigError("x"), RenderError("x"), TransportError("x"), IntegrationRejectedError(400)):
            assert isinstance(error, NotifierError)

    def test_config_error_is_value_error(self) -> None:
        assert isinstance(ChannelConfigError("x"), ValueError)

    def test_retryable(self) -> None:
        assert not ChannelConfigError("x").retryable
        assert not RenderError("x").retryable
        assert TransportError("x").retryable
        assert not TransportError("x", cancelled=True).retryable

    @pytest.mark.parametrize("status,retryable", [
        (400, False),
        (404, False),
        (429, True),
        (500, True),
        (503, True),
    ])
    def test_rejection_retryable(self, status: int, retryable: bool) -> None:
        assert IntegrationRejectedError(status).retryable is retryable

    def test_rejection_message(self) -> None:
        assert str(IntegrationRejectedError(400)) == "webhook response status 400"
        assert str(IntegrationRejectedError(400, "bad")) == "webhook response status 400: bad"


class TestPayloadBody:
    """Tests for payload serialization."""

    def test_sorted_and_compact(self) -> None:
        assert payload_body({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_non_ascii_is_kept(self) -> None:
        assert payload_body({"m": "é"}) == '{"m":"é"}'
