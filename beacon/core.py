"""
Core interfaces and data structures for Beacon.

This module defines the pieces every integration shares:
- Alert: one alert as produced by the evaluation pipeline
- NotificationContext: per-dispatch group key, group labels and deadline
- SendResult: the (ok, error) outcome of a send
- Notifier: base class of all integrations
"""

import json
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, ClassVar, NamedTuple

from beacon import __version__
from beacon.data import ExtendedData, build_extended_data
from beacon.errors import IntegrationRejectedError, NotifierError, TransportError
from beacon.logging_config import get_logger

if TYPE_CHECKING:
    from beacon.config import ChannelSettings
    from beacon.sender import Sender, WebhookRequest, WebhookResponse
    from beacon.templating import Renderer, TemplateEngine

logger = get_logger(__name__)

_FNV64_OFFSET = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3
_LABEL_SEPARATOR = 0xFF


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class Alert:
    """An alert produced by the evaluation pipeline; read-only here."""
    labels: Mapping[str, str] = field(default_factory=dict)
    annotations: Mapping[str, str] = field(default_factory=dict)
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    generator_url: str = ""

    def fingerprint(self) -> str:
        """FNV-1a hash of the sorted label set, as 16 hex digits."""
        value = _FNV64_OFFSET
        for name in sorted(self.labels):
            for chunk in (name.encode("utf-8"), self.labels[name].encode("utf-8")):
                for byte in chunk:
                    value ^= byte
                    value = (value * _FNV64_PRIME) & 0xFFFFFFFFFFFFFFFF
                value ^= _LABEL_SEPARATOR
                value = (value * _FNV64_PRIME) & 0xFFFFFFFFFFFFFFFF
        return f"{value:016x}"

    def resolved_at(self, now: datetime) -> bool:
        """An alert is resolved once its end time is set and has passed."""
        if self.ends_at is None:
            return False
        return self.ends_at <= now

    @property
    def name(self) -> str:
        return self.labels.get("alertname", "")


@dataclass(frozen=True)
class NotificationContext:
    """
    Per-call information handed to Notifier.notify.

    Attributes:
        group_key: Key of the route group the alerts belong to
        group_labels: Labels shared by the group (e.g. alertname)
        external_url: Base URL used for every generated link
        receiver: Name of the receiver being notified
        now: Reference time for deciding firing versus resolved
        timeout: Optional deadline for the outbound call, in seconds from creation
        cancel_event: Optional signal the caller sets to abandon the send
    """
    group_key: str = ""
    group_labels: Mapping[str, str] = field(default_factory=dict)
    external_url: str = ""
    receiver: str = ""
    now: datetime = field(default_factory=_utcnow)
    timeout: float | None = None
    cancel_event: threading.Event | None = None
    _created: float = field(default_factory=time.monotonic, repr=False, compare=False)

    def deadline_remaining(self) -> float | None:
        """Seconds left before the deadline, or None when there is no deadline."""
        if self.timeout is None:
            return None
        return self.timeout - (time.monotonic() - self._created)

    def check_cancelled(self) -> None:
        """
        Raise if the caller gave up on this send.

        Raises:
            TransportError: When cancelled or past the deadline
        """
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise TransportError("context canceled", cancelled=True)
        remaining = self.deadline_remaining()
        if remaining is not None and remaining <= 0:
            raise TransportError("context deadline exceeded", cancelled=True)


class SendResult(NamedTuple):
    """Outcome of a send: ok is True exactly when error is None."""
    ok: bool
    error: NotifierError | None = None

    @classmethod
    def success(cls) -> "SendResult":
        return cls(True, None)

    @classmethod
    def failure(cls, error: NotifierError) -> "SendResult":
        if error is None:
            raise ValueError("A failed send must carry an error")
        return cls(False, error)


class Notifier(ABC):
    """
    Base class for all notifiers.

    A notifier renders one alert group into the payload its integration
    expects and hands it to the sender. Instances hold only immutable
    settings and may be shared across threads.
    """

    settings_class: ClassVar[type["ChannelSettings"]]

    def __init__(
        self,
        settings: "ChannelSettings",
        sender: "Sender",
        engine: "TemplateEngine",
        name: str = "",
        build_version: str = __version__
    ):
        """
        Initialize the notifier.

        Args:
            settings: Validated settings for this integration
            sender: Outbound sender used for delivery
            engine: Template engine used for rendering
            name: Channel name, used in logs
            build_version: Version reported in payload footers
        """
        self.settings = settings
        self.sender = sender
        self.engine = engine
        self.name = name or type(self).__name__
        self.build_version = build_version

    def notify(self, ctx: NotificationContext, *alerts: Alert) -> SendResult:
        """
        Render and deliver a notification for an alert group.

        Args:
            ctx: Group key, group labels, external URL and deadline for this call
            alerts: Alerts of the group

        Returns:
            SendResult; on failure it carries the render, transport or
            rejection error
        """
        try:
            self._notify(ctx, list(alerts))
        except NotifierError as e:
            logger.warning(
                "Notification via '%s' failed (%s): %s",
                self.name,
                e.kind,
                e
            )
            return SendResult.failure(e)

        logger.debug("Notification via '%s' sent for group '%s'", self.name, ctx.group_key)
        return SendResult.success()

    def send_resolved(self) -> bool:
        """Whether this channel wants notifications for resolved groups."""
        return not self.settings.disable_resolve_message

    @abstractmethod
    def _notify(self, ctx: NotificationContext, alerts: list[Alert]) -> None:
        """
        Build the payload and send it.

        Raises:
            NotifierError: On render, transport or rejection failures
        """
        raise NotImplementedError

    def _extended_data(self, ctx: NotificationContext, alerts: list[Alert]) -> ExtendedData:
        return build_extended_data(ctx, alerts)

    def _renderer(self, data: ExtendedData) -> "Renderer":
        return self.engine.renderer(data)

    def _deliver_webhook(self, ctx: NotificationContext, request: "WebhookRequest") -> "WebhookResponse":
        """
        Send one webhook request and map the response.

        Raises:
            TransportError: If the call did not complete
            IntegrationRejectedError: If the service answered with a non-2xx status
        """
        ctx.check_cancelled()
        response = self.sender.send_webhook(ctx, request)
        if not 200 <= response.status_code < 300:
            raise IntegrationRejectedError(response.status_code, response.body, request.url)
        return response


def payload_body(payload: Mapping[str, Any]) -> str:
    """Serialize a payload deterministically."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
