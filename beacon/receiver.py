"""
Receiver fan-out.

A receiver groups the integrations an alert group is routed to. Sends to
its integrations run concurrently and independently; one integration
failing has no effect on the others.
"""

import dataclasses
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import TYPE_CHECKING

from beacon.core import Alert, NotificationContext, Notifier, SendResult
from beacon.data import partition
from beacon.logging_config import get_logger
from beacon.registry import create_notifier

if TYPE_CHECKING:
    from beacon.config import NotificationChannelConfig
    from beacon.sender import Sender
    from beacon.templating import TemplateEngine

logger = get_logger(__name__)

DEFAULT_MAX_WORKERS = 8


def build_test_alert(now: datetime | None = None) -> Alert:
    """The synthetic alert sent when testing a channel."""
    return Alert(
        labels={"alertname": "TestAlert", "instance": "Grafana"},
        annotations={
            "summary": "Notification test",
            "__value_string__": "[ metric='foo' labels={instance=bar} value=10 ]",
        },
        starts_at=now,
    )


class Receiver:
    """
    Sends one alert group to every integration of a receiver.

    Args:
        name: Receiver name, exposed to templates as ``.Receiver``
        integrations: Notifiers to deliver through
        max_workers: Upper bound on concurrent sends
    """

    def __init__(self, name: str, integrations: Sequence[Notifier], max_workers: int = DEFAULT_MAX_WORKERS):
        self.name = name
        self.integrations = list(integrations)
        self.max_workers = max_workers

    def notify(self, ctx: NotificationContext, *alerts: Alert) -> dict[str, SendResult]:
        """
        Notify every integration that wants this group.

        Integrations with resolve messages disabled are skipped when every
        alert of the group is resolved.

        Returns:
            SendResult per integration name, for integrations that were notified
        """
        if not ctx.receiver:
            ctx = dataclasses.replace(ctx, receiver=self.name)

        firing, _ = partition(alerts, ctx.now)
        targets = []
        for integration in self.integrations:
            if alerts and not firing and not integration.send_resolved():
                logger.debug("Skipping '%s': resolve messages disabled", integration.name)
                continue
            targets.append(integration)

        if not targets:
            return {}

        with ThreadPoolExecutor(
            max_workers=min(len(targets), self.max_workers),
            thread_name_prefix=f"receiver-{self.name}"
        ) as pool:
            futures = {n.name: pool.submit(n.notify, ctx, *alerts) for n in targets}

        results = {name: future.result() for name, future in futures.items()}
        failed = [name for name, result in results.items() if not result.ok]
        if failed:
            logger.warning(
                "Receiver '%s': %d of %d integration(s) failed: %s",
                self.name,
                len(failed),
                len(results),
                ", ".join(failed)
            )
        else:
            logger.info("Receiver '%s': notified %d integration(s)", self.name, len(results))
        return results


def build_receiver(
    name: str,
    channels: Sequence["NotificationChannelConfig"],
    sender: "Sender",
    engine: "TemplateEngine",
    build_version: str | None = None
) -> Receiver:
    """
    Create a receiver from channel configurations.

    Raises:
        ValueError: If a channel type is unknown
        ChannelConfigError: If a channel's settings are invalid
    """
    integrations = [create_notifier(channel, sender, engine, build_version) for channel in channels]
    return Receiver(name, integrations)
