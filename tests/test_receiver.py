"""
Tests for receiver fan-out.
"""

import dataclasses
import json
from datetime import timedelta

from beacon.config import NotificationChannelConfig
from beacon.core import Alert, NotificationContext
from beacon.errors import IntegrationRejectedError
from beacon.notifiers.discord import DiscordNotifier, DiscordSettings
from beacon.notifiers.webhook import WebhookNotifier, WebhookSettings
from beacon.receiver import Receiver, build_receiver, build_test_alert
from beacon.sender import RecordingSender, WebhookRequest, WebhookResponse
from beacon.templating import TemplateEngine


class RoutingSender(RecordingSender):
    """Answers 500 for one URL and 200 for the rest."""

    def __init__(self, failing_url: str):
        super().__init__()
        self.failing_url = failing_url

    def send_webhook(self, ctx: NotificationContext, request: WebhookRequest) -> WebhookResponse:
        super().send_webhook(ctx, request)
        if request.url == self.failing_url:
            return WebhookResponse(500, "internal error")
        return self.response


def webhook(name: str, url: str, sender: RecordingSender, engine: TemplateEngine, **raw) -> WebhookNotifier:
    settings = WebhookSettings.from_settings({"url": url, **raw})
    return WebhookNotifier(settings, sender, engine, name=name)


class TestReceiver:
    """Tests for Receiver.notify."""

    def test_notifies_every_integration(
        self,
        ctx: NotificationContext,
        engine: TemplateEngine,
        sender: RecordingSender,
        firing_alert: Alert
    ) -> None:
        """Test that each integration gets exactly one request."""
        receiver = Receiver("team", [
            webhook("hook-a", "http://a", sender, engine),
            webhook("hook-b", "http://b", sender, engine),
        ])

        results = receiver.notify(ctx, firing_alert)

        assert set(results) == {"hook-a", "hook-b"}
        assert all(result.ok for result in results.values())
        assert sorted(r.url for r in sender.webhooks) == ["http://a", "http://b"]

    def test_failure_is_isolated(self, ctx: NotificationContext, engine: TemplateEngine, firing_alert: Alert) -> None:
        """Test that one integration failing does not affect the others."""
        sender = RoutingSender("http://broken")
        receiver = Receiver("team", [
            webhook("broken", "http://broken", sender, engine),
            webhook("healthy", "http://healthy", sender, engine),
        ])

        results = receiver.notify(ctx, firing_alert)

        assert results["healthy"].ok
        assert not results["broken"].ok
        assert isinstance(results["broken"].error, IntegrationRejectedError)
        assert results["broken"].error.retryable
        assert len(sender.webhooks) == 2

    def test_skips_resolve_disabled_for_resolved_group(self, ctx: NotificationContext, engine: TemplateEngine) -> None:
        """Test that channels with resolve messages disabled skip resolved groups."""
        sender = RecordingSender()
        resolved = Alert(labels={"alertname": "a"}, ends_at=ctx.now - timedelta(minutes=1))
        receiver = Receiver("team", [
            webhook("quiet", "http://quiet", sender, engine, disableResolveMessage=True),
            webhook("loud", "http://loud", sender, engine),
        ])

        results = receiver.notify(ctx, resolved)

        assert list(results) == ["loud"]
        assert [r.url for r in sender.webhooks] == ["http://loud"]

    def test_resolve_disabled_still_gets_firing_groups(
        self,
        ctx: NotificationContext,
        engine: TemplateEngine,
        sender: RecordingSender,
        firing_alert: Alert
    ) -> None:
        resolved = Alert(labels={"alertname": "a"}, ends_at=ctx.now - timedelta(minutes=1))
        receiver = Receiver("team", [webhook("quiet", "http://quiet", sender, engine, disableResolveMessage=True)])

        results = receiver.notify(ctx, firing_alert, resolved)

        assert results["quiet"].ok

    def test_fills_receiver_name(self, engine: TemplateEngine, sender: RecordingSender, firing_alert: Alert) -> None:
        """Test that an unnamed context takes the receiver's name."""
        ctx = NotificationContext(group_key="k", external_url="http://localhost")
        receiver = Receiver("team-pager", [webhook("hook", "http://a", sender, engine)])

        receiver.notify(ctx, firing_alert)

        assert json.loads(sender.last_webhook.body)["receiver"] == "team-pager"

    def test_keeps_explicit_receiver_name(
        self,
        ctx: NotificationContext,
        engine: TemplateEngine,
        sender: RecordingSender,
        firing_alert: Alert
    ) -> None:
        receiver = Receiver("team-pager", [webhook("hook", "http://a", sender, engine)])

        receiver.notify(ctx, firing_alert)

        assert json.loads(sender.last_webhook.body)["receiver"] == "test_receiver"

    def test_no_integrations(self, ctx: NotificationContext, firing_alert: Alert) -> None:
        assert Receiver("empty", []).notify(ctx, firing_alert) == {}

    def test_many_integrations_with_few_workers(
        self,
        ctx: NotificationContext,
        engine: TemplateEngine,
        sender: RecordingSender,
        firing_alert: Alert
    ) -> None:
        integrations = [webhook(f"hook-{i}", f"http://host/{i}", sender, engine) for i in range(10)]

        results = Receiver("team", integrations, max_workers=2).notify(ctx, firing_alert)

        assert len(results) == 10
        assert len(sender.webhooks) == 10


class TestBuildReceiver:
    """Tests for build_receiver."""

    def test_build_from_channels(self, engine: TemplateEngine, sender: RecordingSender) -> None:
        channels = [
            NotificationChannelConfig(name="discord", type="discord", settings={"url": "http://d"}),
            NotificationChannelConfig(name="hook", type="webhook", settings={"url": "http://w"}),
        ]

        receiver = build_receiver("team", channels, sender, engine, "1.2.3")

        assert receiver.name == "team"
        assert [n.name for n in receiver.integrations] == ["discord", "hook"]
        assert isinstance(receiver.integrations[0], DiscordNotifier)
        assert receiver.integrations[0].build_version == "1.2.3"


class TestTestAlert:
    """Tests for the synthetic test alert."""

    def test_test_alert(self, now) -> None:
        alert = build_test_alert(now)

        assert alert.name == "TestAlert"
        assert alert.labels["instance"] == "Grafana"
        assert alert.starts_at == now
        assert alert.ends_at is None

    def test_test_alert_renders(self, ctx: NotificationContext, engine: TemplateEngine, sender: RecordingSender) -> None:
        """Test that the test alert goes through the default Discord templates."""
        ctx = dataclasses.replace(ctx, group_labels={"alertname": "TestAlert"})
        notifier = DiscordNotifier(DiscordSettings.from_settings({"url": "http://d"}), sender, engine)

        ok, err = notifier.notify(ctx, build_test_alert(ctx.now))

        assert ok is True, err
        payload = json.loads(sender.last_webhook.body)
        assert payload["embeds"][0]["title"] == "[FIRING:1] TestAlert (Grafana)"
        assert "Value: [ metric='foo' labels={instance=bar} value=10 ]" not in payload["content"]
        assert " - summary = Notification test\n" in payload["content"]
