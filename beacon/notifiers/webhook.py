"""
Webhook notifier for Beacon.

Posts the whole template data model as JSON, for receivers that do their
own formatting.
"""

from typing import Any, ClassVar, Literal

from pydantic import Field, field_validator

from beacon.config import ChannelSettings
from beacon.core import Alert, NotificationContext, Notifier, payload_body
from beacon.data import STATUS_FIRING
from beacon.logging_config import get_logger
from beacon.registry import register_notifier
from beacon.sender import WebhookRequest
from beacon.templating import DEFAULT_MESSAGE_EMBED, DEFAULT_MESSAGE_TITLE_EMBED

logger = get_logger(__name__)

PAYLOAD_VERSION = "1"
STATE_ALERTING = "alerting"
STATE_OK = "ok"


class WebhookSettings(ChannelSettings):
    """
    Settings of a generic webhook channel.

    Config:
        url: Endpoint receiving the payload
        httpMethod: POST or PUT
        username: Basic auth user
        password: Basic auth password
        maxAlerts: Maximum number of alerts in the payload, 0 for no limit
        title: Template for the payload title
        message: Template for the payload message
    """

    required_fields: ClassVar[dict[str, str]] = {
        "url": "could not find url property in settings",
    }

    url: str
    http_method: Literal["POST", "PUT"] = Field("POST", alias="httpMethod")
    username: str = ""
    password: str = ""
    max_alerts: int = Field(0, alias="maxAlerts", ge=0)
    title: str = DEFAULT_MESSAGE_TITLE_EMBED
    message: str = DEFAULT_MESSAGE_EMBED

    @field_validator("http_method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper() or "POST"
        return value


def truncate_alerts(max_alerts: int, alerts: list[Alert]) -> tuple[list[Alert], int]:
    """Keep the first ``max_alerts`` alerts; returns them and how many were dropped."""
    if max_alerts <= 0 or len(alerts) <= max_alerts:
        return alerts, 0
    return alerts[:max_alerts], len(alerts) - max_alerts


@register_notifier("webhook")
class WebhookNotifier(Notifier):
    """Sends the extended alert data as JSON."""

    settings_class: ClassVar[type[ChannelSettings]] = WebhookSettings
    settings: WebhookSettings

    def _notify(self, ctx: NotificationContext, alerts: list[Alert]) -> None:
        alerts, truncated = truncate_alerts(self.settings.max_alerts, alerts)
        if truncated:
            logger.debug("Webhook '%s' dropped %d alert(s) over maxAlerts", self.name, truncated)

        data = self._extended_data(ctx, alerts)
        render = self._renderer(data)

        payload = data.to_dict()
        payload.update({
            "version": PAYLOAD_VERSION,
            "groupKey": ctx.group_key,
            "truncatedAlerts": truncated,
            "title": render(self.settings.title),
            "message": render(self.settings.message),
            "state": STATE_ALERTING if data.status == STATUS_FIRING else STATE_OK,
        })

        request = WebhookRequest(
            url=self.settings.url,
            body=payload_body(payload),
            http_method=self.settings.http_method,
            user=self.settings.username,
            password=self.settings.password,
        )
        self._deliver_webhook(ctx, request)


# Export for dynamic importing
__all__ = ["WebhookNotifier", "WebhookSettings"]
