"""
Pushover notifier for Beacon.
"""

from typing import ClassVar
from urllib.parse import urlencode

from pydantic import Field

from beacon import links
from beacon.config import ChannelSettings
from beacon.core import Alert, NotificationContext, Notifier
from beacon.data import STATUS_RESOLVED
from beacon.registry import register_notifier
from beacon.sender import WebhookRequest
from beacon.templating import DEFAULT_MESSAGE_EMBED, DEFAULT_MESSAGE_TITLE_EMBED

PUSHOVER_API_URL = "https://api.pushover.net/1/messages.json"
EMERGENCY_PRIORITY = 2
MAX_TITLE_LENGTH = 250
MAX_MESSAGE_LENGTH = 1024


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit - 1] + "…"


class PushoverSettings(ChannelSettings):
    """
    Settings of a Pushover channel.

    Config:
        userKey: Pushover user or group key
        apiToken: Pushover application token
        priority: Priority of firing notifications (-2..2)
        okPriority: Priority of resolved notifications (-2..2)
        retry: Seconds between retries of emergency notifications
        expire: Seconds before an emergency notification stops retrying
        device: Device name to notify, all devices if empty
        sound: Sound of firing notifications
        okSound: Sound of resolved notifications
        title: Template for the notification title
        message: Template for the notification message
    """

    required_fields: ClassVar[dict[str, str]] = {
        "user_key": "user key not found",
        "api_token": "API token not found",
    }

    user_key: str = Field(..., alias="userKey")
    api_token: str = Field(..., alias="apiToken")
    priority: int = Field(0, ge=-2, le=2)
    ok_priority: int = Field(0, alias="okPriority", ge=-2, le=2)
    retry: int = Field(0, ge=0)
    expire: int = Field(0, ge=0)
    device: str = ""
    sound: str = ""
    ok_sound: str = Field("", alias="okSound")
    title: str = DEFAULT_MESSAGE_TITLE_EMBED
    message: str = DEFAULT_MESSAGE_EMBED


@register_notifier("pushover")
class PushoverNotifier(Notifier):
    """Sends notifications via the Pushover messages API."""

    settings_class: ClassVar[type[ChannelSettings]] = PushoverSettings
    settings: PushoverSettings

    def _notify(self, ctx: NotificationContext, alerts: list[Alert]) -> None:
        data = self._extended_data(ctx, alerts)
        render = self._renderer(data)
        resolved = data.status == STATUS_RESOLVED

        priority = self.settings.ok_priority if resolved else self.settings.priority
        form = {
            "user": self.settings.user_key,
            "token": self.settings.api_token,
            "priority": str(priority),
            "title": _truncate(render(self.settings.title), MAX_TITLE_LENGTH),
            "message": _truncate(render(self.settings.message), MAX_MESSAGE_LENGTH),
            "url": links.alert_list_url(ctx.external_url),
            "url_title": "Show alert rule",
            "html": "1",
        }

        sound = self.settings.ok_sound if resolved else self.settings.sound
        if sound:
            form["sound"] = sound
        if self.settings.device:
            form["device"] = self.settings.device

        # Emergency priority requires retry and expire parameters
        if priority == EMERGENCY_PRIORITY:
            form["retry"] = str(self.settings.retry)
            form["expire"] = str(self.settings.expire)

        request = WebhookRequest(
            url=PUSHOVER_API_URL,
            body=urlencode(sorted(form.items())),
            content_type="application/x-www-form-urlencoded",
        )
        self._deliver_webhook(ctx, request)


# Export for dynamic importing
__all__ = ["PushoverNotifier", "PushoverSettings"]
