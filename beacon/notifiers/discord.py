"""
Discord notifier for Beacon.
"""

from typing import Any, ClassVar

from beacon import links
from beacon.config import ChannelSettings
from beacon.core import Alert, NotificationContext, Notifier, payload_body
from beacon.data import status_color
from beacon.logging_config import get_logger
from beacon.registry import register_notifier
from beacon.sender import WebhookRequest
from beacon.templating import DEFAULT_MESSAGE_EMBED, DEFAULT_MESSAGE_TITLE_EMBED

logger = get_logger(__name__)

DEFAULT_USERNAME = "Grafana"
FOOTER_ICON_URL = "https://grafana.com/assets/img/dp-logo.png"
MAX_CONTENT_LENGTH = 2000


class DiscordSettings(ChannelSettings):
    """
    Settings of a Discord channel.

    Config:
        url: Discord webhook URL
        message: Template for the message content
        avatar_url: Template for the avatar shown next to the message
        use_discord_username: Let Discord pick the username instead of "Grafana"
    """

    required_fields: ClassVar[dict[str, str]] = {
        "url": "could not find webhook url property in settings",
    }

    url: str
    message: str = DEFAULT_MESSAGE_EMBED
    avatar_url: str = ""
    use_discord_username: bool = False


@register_notifier("discord")
class DiscordNotifier(Notifier):
    """Posts one message with a rich embed summarizing the alert group."""

    settings_class: ClassVar[type[ChannelSettings]] = DiscordSettings
    settings: DiscordSettings

    def _notify(self, ctx: NotificationContext, alerts: list[Alert]) -> None:
        data = self._extended_data(ctx, alerts)
        render = self._renderer(data)

        payload: dict[str, Any] = {}
        if not self.settings.use_discord_username:
            payload["username"] = DEFAULT_USERNAME

        if self.settings.message:
            content = render(self.settings.message)
            if len(content) > MAX_CONTENT_LENGTH:
                logger.warning(
                    "Discord message for '%s' truncated from %d to %d characters",
                    self.name,
                    len(content),
                    MAX_CONTENT_LENGTH
                )
                content = content[:MAX_CONTENT_LENGTH - 1] + "…"
            payload["content"] = content

        if self.settings.avatar_url:
            payload["avatar_url"] = render(self.settings.avatar_url)

        payload["embeds"] = [{
            "title": render(DEFAULT_MESSAGE_TITLE_EMBED),
            "url": links.alert_list_url(ctx.external_url),
            "color": int(status_color(data.status).lstrip("#"), 16),
            "footer": {
                "icon_url": FOOTER_ICON_URL,
                "text": f"Grafana v{self.build_version}",
            },
            "type": "rich",
        }]

        self._deliver_webhook(ctx, WebhookRequest(url=self.settings.url, body=payload_body(payload)))


# Export for dynamic importing
__all__ = ["DiscordNotifier", "DiscordSettings"]
