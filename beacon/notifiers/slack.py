"""
Slack notifier for Beacon.
"""

from typing import Any, ClassVar, Literal

from pydantic import Field

from beacon import links
from beacon.config import ChannelSettings
from beacon.core import Alert, NotificationContext, Notifier, payload_body
from beacon.data import status_color
from beacon.registry import register_notifier
from beacon.sender import WebhookRequest
from beacon.templating import DEFAULT_MESSAGE_EMBED, DEFAULT_MESSAGE_TITLE_EMBED

FOOTER_ICON_URL = "https://grafana.com/assets/img/fav32.png"


def _split_ids(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


class SlackSettings(ChannelSettings):
    """
    Settings of a Slack channel.

    Config:
        url: Incoming webhook URL
        recipient: Channel or user override
        username: Bot username override
        icon_emoji: Emoji used as the bot icon
        icon_url: Image URL used as the bot icon
        mentionChannel: "here" or "channel" to notify the whole channel
        mentionUsers: Comma separated user IDs to mention
        mentionGroups: Comma separated group IDs to mention
        title: Template for the attachment title
        text: Template for the attachment text
    """

    required_fields: ClassVar[dict[str, str]] = {
        "url": "could not find url property in settings",
    }

    url: str
    recipient: str = ""
    username: str = ""
    icon_emoji: str = ""
    icon_url: str = ""
    mention_channel: Literal["", "here", "channel"] = Field("", alias="mentionChannel")
    mention_users: str = Field("", alias="mentionUsers")
    mention_groups: str = Field("", alias="mentionGroups")
    title: str = DEFAULT_MESSAGE_TITLE_EMBED
    text: str = DEFAULT_MESSAGE_EMBED

    def mentions(self) -> str:
        """Mention markup prepended to the message text."""
        parts = []
        if self.mention_channel:
            parts.append(f"<!{self.mention_channel}|{self.mention_channel}>")
        parts.extend(f"<@{user}>" for user in _split_ids(self.mention_users))
        parts.extend(f"<!subteam^{group}>" for group in _split_ids(self.mention_groups))
        return " ".join(parts)


@register_notifier("slack")
class SlackNotifier(Notifier):
    """Posts one attachment summarizing the alert group to an incoming webhook."""

    settings_class: ClassVar[type[ChannelSettings]] = SlackSettings
    settings: SlackSettings

    def _notify(self, ctx: NotificationContext, alerts: list[Alert]) -> None:
        data = self._extended_data(ctx, alerts)
        render = self._renderer(data)

        title = render(self.settings.title)
        text = render(self.settings.text)
        mentions = self.settings.mentions()
        if mentions:
            text = f"{mentions}\n{text}"

        payload: dict[str, Any] = {
            "attachments": [{
                "color": status_color(data.status),
                "title": title,
                "title_link": links.alert_list_url(ctx.external_url),
                "fallback": title,
                "text": text,
                "footer": f"Grafana v{self.build_version}",
                "footer_icon": FOOTER_ICON_URL,
                "ts": int(ctx.now.timestamp()),
                "mrkdwn_in": ["pretext"],
            }],
        }
        for key, value in (
            ("channel", self.settings.recipient),
            ("username", self.settings.username),
            ("icon_emoji", self.settings.icon_emoji),
            ("icon_url", self.settings.icon_url),
        ):
            if value:
                payload[key] = render(value)

        self._deliver_webhook(ctx, WebhookRequest(url=self.settings.url, body=payload_body(payload)))


# Export for dynamic importing
__all__ = ["SlackNotifier", "SlackSettings"]
