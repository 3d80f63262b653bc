"""
Email notifier for Beacon.
"""

import re
from collections.abc import Mapping
from typing import Any, ClassVar

from pydantic import Field

from beacon.config import ChannelSettings
from beacon.core import Alert, NotificationContext, Notifier
from beacon.errors import ChannelConfigError
from beacon.registry import register_notifier
from beacon.sender import EmailMessage
from beacon.templating import DEFAULT_MESSAGE_EMBED, DEFAULT_MESSAGE_TITLE_EMBED

MISSING_ADDRESSES = "could not find addresses in settings"

_ADDRESS_SEPARATORS = re.compile(r"[;,\n]")


class EmailSettings(ChannelSettings):
    """
    Settings of an email channel.

    Config:
        addresses: Recipients separated by ";", "," or newlines
        singleEmail: Send one email to all recipients instead of one each
        subject: Template for the subject line
        message: Template for the body
    """

    required_fields: ClassVar[dict[str, str]] = {"addresses": MISSING_ADDRESSES}

    addresses: str
    single_email: bool = Field(False, alias="singleEmail")
    subject: str = DEFAULT_MESSAGE_TITLE_EMBED
    message: str = DEFAULT_MESSAGE_EMBED

    @classmethod
    def from_settings(cls, raw: Mapping[str, Any] | None) -> "EmailSettings":
        settings = super().from_settings(raw)
        if not settings.address_list():
            raise ChannelConfigError(MISSING_ADDRESSES)
        return settings

    def address_list(self) -> tuple[str, ...]:
        return tuple(a.strip() for a in _ADDRESS_SEPARATORS.split(self.addresses) if a.strip())


@register_notifier("email")
class EmailNotifier(Notifier):
    """Sends notifications via email."""

    settings_class: ClassVar[type[ChannelSettings]] = EmailSettings
    settings: EmailSettings

    def _notify(self, ctx: NotificationContext, alerts: list[Alert]) -> None:
        data = self._extended_data(ctx, alerts)
        render = self._renderer(data)

        message = EmailMessage(
            to=self.settings.address_list(),
            subject=render(self.settings.subject),
            body=render(self.settings.message),
            single_email=self.settings.single_email,
        )

        ctx.check_cancelled()
        self.sender.send_email(ctx, message)


# Export for dynamic importing
__all__ = ["EmailNotifier", "EmailSettings"]
