"""
Notifier registry and factory for Beacon.

Maps a channel's type string to the notifier class implementing it, so
the dispatch code never needs to know which integrations exist.
"""

from collections.abc import Callable
from typing import TYPE_CHECKING

from beacon.config import NotificationChannelConfig
from beacon.core import Notifier
from beacon.logging_config import get_logger

if TYPE_CHECKING:
    from beacon.sender import Sender
    from beacon.templating import TemplateEngine

logger = get_logger(__name__)


class PluginRegistry:
    """Registry of notifier implementations keyed by type name."""

    def __init__(self) -> None:
        self._notifiers: dict[str, type[Notifier]] = {}

    def register_notifier(self, type_name: str, cls: type[Notifier]) -> None:
        """Register a notifier implementation."""
        if type_name in self._notifiers and self._notifiers[type_name] is not cls:
            logger.warning(
                "Notifier type '%s' re-registered: %s replaces %s",
                type_name,
                cls.__name__,
                self._notifiers[type_name].__name__
            )
        self._notifiers[type_name] = cls

    def get_notifier(self, type_name: str) -> type[Notifier]:
        """Get a notifier class by type name."""
        if type_name not in self._notifiers:
            raise ValueError(f"Unknown notifier type: {type_name}")
        return self._notifiers[type_name]

    def list_plugins(self) -> dict[str, list[str]]:
        """List registered notifier types."""
        return {"notifiers": sorted(self._notifiers)}


# Global registry instance
_registry = PluginRegistry()


def create_notifier(
    channel: NotificationChannelConfig,
    sender: "Sender",
    engine: "TemplateEngine",
    build_version: str | None = None
) -> Notifier:
    """
    Create a notifier from a channel configuration.

    Args:
        channel: Channel name, type and raw settings
        sender: Outbound sender the notifier delivers through
        engine: Template engine used for rendering
        build_version: Version reported in payloads, if not the package version

    Returns:
        Ready notifier

    Raises:
        ValueError: If the channel type is unknown
        ChannelConfigError: If the channel settings are invalid
    """
    cls = _registry.get_notifier(channel.type)

    raw = dict(channel.settings)
    if channel.disable_resolve_message:
        raw["disableResolveMessage"] = True
    settings = cls.settings_class.from_settings(raw)

    kwargs = {"name": channel.name}
    if build_version is not None:
        kwargs["build_version"] = build_version
    return cls(settings, sender, engine, **kwargs)


# Decorator for easy registration
def register_notifier(type_name: str) -> Callable[[type[Notifier]], type[Notifier]]:
    """Decorator to register a notifier class."""
    def decorator(cls: type[Notifier]) -> type[Notifier]:
        _registry.register_notifier(type_name, cls)
        return cls
    return decorator


def get_registry() -> PluginRegistry:
    """Get the global plugin registry."""
    return _registry
