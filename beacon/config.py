"""
Configuration loading and validation for Beacon.

Two layers live here: the process configuration (``BeaconConfig``, read
from YAML) and ``ChannelSettings``, the base of every integration's
strictly typed settings model parsed from a channel's raw settings map.
"""

from collections.abc import Mapping
from pathlib import Path
from typing import Any, ClassVar

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from beacon import __version__
from beacon.errors import ChannelConfigError


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "settings"
        parts.append(f"invalid value for '{location}': {item['msg']}")
    return "; ".join(parts)


class ChannelSettings(BaseModel):
    """
    Base model for integration settings.

    Subclasses declare their fields (with the raw settings key as alias) and
    list mandatory ones in ``required_fields`` together with the error
    message reported when the key is absent or empty.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    required_fields: ClassVar[dict[str, str]] = {}

    disable_resolve_message: bool = Field(False, alias="disableResolveMessage")

    @classmethod
    def from_settings(cls, raw: Mapping[str, Any] | None) -> "ChannelSettings":
        """
        Parse a raw settings mapping.

        Args:
            raw: Loosely typed settings, keyed the way channels store them

        Returns:
            Validated, immutable settings

        Raises:
            ChannelConfigError: If a required key is missing or a value has
                the wrong type
        """
        raw = dict(raw or {})

        for field_name, message in cls.required_fields.items():
            key = cls.model_fields[field_name].alias or field_name
            value = raw.get(key)
            if not isinstance(value, str) or not value.strip():
                raise ChannelConfigError(message)

        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise ChannelConfigError(_describe_validation_error(e)) from e


class SmtpConfig(BaseModel):
    """SMTP server used by email channels."""
    host: str = "localhost"
    port: int = Field(25, gt=0, le=65535)
    user: str = ""
    password: str = ""
    from_address: str = "admin@grafana.localhost"
    from_name: str = "Grafana"
    starttls: bool = False
    timeout: float = Field(10.0, gt=0)


class NotificationChannelConfig(BaseModel):
    """A configured notification channel."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)  # "discord", "slack", "webhook", etc.
    uid: str = ""
    settings: dict[str, Any] = Field(default_factory=dict)  # Type-specific raw settings
    disable_resolve_message: bool = Field(False, alias="disableResolveMessage")


class BeaconConfig(BaseModel):
    """Main configuration for Beacon."""
    external_url: str = "http://localhost:3000/"
    build_version: str = __version__
    smtp: SmtpConfig = Field(default_factory=SmtpConfig)
    http_timeout_seconds: float = Field(30.0, gt=0)
    templates: list[str] = Field(default_factory=list)  # Extra template definitions
    channels: list[NotificationChannelConfig] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _unique_channel_names(self) -> "BeaconConfig":
        seen: set[str] = set()
        for channel in self.channels:
            if channel.name in seen:
                raise ValueError(f"duplicate channel name: {channel.name}")
            seen.add(channel.name)
        return self

    def get_channel(self, name: str) -> NotificationChannelConfig:
        """
        Look up a channel by name.

        Raises:
            KeyError: If no channel has that name
        """
        for channel in self.channels:
            if channel.name == name:
                return channel
        raise KeyError(name)


def load_config(config_path: str | Path) -> BeaconConfig:
    """
    Load and validate configuration from YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Validated BeaconConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config is invalid
        yaml.YAMLError: If YAML parsing fails
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with path.open('r', encoding='utf-8') as f:
        raw_config: dict[str, Any] = yaml.safe_load(f)

    try:
        return BeaconConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ValueError(f"Configuration validation error: {e}") from e
