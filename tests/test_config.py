"""
Tests for configuration loading and validation.
"""

from pathlib import Path

import pytest
import yaml

from beacon.config import BeaconConfig, ChannelSettings, load_config
from beacon.errors import ChannelConfigError
from beacon.notifiers.discord import DiscordSettings
from beacon.notifiers.webhook import WebhookSettings


class TestLoadConfig:
    """Tests for load_config function."""

    def test_load_valid_config(self, tmp_path: Path) -> None:
        """Test loading a valid configuration file."""
        config_file = tmp_path / "beacon.yaml"
        config_file.write_text("""
external_url: "https://grafana.example.com/"
http_timeout_seconds: 5
smtp:
  host: "smtp.example.com"
  port: 587
  starttls: true
templates:
  - '{{ define "team.title" }}{{ .Status }}{{ end }}'
channels:
  - name: "ops-discord"
    type: "discord"
    uid: "abc123"
    settings:
      url: "https://discord.com/api/webhooks/1/x"
  - name: "ops-email"
    type: "email"
    disableResolveMessage: true
    settings:
      addresses: "ops@example.com"
""")

        config = load_config(config_file)

        assert config.external_url == "https://grafana.example.com/"
        assert config.http_timeout_seconds == 5
        assert config.smtp.host == "smtp.example.com"
        assert config.smtp.port == 587
        assert config.smtp.starttls is True
        assert config.smtp.from_address == "admin@grafana.localhost"
        assert len(config.templates) == 1
        assert [c.name for c in config.channels] == ["ops-discord", "ops-email"]
        assert config.channels[0].uid == "abc123"
        assert config.channels[0].settings == {"url": "https://discord.com/api/webhooks/1/x"}
        assert config.channels[1].disable_resolve_message is True

    def test_defaults(self, tmp_path: Path) -> None:
        """Test defaults for optional sections."""
        config_file = tmp_path / "beacon.yaml"
        config_file.write_text("""
channels:
  - name: "hook"
    type: "webhook"
""")

        config = load_config(config_file)

        assert config.external_url == "http://localhost:3000/"
        assert config.http_timeout_seconds == 30.0
        assert config.smtp.port == 25
        assert config.templates == []
        assert config.channels[0].settings == {}

    def test_load_nonexistent_file(self, tmp_path: Path) -> None:
        """Test loading a file that doesn't exist."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.yaml")

    def test_load_invalid_yaml(self, tmp_path: Path) -> None:
        """Test loading invalid YAML."""
        config_file = tmp_path / "beacon.yaml"
        config_file.write_text("channels: [unclosed")

        with pytest.raises(yaml.YAMLError):
            load_config(config_file)

    def test_missing_channels(self, tmp_path: Path) -> None:
        """Test that at least one channel is required."""
        config_file = tmp_path / "beacon.yaml"
        config_file.write_text("external_url: http://localhost/\n")

        with pytest.raises(ValueError, match="Configuration validation error"):
            load_config(config_file)

    def test_duplicate_channel_names(self, tmp_path: Path) -> None:
        """Test that channel names must be unique."""
        config_file = tmp_path / "beacon.yaml"
        config_file.write_text("""
channels:
  - name: "same"
    type: "webhook"
  - name: "same"
    type: "slack"
""")

        with pytest.raises(ValueError, match="duplicate channel name: same"):
            load_config(config_file)


class TestBeaconConfig:
    """Tests for BeaconConfig."""

    def test_get_channel(self) -> None:
        config = BeaconConfig.model_validate({
            "channels": [{"name": "a", "type": "webhook"}, {"name": "b", "type": "slack"}],
        })

        assert config.get_channel("b").type == "slack"

    def test_get_unknown_channel(self) -> None:
        config = BeaconConfig.model_validate({"channels": [{"name": "a", "type": "webhook"}]})

        with pytest.raises(KeyError):
            config.get_channel("missing")

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            BeaconConfig.model_validate({
                "http_timeout_seconds": 0,
                "channels": [{"name": "a", "type": "webhook"}],
            })


class TestChannelSettings:
    """Tests for parsing raw channel settings."""

    def test_missing_required_field(self) -> None:
        """Test the integration's message for a missing required key."""
        with pytest.raises(ChannelConfigError) as exc_info:
            DiscordSettings.from_settings({})

        assert str(exc_info.value) == "could not find webhook url property in settings"
        assert exc_info.value.kind == "config"

    def test_empty_required_field(self) -> None:
        """Test that a blank required key counts as missing."""
        with pytest.raises(ChannelConfigError, match="could not find webhook url property in settings"):
            DiscordSettings.from_settings({"url": "   "})

    def test_non_string_required_field(self) -> None:
        """Test that a required key of the wrong type counts as missing."""
        with pytest.raises(ChannelConfigError, match="could not find webhook url property in settings"):
            DiscordSettings.from_settings({"url": 42})

    def test_none_settings(self) -> None:
        with pytest.raises(ChannelConfigError):
            DiscordSettings.from_settings(None)

    def test_invalid_optional_value(self) -> None:
        """Test that type errors name the offending key."""
        with pytest.raises(ChannelConfigError, match="invalid value for 'use_discord_username'"):
            DiscordSettings.from_settings({"url": "http://localhost", "use_discord_username": "perhaps"})

    def test_invalid_enum_value(self) -> None:
        with pytest.raises(ChannelConfigError, match="invalid value for 'httpMethod'"):
            WebhookSettings.from_settings({"url": "http://localhost", "httpMethod": "DELETE"})

    def test_unknown_keys_are_ignored(self) -> None:
        settings = DiscordSettings.from_settings({"url": "http://localhost", "somethingElse": 1})

        assert settings.url == "http://localhost"

    def test_settings_are_immutable(self) -> None:
        settings = DiscordSettings.from_settings({"url": "http://localhost"})

        with pytest.raises(ValueError):
            settings.url = "http://elsewhere"  # type: ignore[misc]

    def test_disable_resolve_message_alias(self) -> None:
        settings = ChannelSettings.from_settings({"disableResolveMessage": True})

        assert settings.disable_resolve_message is True
