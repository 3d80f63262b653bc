"""
Beacon CLI - Command line interface for notification channels.

Provides commands for:
- Configuration validation
- Channel listing and test notifications
- Sending an alert group from a YAML file
"""

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from beacon.config import BeaconConfig, load_config
from beacon.core import Alert, NotificationContext, SendResult
from beacon.errors import NotifierError
from beacon.logging_config import get_logger, setup_logging
from beacon.plugins import create_notifier
from beacon.receiver import build_receiver, build_test_alert
from beacon.sender import HttpSender
from beacon.templating import TemplateEngine

logger = get_logger(__name__)


class AlertFileEntry(BaseModel):
    """One alert in an alerts file."""

    model_config = ConfigDict(populate_by_name=True)

    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    starts_at: datetime | None = Field(None, alias="startsAt")
    ends_at: datetime | None = Field(None, alias="endsAt")
    generator_url: str = Field("", alias="generatorURL")

    def to_alert(self) -> Alert:
        return Alert(
            labels=dict(self.labels),
            annotations=dict(self.annotations),
            starts_at=self.starts_at,
            ends_at=self.ends_at,
            generator_url=self.generator_url,
        )


def load_alerts(path: str | Path) -> list[Alert]:
    """
    Load an alert group from a YAML list of alerts.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not a list of valid alerts
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Alerts file not found: {path}")

    with path.open('r', encoding='utf-8') as f:
        raw: Any = yaml.safe_load(f)

    if not isinstance(raw, list) or not raw:
        raise ValueError("Alerts file must contain a non-empty list of alerts")

    try:
        return [AlertFileEntry.model_validate(item).to_alert() for item in raw]
    except ValidationError as e:
        raise ValueError(f"Invalid alert: {e}") from e


def group_labels_for(alerts: list[Alert], group_by: list[str]) -> dict[str, str]:
    """Values of the group-by labels, taken from the first alert."""
    first = alerts[0].labels if alerts else {}
    return {name: first.get(name, "") for name in group_by}


def group_key_for(group_labels: dict[str, str]) -> str:
    matchers = ",".join(f'{name}="{value}"' for name, value in sorted(group_labels.items()))
    return f"{{}}:{{{matchers}}}"


def _print_result(name: str, result: SendResult) -> None:
    if result.ok:
        print(f"  ✓ {name}")
    else:
        hint = " (retryable)" if result.error.retryable else ""
        print(f"  ✗ {name}: [{result.error.kind}] {result.error}{hint}")


def _load(args: argparse.Namespace) -> BeaconConfig | None:
    config_path = Path(args.config)

    if not config_path.exists():
        print(f"Error: Config file not found: {config_path}", file=sys.stderr)
        return None

    try:
        return load_config(config_path)
    except (ValueError, yaml.YAMLError) as e:
        print(f"✗ Configuration invalid: {e}", file=sys.stderr)
        return None


def cmd_config_validate(args: argparse.Namespace) -> int:
    """Validate configuration file and every channel's settings."""
    config = _load(args)
    if config is None:
        return 1

    try:
        engine = TemplateEngine(config.templates)
    except NotifierError as e:
        print(f"✗ Templates invalid: {e}", file=sys.stderr)
        return 1

    # Build every channel so settings errors surface now
    errors = 0
    with HttpSender(timeout=config.http_timeout_seconds, smtp=config.smtp) as sender:
        for channel in config.channels:
            try:
                create_notifier(channel, sender, engine)
            except ValueError as e:
                print(f"✗ Channel '{channel.name}' ({channel.type}): {e}", file=sys.stderr)
                errors += 1

    if errors:
        return 1

    print(f"✓ Configuration valid: {args.config}")
    print(f"  - {len(config.channels)} channel(s) configured")
    print(f"  - External URL: {config.external_url}")
    return 0


def cmd_channels_list(args: argparse.Namespace) -> int:
    """List all configured channels."""
    config = _load(args)
    if config is None:
        return 1

    print(f"Configured channels ({len(config.channels)}):\n")
    for i, channel in enumerate(config.channels, 1):
        print(f"{i}. {channel.name}")
        print(f"   Type: {channel.type}")
        if channel.uid:
            print(f"   UID:  {channel.uid}")
        if channel.disable_resolve_message:
            print("   Resolve messages disabled")
        print()
    return 0


def cmd_channels_test(args: argparse.Namespace) -> int:
    """Send a test notification through one channel."""
    config = _load(args)
    if config is None:
        return 1

    # Find the channel
    try:
        channel = config.get_channel(args.name)
    except KeyError:
        print(f"Error: Channel '{args.name}' not found", file=sys.stderr)
        print("\nAvailable channels:", file=sys.stderr)
        for channel in config.channels:
            print(f"  - {channel.name}", file=sys.stderr)
        return 1

    # Create test alert
    now = datetime.now(tz=timezone.utc)
    alert = build_test_alert(now)
    ctx = NotificationContext(
        group_key=f"test-{channel.name}",
        group_labels={"alertname": alert.name},
        external_url=config.external_url,
        receiver=channel.name,
        now=now,
        timeout=config.http_timeout_seconds,
    )

    with HttpSender(timeout=config.http_timeout_seconds, smtp=config.smtp) as sender:
        try:
            notifier = create_notifier(channel, sender, TemplateEngine(config.templates), config.build_version)
        except (ValueError, NotifierError) as e:
            print(f"✗ Channel '{channel.name}' ({channel.type}): {e}", file=sys.stderr)
            return 1

        # Send it
        print(f"Sending test notification via: {channel.name}")
        result = notifier.notify(ctx, alert)

    _print_result(channel.name, result)
    return 0 if result.ok else 1


def cmd_notify(args: argparse.Namespace) -> int:
    """Send an alert group to every configured channel."""
    config = _load(args)
    if config is None:
        return 1

    try:
        alerts = load_alerts(args.alerts)
    except (ValueError, FileNotFoundError, yaml.YAMLError) as e:
        print(f"Error loading alerts: {e}", file=sys.stderr)
        return 1

    # Group the alerts as a single notification
    group_labels = group_labels_for(alerts, args.group_by)
    ctx = NotificationContext(
        group_key=group_key_for(group_labels),
        group_labels=group_labels,
        external_url=config.external_url,
        receiver=args.receiver,
        timeout=config.http_timeout_seconds,
    )

    with HttpSender(timeout=config.http_timeout_seconds, smtp=config.smtp) as sender:
        try:
            receiver = build_receiver(
                args.receiver,
                config.channels,
                sender,
                TemplateEngine(config.templates),
                config.build_version
            )
        except (ValueError, NotifierError) as e:
            print(f"✗ {e}", file=sys.stderr)
            return 1

        print(f"Sending {len(alerts)} alert(s) to receiver '{args.receiver}'")
        results = receiver.notify(ctx, *alerts)

    # Report per-channel outcome
    for name, result in results.items():
        _print_result(name, result)

    sent_count = sum(1 for result in results.values() if result.ok)
    print(f"\nSent to {sent_count}/{len(results)} channel(s)")
    return 0 if sent_count == len(results) else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="beacon",
        description="Beacon - Alert notification dispatch"
    )
    parser.add_argument(
        "-c", "--config",
        default="beacon.yaml",
        help="Path to configuration file (default: beacon.yaml)"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: WARNING)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Config commands
    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_subparsers = config_parser.add_subparsers(dest="subcommand")
    config_subparsers.add_parser("validate", help="Validate configuration file")

    # Channel commands
    channels_parser = subparsers.add_parser("channels", help="Channel management")
    channels_subparsers = channels_parser.add_subparsers(dest="subcommand")
    channels_subparsers.add_parser("list", help="List all configured channels")
    test_parser = channels_subparsers.add_parser("test", help="Send a test notification")
    test_parser.add_argument("name", help="Name of channel to test")

    # Notify command
    notify_parser = subparsers.add_parser("notify", help="Send an alert group from a YAML file")
    notify_parser.add_argument("alerts", help="YAML file with a list of alerts")
    notify_parser.add_argument(
        "-r", "--receiver",
        default="beacon",
        help="Receiver name shown to templates (default: beacon)"
    )
    notify_parser.add_argument(
        "-g", "--group-by",
        nargs="+",
        default=["alertname"],
        help="Labels the group is keyed on (default: alertname)"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging before anything logs
    setup_logging(args.log_level)

    # Handle no command
    if not args.command:
        parser.print_help()
        return 0

    # Route to appropriate handler
    if args.command == "config":
        if args.subcommand == "validate":
            return cmd_config_validate(args)
        parser.print_help()
        return 0

    if args.command == "channels":
        if args.subcommand == "list":
            return cmd_channels_list(args)
        if args.subcommand == "test":
            return cmd_channels_test(args)
        parser.print_help()
        return 0

    if args.command == "notify":
        return cmd_notify(args)

    parser.print_help()
    return 0


if __name__ == '__main__':
    sys.exit(main())
