"""
Template data model.

Turns an alert group plus its notification context into the structure
templates execute against. Names visible to templates are CamelCase and
listed per type in ``template_fields``; the template executor resolves
nothing else, so templates cannot reach arbitrary Python attributes.
"""

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, ClassVar

from beacon import links
from beacon.logging_config import get_logger

if TYPE_CHECKING:
    from beacon.core import Alert, NotificationContext

logger = get_logger(__name__)

STATUS_FIRING = "firing"
STATUS_RESOLVED = "resolved"

ALERT_NAME_LABEL = "alertname"
VALUES_ANNOTATION = "__values__"
VALUE_STRING_ANNOTATION = "__value_string__"

_ZERO_TIME = "0001-01-01T00:00:00Z"


def is_reserved_annotation(name: str) -> bool:
    """Reserved annotations carry metadata for link building and are never shown."""
    return len(name) > 4 and name.startswith("__") and name.endswith("__")


def partition(alerts: Iterable["Alert"], now: datetime) -> tuple[list["Alert"], list["Alert"]]:
    """
    Split alerts into firing and resolved, preserving order.

    Every alert lands in exactly one of the two lists.
    """
    firing: list["Alert"] = []
    resolved: list["Alert"] = []
    for alert in alerts:
        (resolved if alert.resolved_at(now) else firing).append(alert)
    return firing, resolved


@dataclass(frozen=True)
class Pair:
    name: str
    value: str

    template_fields: ClassVar[dict[str, str]] = {"Name": "name", "Value": "value"}


class Pairs(list[Pair]):
    template_fields: ClassVar[dict[str, str]] = {"Names": "names", "Values": "values"}

    def names(self) -> list[str]:
        return [p.name for p in self]

    def values(self) -> list[str]:
        return [p.value for p in self]


class KV(dict[str, str]):
    """
    A label or annotation set.

    Missing keys read as the empty string from templates.
    """

    template_fields: ClassVar[dict[str, str]] = {
        "SortedPairs": "sorted_pairs",
        "Names": "names",
        "Values": "sorted_values",
        "Remove": "remove",
    }

    def sorted_pairs(self) -> Pairs:
        """Pairs sorted by name, with alertname always first."""
        keys = sorted(k for k in self if k != ALERT_NAME_LABEL)
        if ALERT_NAME_LABEL in self:
            keys.insert(0, ALERT_NAME_LABEL)
        return Pairs(Pair(k, self[k]) for k in keys)

    def names(self) -> list[str]:
        return self.sorted_pairs().names()

    def sorted_values(self) -> list[str]:
        return self.sorted_pairs().values()

    def remove(self, keys: Iterable[str]) -> "KV":
        """Copy without the given keys."""
        dropped = set(keys)
        return KV({k: v for k, v in self.items() if k not in dropped})


class Alerts(list["ExtendedAlert"]):
    template_fields: ClassVar[dict[str, str]] = {"Firing": "firing", "Resolved": "resolved"}

    def firing(self) -> "Alerts":
        return Alerts(a for a in self if a.status == STATUS_FIRING)

    def resolved(self) -> "Alerts":
        return Alerts(a for a in self if a.status == STATUS_RESOLVED)


@dataclass(frozen=True)
class ExtendedAlert:
    """One alert as templates see it, with derived links."""
    status: str
    labels: KV
    annotations: KV
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    generator_url: str = ""
    fingerprint: str = ""
    silence_url: str = ""
    dashboard_url: str = ""
    panel_url: str = ""
    value_string: str = ""
    values: dict[str, Any] = field(default_factory=dict)

    template_fields: ClassVar[dict[str, str]] = {
        "Status": "status",
        "Labels": "labels",
        "Annotations": "annotations",
        "StartsAt": "starts_at",
        "EndsAt": "ends_at",
        "GeneratorURL": "generator_url",
        "Fingerprint": "fingerprint",
        "SilenceURL": "silence_url",
        "DashboardURL": "dashboard_url",
        "PanelURL": "panel_url",
        "ValueString": "value_string",
        "Values": "values",
    }

    def to_dict(self) -> dict[str, Any]:
        """JSON form used by the webhook integration."""
        return {
            "status": self.status,
            "labels": dict(self.labels),
            "annotations": dict(self.annotations),
            "startsAt": _format_time(self.starts_at),
            "endsAt": _format_time(self.ends_at),
            "generatorURL": self.generator_url,
            "fingerprint": self.fingerprint,
            "silenceURL": self.silence_url,
            "dashboardURL": self.dashboard_url,
            "panelURL": self.panel_url,
            "valueString": self.value_string,
        }


@dataclass(frozen=True)
class ExtendedData:
    """Root of the template data model for one notification."""
    receiver: str
    status: str
    alerts: Alerts
    group_labels: KV
    common_labels: KV
    common_annotations: KV
    external_url: str

    template_fields: ClassVar[dict[str, str]] = {
        "Receiver": "receiver",
        "Status": "status",
        "Alerts": "alerts",
        "GroupLabels": "group_labels",
        "CommonLabels": "common_labels",
        "CommonAnnotations": "common_annotations",
        "ExternalURL": "external_url",
    }

    def to_dict(self) -> dict[str, Any]:
        return {
            "receiver": self.receiver,
            "status": self.status,
            "alerts": [a.to_dict() for a in self.alerts],
            "groupLabels": dict(self.group_labels),
            "commonLabels": dict(self.common_labels),
            "commonAnnotations": dict(self.common_annotations),
            "externalURL": self.external_url,
        }


def _format_time(value: datetime | None) -> str:
    if value is None:
        return _ZERO_TIME
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_values(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.debug("Ignoring malformed %s annotation", VALUES_ANNOTATION)
        return {}
    if not isinstance(parsed, dict):
        return {}
    return {str(k): v for k, v in parsed.items() if isinstance(v, (int, float))}


def extend_alert(alert: "Alert", status: str, external_url: str) -> ExtendedAlert:
    """Derive the template view of one alert."""
    annotations = alert.annotations
    return ExtendedAlert(
        status=status,
        labels=KV(alert.labels),
        annotations=KV({k: v for k, v in annotations.items() if not is_reserved_annotation(k)}),
        starts_at=alert.starts_at,
        ends_at=alert.ends_at,
        generator_url=alert.generator_url,
        fingerprint=alert.fingerprint(),
        silence_url=links.silence_url(alert.labels, external_url),
        dashboard_url=links.dashboard_url(annotations, external_url) or "",
        panel_url=links.panel_url(annotations, external_url) or "",
        value_string=annotations.get(VALUE_STRING_ANNOTATION, ""),
        values=_parse_values(annotations.get(VALUES_ANNOTATION)),
    )


def _common(sets: list[Mapping[str, str]]) -> KV:
    if not sets:
        return KV()
    common = dict(sets[0])
    for other in sets[1:]:
        common = {k: v for k, v in common.items() if other.get(k) == v}
    return KV(common)


def build_extended_data(ctx: "NotificationContext", alerts: Iterable["Alert"]) -> ExtendedData:
    """
    Build the template data for an alert group.

    A pure function of the context and the alerts.
    """
    extended = Alerts(
        extend_alert(
            alert,
            STATUS_RESOLVED if alert.resolved_at(ctx.now) else STATUS_FIRING,
            ctx.external_url
        )
        for alert in alerts
    )

    return ExtendedData(
        receiver=ctx.receiver,
        status=STATUS_FIRING if extended.firing() else STATUS_RESOLVED,
        alerts=extended,
        group_labels=KV(ctx.group_labels),
        common_labels=_common([a.labels for a in extended]),
        common_annotations=_common([a.annotations for a in extended]),
        external_url=ctx.external_url,
    )


COLOR_FIRING = "#D63232"
COLOR_RESOLVED = "#36a64f"


def status_color(status: str) -> str:
    """Hex color integrations use for a group status."""
    return COLOR_FIRING if status == STATUS_FIRING else COLOR_RESOLVED
