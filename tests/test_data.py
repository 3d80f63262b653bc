"""
Tests for the template data model.
"""

from datetime import timedelta

from beacon.core import Alert, NotificationContext
from beacon.data import (
    COLOR_FIRING,
    COLOR_RESOLVED,
    KV,
    STATUS_FIRING,
    STATUS_RESOLVED,
    build_extended_data,
    extend_alert,
    is_reserved_annotation,
    partition,
    status_color,
)


class TestPartition:
    """Tests for splitting alerts into firing and resolved."""

    def test_every_alert_lands_once(self, now) -> None:
        open_ended = Alert(labels={"alertname": "a"})
        future_end = Alert(labels={"alertname": "b"}, ends_at=now + timedelta(minutes=5))
        ended = Alert(labels={"alertname": "c"}, ends_at=now - timedelta(minutes=5))
        ends_now = Alert(labels={"alertname": "d"}, ends_at=now)

        firing, resolved = partition([open_ended, future_end, ended, ends_now], now)

        assert firing == [open_ended, future_end]
        assert resolved == [ended, ends_now]

    def test_empty(self, now) -> None:
        assert partition([], now) == ([], [])


class TestKV:
    """Tests for label and annotation sets."""

    def test_sorted_pairs_puts_alertname_first(self) -> None:
        kv = KV({"zone": "z", "alertname": "x", "a": "1"})

        assert kv.sorted_pairs().names() == ["alertname", "a", "zone"]
        assert kv.sorted_values() == ["x", "1", "z"]

    def test_remove_returns_copy(self) -> None:
        kv = KV({"alertname": "x", "a": "1", "b": "2"})

        trimmed = kv.remove(["alertname", "b"])

        assert trimmed == {"a": "1"}
        assert isinstance(trimmed, KV)
        assert len(kv) == 3


class TestReservedAnnotations:
    """Tests for reserved annotation detection."""

    def test_reserved(self) -> None:
        assert is_reserved_annotation("__dashboardUid__")
        assert is_reserved_annotation("__values__")

    def test_not_reserved(self) -> None:
        assert not is_reserved_annotation("summary")
        assert not is_reserved_annotation("____")
        assert not is_reserved_annotation("__prefix")


class TestExtendAlert:
    """Tests for the per-alert template view."""

    def test_links_and_hidden_annotations(self, firing_alert: Alert) -> None:
        extended = extend_alert(firing_alert, STATUS_FIRING, "http://localhost")

        assert extended.annotations == {"ann1": "annv1"}
        assert extended.dashboard_url == "http://localhost/d/abcd"
        assert extended.panel_url == "http://localhost/d/abcd?viewPanel=efgh"
        assert extended.silence_url == (
            "http://localhost/alerting/silence/new?alertmanager=grafana"
            "&matcher=alertname%3Dalert1&matcher=lbl1%3Dval1"
        )
        assert extended.fingerprint == firing_alert.fingerprint()

    def test_values_annotation(self) -> None:
        alert = Alert(
            labels={"alertname": "a"},
            annotations={"__values__": '{"B": 2.5, "A": 1, "C": "skip"}', "__value_string__": "[ var='A' ]"},
        )

        extended = extend_alert(alert, STATUS_FIRING, "http://localhost")

        assert extended.values == {"B": 2.5, "A": 1}
        assert extended.value_string == "[ var='A' ]"
        assert extended.annotations == {}

    def test_malformed_values_annotation(self) -> None:
        alert = Alert(labels={"alertname": "a"}, annotations={"__values__": "not json"})

        assert extend_alert(alert, STATUS_FIRING, "http://localhost").values == {}

    def test_to_dict_uses_zero_time(self, firing_alert: Alert) -> None:
        data = extend_alert(firing_alert, STATUS_FIRING, "http://localhost").to_dict()

        assert data["startsAt"] == "0001-01-01T00:00:00Z"
        assert data["endsAt"] == "0001-01-01T00:00:00Z"
        assert data["status"] == "firing"


class TestBuildExtendedData:
    """Tests for build_extended_data."""

    def test_common_labels_and_annotations(self, ctx: NotificationContext) -> None:
        alerts = [
            Alert(labels={"alertname": "a", "team": "t", "x": "1"}, annotations={"summary": "s", "n": "1"}),
            Alert(labels={"alertname": "a", "team": "t", "x": "2"}, annotations={"summary": "s", "n": "2"}),
        ]

        data = build_extended_data(ctx, alerts)

        assert data.common_labels == {"alertname": "a", "team": "t"}
        assert data.common_annotations == {"summary": "s"}
        assert data.group_labels == {"alertname": ""}
        assert data.receiver == "test_receiver"
        assert data.external_url == "http://localhost"

    def test_status_is_firing_while_any_alert_fires(self, ctx: NotificationContext) -> None:
        alerts = [
            Alert(labels={"alertname": "a"}, ends_at=ctx.now - timedelta(seconds=1)),
            Alert(labels={"alertname": "b"}),
        ]

        data = build_extended_data(ctx, alerts)

        assert data.status == STATUS_FIRING
        assert [a.status for a in data.alerts] == [STATUS_RESOLVED, STATUS_FIRING]
        assert len(data.alerts.firing()) == 1
        assert len(data.alerts.resolved()) == 1

    def test_status_resolved_when_all_resolved(self, ctx: NotificationContext) -> None:
        alert = Alert(labels={"alertname": "a"}, ends_at=ctx.now)

        assert build_extended_data(ctx, [alert]).status == STATUS_RESOLVED

    def test_is_deterministic(self, ctx: NotificationContext, firing_alert: Alert) -> None:
        first = build_extended_data(ctx, [firing_alert])
        second = build_extended_data(ctx, [firing_alert])

        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_to_dict_shape(self, ctx: NotificationContext, firing_alert: Alert) -> None:
        data = build_extended_data(ctx, [firing_alert]).to_dict()

        assert sorted(data) == [
            "alerts", "commonAnnotations", "commonLabels", "externalURL", "groupLabels", "receiver", "status"
        ]
        assert data["alerts"][0]["labels"] == {"alertname": "alert1", "lbl1": "val1"}


class TestStatusColor:
    """Tests for status colors."""

    def test_colors(self) -> None:
        assert status_color(STATUS_FIRING) == COLOR_FIRING == "#D63232"
        assert status_color(STATUS_RESOLVED) == COLOR_RESOLVED == "#36a64f"
