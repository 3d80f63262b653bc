"""
Link builders for notification templates.

Pure functions deriving the URLs shown next to an alert from its labels,
annotations and the external base URL.
"""

from collections.abc import Mapping
from urllib.parse import urlencode, urlsplit, urlunsplit

DASHBOARD_UID_ANNOTATION = "__dashboardUid__"
PANEL_ID_ANNOTATION = "__panelId__"

SILENCE_PATH = "/alerting/silence/new"
ALERT_LIST_PATH = "/alerting/list"
DASHBOARD_PATH = "/d/"
ALERTMANAGER_NAME = "grafana"


def join_url_path(base: str, relative: str) -> str:
    """
    Append a path to the path of a base URL, keeping its scheme, host and query.

    Args:
        base: Absolute base URL, with or without a trailing slash
        relative: Path to append

    Returns:
        Joined URL
    """
    parts = urlsplit(base)
    segments = [p.strip("/") for p in (parts.path, relative) if p.strip("/")]
    path = "/" + "/".join(segments)
    if relative.endswith("/") and not path.endswith("/"):
        path += "/"
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


def silence_url(labels: Mapping[str, str], external_url: str) -> str:
    """
    Link that opens the silence editor pre-filled with the alert's labels.

    One ``matcher=name=value`` parameter is emitted per label, in label name
    order, so the link does not depend on label iteration order.
    """
    query = [("alertmanager", ALERTMANAGER_NAME)]
    query.extend(("matcher", f"{name}={labels[name]}") for name in sorted(labels))
    return f"{join_url_path(external_url, SILENCE_PATH)}?{urlencode(query)}"


def dashboard_url(annotations: Mapping[str, str], external_url: str) -> str | None:
    """Link to the alert's dashboard, or None without a dashboard annotation."""
    uid = annotations.get(DASHBOARD_UID_ANNOTATION)
    if not uid:
        return None
    return join_url_path(external_url, DASHBOARD_PATH + uid)


def panel_url(annotations: Mapping[str, str], external_url: str) -> str | None:
    """Link to the alert's panel; needs both dashboard and panel annotations."""
    dashboard = dashboard_url(annotations, external_url)
    panel_id = annotations.get(PANEL_ID_ANNOTATION)
    if dashboard is None or not panel_id:
        return None
    return f"{dashboard}?{urlencode({'viewPanel': panel_id})}"


def alert_list_url(external_url: str) -> str:
    """Link to the alert rule list."""
    return join_url_path(external_url, ALERT_LIST_PATH)
