"""
Beacon - Alert notification dispatch for Grafana-style alert groups.

This package renders groups of firing and resolved alerts through
user-authored templates and delivers them to chat, paging, webhook
and email integrations behind a single notifier contract.
"""

__version__ = "0.1.0"
