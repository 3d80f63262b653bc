"""
Plugin initialization for Beacon.

Importing this module registers every built-in notifier with the registry.
"""

# Import the notifier package to trigger registration decorators
# pylint: disable=unused-import
# ruff: noqa: F401
from beacon import notifiers

# Re-export registry functions for convenience
from beacon.registry import create_notifier, get_registry

__all__ = [
    "create_notifier",
    "get_registry",
]
