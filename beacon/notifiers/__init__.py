"""
Beacon Notifiers Submodule.

Discovers every integration module in this package, imports it so its
``@register_notifier`` decorator runs, and re-exports the Notifier
subclasses it lists in ``__all__``.
"""

import importlib
import inspect
import pkgutil

from beacon.core import Notifier as BaseNotifier
from beacon.logging_config import get_logger

logger = get_logger(__name__)

__all__ = []
_seen_names = set()

# Automatically import all notifier modules and collect their exports
for module_info in pkgutil.iter_modules(__path__):
    # Import the module to run its registration
    module = importlib.import_module(f"{__name__}.{module_info.name}")

    # Validate and add all exported names
    for name in getattr(module, "__all__", ()):
        # Check for name conflicts
        if name in _seen_names:
            logger.warning(
                "Duplicate notifier name '%s' in module '%s' - skipping",
                name,
                module_info.name
            )
            continue

        cls = getattr(module, name)

        # Modules also export their settings models; only notifiers are collected here
        if not inspect.isclass(cls) or not issubclass(cls, BaseNotifier):
            continue

        # Validation passed - add to namespace
        globals()[name] = cls
        __all__.append(name)
        _seen_names.add(name)
