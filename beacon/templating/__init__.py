"""
Beacon templating.

A text template language with ``{{ }}`` actions, pipelines, ``define`` /
``template`` and a small library of alerting helpers, used to render
notification titles and messages.
"""

from beacon.templating.defaults import DEFAULT_MESSAGE_EMBED, DEFAULT_MESSAGE_TITLE_EMBED
from beacon.templating.engine import Renderer, TemplateEngine

__all__ = [
    "DEFAULT_MESSAGE_EMBED",
    "DEFAULT_MESSAGE_TITLE_EMBED",
    "Renderer",
    "TemplateEngine",
]
