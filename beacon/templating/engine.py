"""
Template engine used by notifiers.

The engine owns an immutable set of named templates (the defaults plus
any shared custom definitions) and renders ad hoc template text, such as
a channel's custom message, against one notification's data.
"""

from collections import ChainMap
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any

from beacon.errors import RenderError
from beacon.logging_config import get_logger
from beacon.templating.defaults import DEFAULT_TEMPLATES
from beacon.templating.executor import TemplateExecError, execute
from beacon.templating.functions import DEFAULT_FUNCS
from beacon.templating.lexer import TemplateSyntaxError
from beacon.templating.parser import Tree, parse

logger = get_logger(__name__)

DEFAULTS_NAME = "__default__"


def _compile(name: str, text: str, funcs: Mapping[str, Callable[..., Any]]) -> dict[str, Tree]:
    try:
        return parse(name, text, funcs)
    except TemplateSyntaxError as e:
        raise RenderError(f"template: {name}:{e.line}: {e.message}") from e
    except RecursionError as e:
        # nested if, range and with blocks recurse in the parser
        raise RenderError(f"template: {name}: nesting too deep") from e


_DEFAULT_TREES: Mapping[str, Tree] = MappingProxyType(
    _compile(DEFAULTS_NAME, DEFAULT_TEMPLATES, DEFAULT_FUNCS)
)


class TemplateEngine:
    """
    Renders template text against notification data.

    Args:
        templates: Extra template texts whose ``define`` blocks become
            available to every render; later definitions override earlier
            ones, including the defaults
        funcs: Extra functions exposed to templates

    Raises:
        RenderError: If one of the extra templates does not parse
    """

    def __init__(
        self,
        templates: Iterable[str] = (),
        funcs: Mapping[str, Callable[..., Any]] | None = None
    ):
        self._funcs: Mapping[str, Callable[..., Any]] = MappingProxyType({**DEFAULT_FUNCS, **(funcs or {})})

        trees = dict(_DEFAULT_TREES)
        if funcs:
            trees = _compile(DEFAULTS_NAME, DEFAULT_TEMPLATES, self._funcs)
        for index, text in enumerate(templates):
            defined = _compile(f"custom_{index}", text, self._funcs)
            defined.pop(f"custom_{index}", None)
            trees.update(defined)
        self._trees: Mapping[str, Tree] = MappingProxyType(trees)
        logger.debug("Template engine ready with %d named template(s)", len(self._trees))

    @property
    def names(self) -> list[str]:
        """Names of the templates every render can call."""
        return sorted(n for n in self._trees if n != DEFAULTS_NAME)

    def render(self, text: str, data: Any, name: str = "") -> str:
        """
        Parse and execute template text.

        Definitions made by ``text`` are visible only to this call.

        Args:
            text: Template text
            data: Value the template executes against
            name: Name used for the text in error messages

        Returns:
            Rendered output

        Raises:
            RenderError: On syntax errors, undefined templates or functions,
                and invalid data access
        """
        local = _compile(name, text, self._funcs)
        return self._execute(ChainMap(local, self._trees), name, data)

    def execute(self, name: str, data: Any) -> str:
        """
        Execute one of the engine's named templates.

        Raises:
            RenderError: If the template is not defined or fails
        """
        if name not in self._trees:
            raise RenderError(f'template: no template "{name}" associated with template set')
        return self._execute(self._trees, name, data)

    def _execute(self, trees: Mapping[str, Tree], name: str, data: Any) -> str:
        try:
            return execute(trees, self._funcs, name, data)
        except TemplateExecError as e:
            raise RenderError(str(e)) from e
        except RecursionError as e:
            raise RenderError(f"template: {name}: nesting too deep") from e

    def renderer(self, data: Any) -> "Renderer":
        """Bind the engine to one notification's data."""
        return Renderer(self, data)


class Renderer:
    """Callable that renders template text against fixed data."""

    def __init__(self, engine: TemplateEngine, data: Any):
        self.engine = engine
        self.data = data

    def __call__(self, text: str) -> str:
        return self.engine.render(text, self.data)
