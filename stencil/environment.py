"""Template environment for Stencil.

The Environment ties the pieces together: it loads source through a
TemplateLoader, parses it, resolves inheritance, and renders with the
registered filters, tests and globals.

Parsed templates and resolved trees are cached, failures included, so a
broken template fails every page that uses it in the same way. Call
clear_cache() at the start of a batch to pick up changed sources; for the
rest of the batch every render sees the same template set. The caches are
guarded by a lock so pages can be rendered from several threads.

Key class:
- Environment: Loading, caching and rendering entry point.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any

from .errors import TemplateError, TemplateNotFound
from .filters import DEFAULT_FILTERS, DEFAULT_GLOBALS, DEFAULT_TESTS
from .inheritance import resolve_template
from .nodes import ResolvedTemplate, Template
from .parser import parse
from .protocols import TemplateLoader
from .renderer import Renderer

__all__ = ["Environment", "select_autoescape"]


def select_autoescape(
    extensions: Iterable[str] = ("html", "htm", "xml"),
) -> Callable[[str], bool]:
    """Return a predicate enabling autoescape for the given file extensions."""
    suffixes = tuple(f".{ext.lstrip('.').lower()}" for ext in extensions)

    def autoescape(name: str) -> bool:
        return name.lower().endswith(suffixes)

    return autoescape


class Environment:
    """Shared configuration and template cache.

    Attributes:
        loader: Source of raw templates.
        strict_blocks: Whether child blocks unknown to every ancestor are errors.
        filters: Filter name to callable.
        tests: Test name to callable.
        globals: Global functions and values visible to every template.
        undefined_filters: Filters that receive Undefined values instead of
            raising on them.
    """

    def __init__(
        self,
        loader: TemplateLoader,
        autoescape: bool | Callable[[str], bool] | None = None,
        strict_blocks: bool = True,
    ):
        self.loader = loader
        self.autoescape = select_autoescape() if autoescape is None else autoescape
        self.strict_blocks = strict_blocks
        self.filters: dict[str, Callable[..., Any]] = dict(DEFAULT_FILTERS)
        self.tests: dict[str, Callable[..., Any]] = dict(DEFAULT_TESTS)
        self.globals: dict[str, Any] = dict(DEFAULT_GLOBALS)
        self.undefined_filters: set[str] = {"default"}
        self._lock = threading.RLock()
        self._templates: dict[str, Template | TemplateError] = {}
        self._resolved: dict[str, ResolvedTemplate | TemplateError] = {}

    def should_autoescape(self, name: str) -> bool:
        if callable(self.autoescape):
            return bool(self.autoescape(name))
        return bool(self.autoescape)

    def clear_cache(self) -> None:
        """Forget every parsed and resolved template, failures included."""
        with self._lock:
            self._templates.clear()
            self._resolved.clear()

    def get_template(self, name: str) -> Template:
        """Load and parse a template, once per cache lifetime.

        Raises:
            TemplateNotFound: If the loader has no such template.
            TemplateSyntaxError: If the source cannot be parsed.
        """
        with self._lock:
            cached = self._templates.get(name)
            if cached is None:
                try:
                    cached = parse(self.loader.get_source(name), name)
                except TemplateError as exc:
                    cached = exc
                self._templates[name] = cached
        if isinstance(cached, TemplateError):
            raise _fresh(cached)
        return cached

    def resolve(self, name: str) -> ResolvedTemplate:
        """Return the template with its inheritance chain applied.

        Raises:
            TemplateNotFound: If a template in the chain is missing.
            TemplateSyntaxError: If a template in the chain cannot be parsed.
            CyclicInheritanceError: If the parent chain loops.
            UnresolvedBlockError: If a block override has nothing to override.
        """
        with self._lock:
            cached = self._resolved.get(name)
            if cached is None:
                try:
                    cached = resolve_template(name, self.get_template, self.strict_blocks)
                except TemplateError as exc:
                    cached = exc
                self._resolved[name] = cached
        if isinstance(cached, TemplateError):
            raise _fresh(cached)
        return cached

    def render(self, name: str, context: Mapping[str, Any] | None = None) -> str:
        """Render a template by name.

        Args:
            name: Template identifier.
            context: Variables for the render. Never modified.

        Returns:
            The rendered document.
        """
        return Renderer(self, self.resolve(name), _freeze(context)).render()

    def render_string(
        self,
        source: str,
        context: Mapping[str, Any] | None = None,
        name: str = "<string>.html",
    ) -> str:
        """Parse and render template source that is not served by the loader.

        The source may extend, include and import loader templates. It is
        not cached.
        """
        template = parse(source, name)

        def get_template(lookup: str) -> Template:
            return template if lookup == name else self.get_template(lookup)

        resolved = resolve_template(name, get_template, self.strict_blocks)
        return Renderer(self, resolved, _freeze(context)).render()

    def list_templates(self) -> list[str]:
        return self.loader.list_templates()

    def has_template(self, name: str) -> bool:
        try:
            self.get_template(name)
        except TemplateNotFound as exc:
            if exc.template == name:
                return False
            raise
        except TemplateError:
            # present but broken; rendering it reports the error
            return True
        return True


def _fresh(error: TemplateError) -> TemplateError:
    """Copy a cached failure so each raise gets its own traceback and location."""
    return copy.copy(error).with_traceback(None)


def _freeze(context: Mapping[str, Any] | None) -> Mapping[str, Any]:
    if context is None:
        return MappingProxyType({})
    if isinstance(context, MappingProxyType):
        return context
    return MappingProxyType(dict(context))
