"""Rendering of resolved templates.

The renderer walks a ResolvedTemplate in document order and appends text
to a buffer that is joined only once the whole document has rendered. If
any node fails, the error propagates with the template name and line of
that node and no output is returned.

Values marked safe (markupsafe.Markup) are emitted verbatim. Other values
are HTML-escaped when the template is autoescaped.
"""

from __future__ import annotations

from collections import ChainMap
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from markupsafe import Markup, escape

from .errors import (
    TemplateError,
    TemplateNotFound,
    UndefinedVariableError,
    UnresolvedBlockError,
)
from .evaluator import Evaluator, Frame, Undefined, stringify
from .nodes import (
    Block,
    For,
    If,
    Include,
    Node,
    Output,
    ResolvedTemplate,
    Set,
    Super,
    Text,
)

if TYPE_CHECKING:
    from .environment import Environment

# includes plus macro calls that may be open at once
MAX_NESTING = 40


@dataclass
class _Scope:
    """Per-template render state: escaping, own macros and import aliases."""

    template: ResolvedTemplate
    autoescape: bool
    namespaces: dict[str, ResolvedTemplate] = field(default_factory=dict)


class Renderer:
    """Renders one ResolvedTemplate against a context.

    A Renderer is created per render call and never shared between threads.

    Attributes:
        env: Environment used for includes, imports, filters and escaping.
        template: The resolved template to render.
        context: Read-only page context.
    """

    def __init__(self, env: Environment, template: ResolvedTemplate, context: Mapping[str, Any]):
        self.env = env
        self.template = template
        self.context = context
        self.evaluator = Evaluator(env, self._call_macro)
        self._scopes: list[_Scope] = []

    def render(self) -> str:
        """Render the template and return the output."""
        out: list[str] = []
        frame: Frame = ChainMap({}, self.context)
        try:
            self._render_template(self.template, frame, out)
        except RecursionError:
            raise TemplateError(
                "Maximum recursion depth exceeded while rendering", self.template.name
            ) from None
        return "".join(out)

    # --- scopes ---

    def _render_template(self, template: ResolvedTemplate, frame: Frame, out: list[str]) -> None:
        scope = self._make_scope(template)
        self._scopes.append(scope)
        try:
            self._render_nodes(template.nodes, frame, out, template.name)
        finally:
            self._scopes.pop()

    def _make_scope(self, template: ResolvedTemplate) -> _Scope:
        scope = _Scope(template, self.env.should_autoescape(template.name))
        for declaration in template.imports:
            try:
                scope.namespaces[declaration.alias] = self.env.resolve(declaration.template)
            except TemplateNotFound as exc:
                if exc.template != declaration.template:
                    raise
                raise TemplateNotFound(
                    declaration.template, template.name, declaration.lineno
                ) from exc
        return scope

    @property
    def _scope(self) -> _Scope:
        return self._scopes[-1]

    # --- nodes ---

    def _render_nodes(
        self, nodes: tuple[Node, ...], frame: Frame, out: list[str], origin: str
    ) -> None:
        for node in nodes:
            try:
                self._render_node(node, frame, out, origin)
            except TemplateError as exc:
                raise exc.locate(origin, getattr(node, "lineno", None))

    def _render_node(self, node: Node, frame: Frame, out: list[str], origin: str) -> None:
        if isinstance(node, Text):
            out.append(node.text)
        elif isinstance(node, Output):
            value = self.evaluator.evaluate(node.expr, frame)
            if isinstance(value, Undefined):
                raise UndefinedVariableError(value.path)
            out.append(self.finalize(value))
        elif isinstance(node, Block):
            self._render_nodes(node.body, frame, out, node.origin or origin)
        elif isinstance(node, If):
            self._render_if(node, frame, out, origin)
        elif isinstance(node, For):
            self._render_for(node, frame, out, origin)
        elif isinstance(node, Set):
            frame.maps[0][node.name] = self.evaluator.require(node.expr, frame)
        elif isinstance(node, Include):
            self._render_include(node, frame, out, origin)
        elif isinstance(node, Super):
            raise UnresolvedBlockError("super() was not resolved")
        else:
            raise TemplateError(f"Cannot render {type(node).__name__}")

    def finalize(self, value: Any) -> str:
        """Convert an output value to text, escaping it unless it is safe."""
        if isinstance(value, Markup):
            return str(value)
        text = value if isinstance(value, str) else stringify(value)
        if self._scope.autoescape:
            return str(escape(text))
        return text

    def _render_if(self, node: If, frame: Frame, out: list[str], origin: str) -> None:
        for test, body in node.branches:
            if self.evaluator.truthy(test, frame):
                self._render_nodes(body, frame, out, origin)
                return
        self._render_nodes(node.else_body, frame, out, origin)

    def _render_for(self, node: For, frame: Frame, out: list[str], origin: str) -> None:
        iterable = self.evaluator.require(node.iter, frame)
        if isinstance(iterable, Mapping):
            items: list[Any] = list(iterable.items())
        else:
            try:
                items = list(iterable)
            except TypeError:
                kind = type(iterable).__name__
                raise TemplateError(f"Value of type {kind} is not iterable") from None

        if not items:
            self._render_nodes(node.else_body, frame, out, origin)
            return

        length = len(items)
        for index, item in enumerate(items):
            if len(node.targets) == 2:
                try:
                    first, second = item
                except (TypeError, ValueError):
                    raise TemplateError(
                        f"Cannot unpack loop item into {', '.join(node.targets)}"
                    ) from None
                bindings = {node.targets[0]: first, node.targets[1]: second}
            else:
                bindings = {node.targets[0]: item}
            bindings["loop"] = {
                "index": index + 1,
                "index0": index,
                "first": index == 0,
                "last": index == length - 1,
                "length": length,
            }
            self._render_nodes(node.body, frame.new_child(bindings), out, origin)

    def _render_include(self, node: Include, frame: Frame, out: list[str], origin: str) -> None:
        name = self.evaluator.require(node.template, frame)
        if not isinstance(name, str):
            raise TemplateError(f"Include expects a template name, got {type(name).__name__}")
        try:
            included = self.env.resolve(name)
        except TemplateNotFound as exc:
            if exc.template != name:
                raise
            if node.ignore_missing:
                return
            raise TemplateNotFound(name, origin, node.lineno) from exc
        self._check_nesting(f"include of '{name}'")
        self._render_template(included, frame.new_child(), out)

    def _check_nesting(self, what: str) -> None:
        if len(self._scopes) >= MAX_NESTING:
            raise TemplateError(
                f"Too deeply nested {what}: more than {MAX_NESTING} levels, check for recursion"
            )

    # --- macros ---

    def _call_macro(
        self, namespace: str, name: str, args: list[Any], kwargs: dict[str, Any]
    ) -> Markup:
        self._check_nesting(f"macro '{name}'")
        if namespace == "self":
            source = self._scope.template
        else:
            source = self._scope.namespaces.get(namespace)
            if source is None:
                raise TemplateError(f"Unknown macro namespace '{namespace}'")
        macro = source.macros.get(name)
        if macro is None:
            raise TemplateError(f"Macro '{name}' is not defined in '{source.name}'")

        params = [param for param, _ in macro.params]
        if len(args) > len(params):
            raise TemplateError(
                f"Macro '{name}' takes {len(params)} argument(s), {len(args)} given"
            )
        unknown = set(kwargs) - set(params)
        if unknown:
            raise TemplateError(
                f"Macro '{name}' got unexpected argument(s): {', '.join(sorted(unknown))}"
            )
        bound: dict[str, Any] = dict(zip(params, args))
        for key, value in kwargs.items():
            if key in bound:
                raise TemplateError(f"Macro '{name}' got multiple values for '{key}'")
            bound[key] = value

        frame: Frame = ChainMap(bound, self.context)
        for param, default in macro.params:
            if param in bound:
                continue
            if default is None:
                raise TemplateError(f"Macro '{name}' is missing argument '{param}'")
            bound[param] = self.evaluator.require(default, frame)

        out: list[str] = []
        scope = self._make_scope(source) if source is not self._scope.template else self._scope
        self._scopes.append(scope)
        try:
            self._render_nodes(macro.body, frame, out, macro.origin or source.name)
        finally:
            self._scopes.pop()
        return Markup("".join(out))
