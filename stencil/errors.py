"""Error types for Stencil.

Every error raised while loading, resolving or rendering a template derives
from TemplateError and carries the template name and line number of the node
that triggered it, when known.

Classes:
    TemplateError: Base class.
    TemplateNotFound: Unknown template name.
    TemplateSyntaxError: Malformed template source.
    CyclicInheritanceError: A template's parent chain loops back on itself.
    UnresolvedBlockError: A block override or super() call with nothing to resolve.
    UndefinedVariableError: An unguarded lookup of a missing variable.
    FilterError: Bad filter, test or function arguments.
"""

from __future__ import annotations


class TemplateError(Exception):
    """Base error with optional template location.

    Attributes:
        message: Human-readable error message.
        name: Name of the template the error originates from.
        lineno: Line number within that template.
    """

    def __init__(
        self,
        message: str,
        name: str | None = None,
        lineno: int | None = None,
    ):
        self.message = message
        self.name = name
        self.lineno = lineno
        super().__init__(message)

    def locate(self, name: str | None, lineno: int | None) -> TemplateError:
        """Attach a location if the error does not carry one yet."""
        if self.name is None:
            self.name = name
            self.lineno = lineno
        elif self.lineno is None and self.name == name:
            self.lineno = lineno
        return self

    def __str__(self) -> str:
        if self.name is None:
            return self.message
        if self.lineno is None:
            return f"{self.name}: {self.message}"
        return f"{self.name}:{self.lineno}: {self.message}"


class TemplateNotFound(TemplateError):
    """Raised when a loader has no template with the requested name."""

    def __init__(self, template: str, name: str | None = None, lineno: int | None = None):
        self.template = template
        super().__init__(f"Template not found: {template}", name, lineno)


class TemplateSyntaxError(TemplateError):
    """Raised when template source cannot be parsed."""


class CyclicInheritanceError(TemplateError):
    """Raised when a parent chain revisits a template.

    Attributes:
        chain: Template names in the order they were visited, ending with the
            repeated name.
    """

    def __init__(self, chain: list[str]):
        self.chain = list(chain)
        super().__init__(
            "Cyclic template inheritance: " + " -> ".join(self.chain), chain[0]
        )


class UnresolvedBlockError(TemplateError):
    """Raised when a block cannot be resolved against the parent chain."""


class UndefinedVariableError(TemplateError):
    """Raised when a missing variable is used outside an existence check."""

    def __init__(self, path: str, name: str | None = None, lineno: int | None = None):
        self.path = path
        super().__init__(f"Variable `{path}` is not defined", name, lineno)


class FilterError(TemplateError):
    """Raised when a filter, test or function is unknown or misused."""
