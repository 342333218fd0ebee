"""Node types for parsed templates.

Templates parse into a tree of frozen dataclasses. Template nodes (Text,
Output, Block, If, For, ...) make up a template body; expression nodes
(Const, Name, Getattr, Filter, ...) appear inside them. Nothing here is
mutated after parsing. Block resolution builds new trees with
dataclasses.replace.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class Node:
    """Marker base class for template nodes."""


class Expr:
    """Marker base class for expression nodes."""


# --- Expressions ---


@dataclass(frozen=True)
class Const(Expr):
    value: Any


@dataclass(frozen=True)
class ListExpr(Expr):
    items: tuple[Expr, ...]


@dataclass(frozen=True)
class Name(Expr):
    name: str


@dataclass(frozen=True)
class Getattr(Expr):
    """``obj.attr``"""

    obj: Expr
    attr: str


@dataclass(frozen=True)
class Getitem(Expr):
    """``obj[key]``"""

    obj: Expr
    key: Expr


@dataclass(frozen=True)
class Unary(Expr):
    op: str  # "not" | "-"
    operand: Expr


@dataclass(frozen=True)
class BinOp(Expr):
    """Binary operation: logic, comparison, membership, concat or arithmetic."""

    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Filter(Expr):
    expr: Expr
    name: str
    args: tuple[Expr, ...] = ()
    kwargs: tuple[tuple[str, Expr], ...] = ()


@dataclass(frozen=True)
class Test(Expr):
    """``expr is [not] name(args)``"""

    expr: Expr
    name: str
    args: tuple[Expr, ...] = ()
    negated: bool = False


@dataclass(frozen=True)
class Call(Expr):
    """Global function or macro call.

    ``namespace`` is None for globals, "self" for macros of the calling
    template, or an import alias.
    """

    name: str
    namespace: str | None = None
    args: tuple[Expr, ...] = ()
    kwargs: tuple[tuple[str, Expr], ...] = ()


# --- Template nodes ---


@dataclass(frozen=True)
class Text(Node):
    text: str
    lineno: int = 0


@dataclass(frozen=True)
class Output(Node):
    expr: Expr
    lineno: int = 0


@dataclass(frozen=True)
class Super(Node):
    """Placeholder for the parent declaration of the enclosing block."""

    lineno: int = 0


@dataclass(frozen=True)
class Block(Node):
    """A named, overridable region.

    ``origin`` is the template whose declaration supplied ``body``.
    """

    name: str
    body: tuple[Node, ...]
    origin: str | None = None
    lineno: int = 0


@dataclass(frozen=True)
class If(Node):
    branches: tuple[tuple[Expr, tuple[Node, ...]], ...]
    else_body: tuple[Node, ...] = ()
    lineno: int = 0


@dataclass(frozen=True)
class For(Node):
    targets: tuple[str, ...]
    iter: Expr
    body: tuple[Node, ...]
    else_body: tuple[Node, ...] = ()
    lineno: int = 0


@dataclass(frozen=True)
class Set(Node):
    name: str
    expr: Expr
    lineno: int = 0


@dataclass(frozen=True)
class Include(Node):
    template: Expr
    ignore_missing: bool = False
    lineno: int = 0


@dataclass(frozen=True)
class Import(Node):
    template: str
    alias: str
    lineno: int = 0


@dataclass(frozen=True)
class Macro(Node):
    name: str
    params: tuple[tuple[str, Expr | None], ...]
    body: tuple[Node, ...]
    origin: str | None = None
    lineno: int = 0


@dataclass(frozen=True)
class Template:
    """A parsed template.

    Attributes:
        name: Template identifier.
        nodes: Top-level nodes in document order.
        parent: Name of the template this one extends, if any.
        blocks: Every block declared in this template, nested ones included.
        top_blocks: Names of blocks not nested inside another block.
        macros: Macros declared in this template.
        imports: Import declarations, in order.
    """

    name: str
    nodes: tuple[Node, ...]
    parent: str | None = None
    blocks: dict[str, Block] = field(default_factory=dict)
    top_blocks: tuple[str, ...] = ()
    macros: dict[str, Macro] = field(default_factory=dict)
    imports: tuple[Import, ...] = ()


@dataclass(frozen=True)
class ResolvedTemplate:
    """A template with its inheritance chain applied.

    Attributes:
        name: Name of the leaf template.
        nodes: Root document with every block replaced by its most-derived body.
        chain: Template names from leaf to root.
        macros: Macros visible to the document, leaf declarations first.
        imports: Imports from every template in the chain.
    """

    name: str
    nodes: tuple[Node, ...]
    chain: tuple[str, ...]
    macros: dict[str, Macro] = field(default_factory=dict)
    imports: tuple[Import, ...] = ()
