"""Block resolution for template inheritance.

A leaf template names at most one parent with ``extends``. Resolution walks
that chain to the root, then rewrites the root's node tree so that every
block holds the body of its most-derived declaration. A ``{{ super() }}``
inside a declaration is replaced by the next ancestor's declaration of the
same block. The result is a new immutable tree; the input templates are
untouched.

Key functions:
- collect_chain: Walk leaf -> root, detecting cycles.
- check_overrides: Reject child blocks that no ancestor declares.
- resolve_template: Produce a ResolvedTemplate for a leaf name.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace

from .errors import (
    CyclicInheritanceError,
    TemplateNotFound,
    UnresolvedBlockError,
)
from .nodes import Block, For, If, Import, Macro, Node, ResolvedTemplate, Super, Template

TemplateGetter = Callable[[str], Template]


def collect_chain(name: str, get_template: TemplateGetter) -> list[Template]:
    """Return the inheritance chain of a template, leaf first.

    Args:
        name: Name of the leaf template.
        get_template: Callable returning a parsed Template by name.

    Returns:
        Templates from leaf to root.

    Raises:
        CyclicInheritanceError: If a template is reached twice.
        TemplateNotFound: If the leaf or any parent is missing.
    """
    chain: list[Template] = []
    visited: list[str] = []
    current: str | None = name
    while current is not None:
        if current in visited:
            raise CyclicInheritanceError(visited + [current])
        visited.append(current)
        try:
            template = get_template(current)
        except TemplateNotFound as exc:
            if not chain or exc.template != current:
                raise
            raise TemplateNotFound(current, chain[-1].name) from exc
        chain.append(template)
        current = template.parent
    return chain


def check_overrides(chain: list[Template]) -> None:
    """Ensure every block a child declares at top level exists in an ancestor.

    Blocks nested inside a child's own blocks are new override points and are
    not checked.

    Raises:
        UnresolvedBlockError: For the first override with no ancestor block.
    """
    for depth, template in enumerate(chain[:-1]):
        ancestors = chain[depth + 1 :]
        for block_name in template.top_blocks:
            if not any(block_name in ancestor.blocks for ancestor in ancestors):
                block = template.blocks[block_name]
                raise UnresolvedBlockError(
                    f"Block '{block_name}' is not declared in any parent template",
                    template.name,
                    block.lineno,
                )


class _BlockResolver:
    def __init__(self, chain: list[Template]):
        self.chain = chain
        self._active: list[tuple[str, int]] = []

    def rewrite(self, nodes: tuple[Node, ...], current: tuple[str, int] | None) -> tuple[Node, ...]:
        out: list[Node] = []
        for node in nodes:
            if isinstance(node, Block):
                out.append(self.resolve_block(node.name, 0, node.lineno))
            elif isinstance(node, Super):
                if current is None:
                    # only reachable from hand-built trees
                    raise UnresolvedBlockError("super() used outside of a block", None, node.lineno)
                block_name, depth = current
                out.append(self.resolve_block(block_name, depth + 1, node.lineno, is_super=True))
            elif isinstance(node, If):
                branches = tuple(
                    (test, self.rewrite(body, current)) for test, body in node.branches
                )
                else_body = self.rewrite(node.else_body, current)
                out.append(replace(node, branches=branches, else_body=else_body))
            elif isinstance(node, For):
                out.append(
                    replace(
                        node,
                        body=self.rewrite(node.body, current),
                        else_body=self.rewrite(node.else_body, current),
                    )
                )
            else:
                out.append(node)
        return tuple(out)

    def resolve_block(self, name: str, start: int, lineno: int, is_super: bool = False) -> Block:
        for depth in range(start, len(self.chain)):
            template = self.chain[depth]
            declaration = template.blocks.get(name)
            if declaration is None:
                continue
            key = (name, depth)
            if key in self._active:
                raise UnresolvedBlockError(
                    f"Block '{name}' contains itself", template.name, declaration.lineno
                )
            self._active.append(key)
            try:
                body = self.rewrite(declaration.body, key)
            finally:
                self._active.pop()
            return Block(name, body, template.name, declaration.lineno)

        origin = self.chain[start - 1].name if start > 0 else self.chain[0].name
        if is_super:
            message = f"super() called in block '{name}' but no parent template declares it"
        else:
            message = f"Block '{name}' could not be resolved"
        raise UnresolvedBlockError(message, origin, lineno)


def resolve_template(
    name: str, get_template: TemplateGetter, strict: bool = True
) -> ResolvedTemplate:
    """Resolve a leaf template against its parent chain.

    Args:
        name: Name of the leaf template.
        get_template: Callable returning a parsed Template by name.
        strict: Whether child blocks missing from every ancestor are errors.
            When False they are silently unused.

    Returns:
        The ResolvedTemplate for ``name``.

    Raises:
        CyclicInheritanceError: On a cyclic parent chain.
        UnresolvedBlockError: On an unknown override or a dangling super().
        TemplateNotFound: If a template in the chain is missing.
        TemplateSyntaxError: If a template in the chain cannot be parsed.
    """
    chain = collect_chain(name, get_template)
    if strict:
        check_overrides(chain)
    root = chain[-1]
    nodes = _BlockResolver(chain).rewrite(root.nodes, None)

    macros: dict[str, Macro] = {}
    imports: list[Import] = []
    for template in reversed(chain):
        macros.update(template.macros)
        imports.extend(template.imports)

    return ResolvedTemplate(
        name=name,
        nodes=nodes,
        chain=tuple(t.name for t in chain),
        macros=macros,
        imports=tuple(imports),
    )
