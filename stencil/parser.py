"""Recursive-descent parser for Stencil templates.

Template grammar (tags):
    extends "parent.html"          must come first, at most once
    block NAME ... endblock [NAME]
    if EXPR ... [elif EXPR ...] [else ...] endif
    for NAME[, NAME] in EXPR ... [else ...] endfor
    set NAME = EXPR
    include EXPR [ignore missing]
    import "file" as NAME
    macro NAME(PARAM[=EXPR], ...) ... endmacro [NAME]

Expression grammar, lowest precedence first:
    or_expr      -> and_expr ("or" and_expr)*
    and_expr     -> not_expr ("and" not_expr)*
    not_expr     -> "not" not_expr | compare
    compare      -> concat (CMP concat | ["not"] "in" concat)*
    concat       -> additive ("~" additive)*
    additive     -> term (("+" | "-") term)*
    term         -> unary (("*" | "/" | "%") unary)*
    unary        -> "-" unary | filtered
    filtered     -> postfix ("|" NAME [args])* ["is" ["not"] NAME [args]]
    postfix      -> primary ("." NAME | "[" or_expr "]" | args)*
"""

from __future__ import annotations

from .errors import TemplateSyntaxError
from .lexer import ExpressionLexer, SourceToken, Token, tokenize_template
from .nodes import (
    BinOp,
    Block,
    Call,
    Const,
    Expr,
    Filter,
    For,
    Getattr,
    Getitem,
    If,
    Import,
    Include,
    ListExpr,
    Macro,
    Name,
    Node,
    Output,
    Set,
    Super,
    Template,
    Test,
    Text,
    Unary,
)

_COMPARISONS = ("==", "!=", "<", ">", "<=", ">=")
_CONSTANTS = {
    "true": True,
    "True": True,
    "false": False,
    "False": False,
    "none": None,
    "None": None,
}
_lexer = ExpressionLexer()


def parse(source: str, name: str = "<string>") -> Template:
    """Parse template source into a Template.

    Args:
        source: Raw template source.
        name: Template identifier, used for the Template and error messages.

    Returns:
        The parsed Template.

    Raises:
        TemplateSyntaxError: If the source is malformed.
    """
    return TemplateParser(source, name).parse()


def parse_expression(source: str, name: str | None = None, lineno: int | None = None) -> Expr:
    """Parse a standalone expression."""
    stream = ExpressionParser(_lexer.tokenize(source, name, lineno), name, lineno)
    expr = stream.parse_expression()
    stream.expect_end()
    return expr


class ExpressionParser:
    """Parses a token list into an expression tree."""

    def __init__(self, tokens: list[Token], name: str | None = None, lineno: int | None = None):
        self._tokens = tokens
        self._position = 0
        self.name = name
        self.lineno = lineno

    # --- token helpers ---

    def current(self) -> Token:
        return self._tokens[min(self._position, len(self._tokens) - 1)]

    def peek(self, offset: int = 1) -> Token:
        return self._tokens[min(self._position + offset, len(self._tokens) - 1)]

    def advance(self) -> Token:
        token = self.current()
        if token.type != "EOF":
            self._position += 1
        return token

    def at_end(self) -> bool:
        return self.current().type == "EOF"

    def check(self, token_type: str, value: object = None) -> bool:
        token = self.current()
        return token.type == token_type and (value is None or token.value == value)

    def match(self, token_type: str, value: object = None) -> bool:
        if self.check(token_type, value):
            self.advance()
            return True
        return False

    def expect(self, token_type: str, value: object = None) -> Token:
        if not self.check(token_type, value):
            wanted = repr(value) if value is not None else token_type.lower()
            self.fail(f"Expected {wanted}")
        return self.advance()

    def expect_name(self) -> str:
        return str(self.expect("NAME").value)

    def _at_not_in(self) -> bool:
        following = self.peek()
        return self.check("NAME", "not") and following.type == "NAME" and following.value == "in"

    def expect_end(self) -> None:
        if not self.at_end():
            self.fail("Unexpected trailing input")

    def fail(self, message: str):
        token = self.current()
        found = "end of expression" if token.type == "EOF" else repr(token.value)
        raise TemplateSyntaxError(f"{message}, found {found}", self.name, self.lineno)

    # --- grammar ---

    def parse_expression(self) -> Expr:
        return self._parse_or()

    def _parse_or(self) -> Expr:
        left = self._parse_and()
        while self.match("NAME", "or"):
            left = BinOp("or", left, self._parse_and())
        return left

    def _parse_and(self) -> Expr:
        left = self._parse_not()
        while self.match("NAME", "and"):
            left = BinOp("and", left, self._parse_not())
        return left

    def _parse_not(self) -> Expr:
        if self.check("NAME", "not") and not self._at_not_in():
            self.advance()
            return Unary("not", self._parse_not())
        return self._parse_compare()

    def _parse_compare(self) -> Expr:
        left = self._parse_concat()
        while True:
            token = self.current()
            if token.type == "OP" and token.value in _COMPARISONS:
                self.advance()
                left = BinOp(str(token.value), left, self._parse_concat())
            elif self.match("NAME", "in"):
                left = BinOp("in", left, self._parse_concat())
            elif self._at_not_in():
                self.advance()
                self.advance()
                left = BinOp("not in", left, self._parse_concat())
            else:
                return left

    def _parse_concat(self) -> Expr:
        left = self._parse_additive()
        while self.match("OP", "~"):
            left = BinOp("~", left, self._parse_additive())
        return left

    def _parse_additive(self) -> Expr:
        left = self._parse_term()
        while self.check("OP", "+") or self.check("OP", "-"):
            op = str(self.advance().value)
            left = BinOp(op, left, self._parse_term())
        return left

    def _parse_term(self) -> Expr:
        left = self._parse_unary()
        while self.check("OP", "*") or self.check("OP", "/") or self.check("OP", "%"):
            op = str(self.advance().value)
            left = BinOp(op, left, self._parse_unary())
        return left

    def _parse_unary(self) -> Expr:
        if self.match("OP", "-"):
            return Unary("-", self._parse_unary())
        return self._parse_filtered()

    def _parse_filtered(self) -> Expr:
        expr = self._parse_postfix()
        while self.match("OP", "|"):
            name = self.expect_name()
            args, kwargs = self._parse_call_args() if self.check("OP", "(") else ((), ())
            expr = Filter(expr, name, args, kwargs)
        if self.match("NAME", "is"):
            negated = self.match("NAME", "not")
            name = self.expect_name()
            args: tuple[Expr, ...] = ()
            if self.check("OP", "("):
                args, kwargs = self._parse_call_args()
                if kwargs:
                    self.fail(f"Test '{name}' does not take keyword arguments")
            expr = Test(expr, name, args, negated)
        return expr

    def _parse_postfix(self) -> Expr:
        expr = self._parse_primary()
        while True:
            if self.match("OP", "."):
                if self.check("NUMBER"):
                    expr = Getitem(expr, Const(self.advance().value))
                    continue
                attr = self.expect_name()
                if self.check("OP", "(") and isinstance(expr, Name):
                    args, kwargs = self._parse_call_args()
                    expr = Call(attr, expr.name, args, kwargs)
                else:
                    expr = Getattr(expr, attr)
            elif self.match("OP", "["):
                key = self.parse_expression()
                self.expect("OP", "]")
                expr = Getitem(expr, key)
            else:
                return expr

    def _parse_primary(self) -> Expr:
        token = self.current()
        if token.type in ("NUMBER", "STRING"):
            self.advance()
            return Const(token.value)
        if token.type == "NAME":
            self.advance()
            name = str(token.value)
            if name in _CONSTANTS:
                return Const(_CONSTANTS[name])
            if self.match("OP", "::"):
                macro = self.expect_name()
                args, kwargs = self._parse_call_args()
                return Call(macro, name, args, kwargs)
            if self.check("OP", "("):
                args, kwargs = self._parse_call_args()
                return Call(name, None, args, kwargs)
            return Name(name)
        if self.match("OP", "("):
            expr = self.parse_expression()
            self.expect("OP", ")")
            return expr
        if self.match("OP", "["):
            items: list[Expr] = []
            while not self.check("OP", "]"):
                items.append(self.parse_expression())
                if not self.match("OP", ","):
                    break
            self.expect("OP", "]")
            return ListExpr(tuple(items))
        self.fail("Expected an expression")

    def _parse_call_args(self) -> tuple[tuple[Expr, ...], tuple[tuple[str, Expr], ...]]:
        self.expect("OP", "(")
        args: list[Expr] = []
        kwargs: list[tuple[str, Expr]] = []
        while not self.check("OP", ")"):
            if self.check("NAME") and self.peek().type == "OP" and self.peek().value == "=":
                key = self.expect_name()
                self.advance()
                kwargs.append((key, self.parse_expression()))
            else:
                if kwargs:
                    self.fail("Positional argument after keyword argument")
                args.append(self.parse_expression())
            if not self.match("OP", ","):
                break
        self.expect("OP", ")")
        return tuple(args), tuple(kwargs)


class TemplateParser:
    """Builds a Template from source tokens."""

    def __init__(self, source: str, name: str = "<string>"):
        self.name = name
        self._tokens = tokenize_template(source, name)
        self._position = 0
        self._parent: str | None = None
        self._blocks: dict[str, Block] = {}
        self._top_blocks: list[str] = []
        self._macros: dict[str, Macro] = {}
        self._imports: list[Import] = []
        self._block_depth = 0
        self._handlers = {
            "extends": self._parse_extends,
            "block": self._parse_block,
            "if": self._parse_if,
            "for": self._parse_for,
            "set": self._parse_set,
            "include": self._parse_include,
            "import": self._parse_import,
            "macro": self._parse_macro,
        }

    def parse(self) -> Template:
        nodes, _, _ = self._parse_body(())
        return Template(
            name=self.name,
            nodes=nodes,
            parent=self._parent,
            blocks=dict(self._blocks),
            top_blocks=tuple(self._top_blocks),
            macros=dict(self._macros),
            imports=tuple(self._imports),
        )

    def _parse_body(
        self, end_tags: tuple[str, ...]
    ) -> tuple[tuple[Node, ...], str | None, SourceToken | None]:
        body: list[Node] = []
        while self._position < len(self._tokens):
            token = self._tokens[self._position]
            self._position += 1
            if token.type == "text":
                body.append(Text(token.value, token.lineno))
            elif token.type == "var":
                body.append(self._parse_output(token))
            else:
                keyword = token.value.split(None, 1)[0] if token.value else ""
                if keyword in end_tags:
                    return tuple(body), keyword, token
                handler = self._handlers.get(keyword)
                if handler is None:
                    if keyword.startswith("end") or keyword in ("elif", "else"):
                        raise TemplateSyntaxError(
                            f"Unexpected '{keyword}' tag", self.name, token.lineno
                        )
                    raise TemplateSyntaxError(
                        f"Unknown tag '{keyword}'", self.name, token.lineno
                    )
                node = handler(token)
                if node is not None:
                    body.append(node)
        if end_tags:
            last_line = self._tokens[-1].lineno if self._tokens else 1
            raise TemplateSyntaxError(
                f"Unexpected end of template, expected {' or '.join(repr(t) for t in end_tags)}",
                self.name,
                last_line,
            )
        return tuple(body), None, None

    def _expressions(self, source: str, token: SourceToken) -> ExpressionParser:
        return ExpressionParser(
            _lexer.tokenize(source, self.name, token.lineno), self.name, token.lineno
        )

    @staticmethod
    def _arguments(token: SourceToken) -> str:
        parts = token.value.split(None, 1)
        return parts[1] if len(parts) > 1 else ""

    def _parse_output(self, token: SourceToken) -> Node:
        if not token.value:
            raise TemplateSyntaxError("Empty variable", self.name, token.lineno)
        stream = self._expressions(token.value, token)
        expr = stream.parse_expression()
        stream.expect_end()
        if isinstance(expr, Call) and expr.name == "super" and expr.namespace is None:
            if self._block_depth == 0:
                raise TemplateSyntaxError(
                    "super() used outside of a block", self.name, token.lineno
                )
            return Super(token.lineno)
        return Output(expr, token.lineno)

    def _parse_extends(self, token: SourceToken) -> None:
        if self._parent is not None:
            raise TemplateSyntaxError(
                "A template can only extend one parent", self.name, token.lineno
            )
        preceding = self._tokens[: self._position - 1]
        if any(t.type != "text" or t.value.strip() for t in preceding):
            raise TemplateSyntaxError(
                "'extends' must be the first tag in the template", self.name, token.lineno
            )
        stream = self._expressions(self._arguments(token), token)
        self._parent = str(stream.expect("STRING").value)
        stream.expect_end()
        return None

    def _parse_block(self, token: SourceToken) -> Block:
        stream = self._expressions(self._arguments(token), token)
        name = stream.expect_name()
        stream.expect_end()
        if name in self._blocks:
            raise TemplateSyntaxError(
                f"Block '{name}' is declared more than once", self.name, token.lineno
            )
        if self._block_depth == 0:
            self._top_blocks.append(name)
        # reserve the name so nested duplicates are caught
        self._blocks[name] = Block(name, (), self.name, token.lineno)
        self._block_depth += 1
        body, _, end = self._parse_body(("endblock",))
        self._block_depth -= 1
        end_name = self._arguments(end).strip()
        if end_name and end_name != name:
            raise TemplateSyntaxError(
                f"Mismatched endblock: expected '{name}', got '{end_name}'",
                self.name,
                end.lineno,
            )
        block = Block(name, body, self.name, token.lineno)
        self._blocks[name] = block
        return block

    def _parse_if(self, token: SourceToken) -> If:
        branches: list[tuple[Expr, tuple[Node, ...]]] = []
        else_body: tuple[Node, ...] = ()
        current = token
        while True:
            stream = self._expressions(self._arguments(current), current)
            test = stream.parse_expression()
            stream.expect_end()
            body, keyword, current = self._parse_body(("elif", "else", "endif"))
            branches.append((test, body))
            if keyword == "elif":
                continue
            if keyword == "else":
                else_body, _, _ = self._parse_body(("endif",))
            break
        return If(tuple(branches), else_body, token.lineno)

    def _parse_for(self, token: SourceToken) -> For:
        stream = self._expressions(self._arguments(token), token)
        targets = [stream.expect_name()]
        while stream.match("OP", ","):
            targets.append(stream.expect_name())
        if len(targets) > 2:
            stream.fail("Expected at most two loop variables")
        stream.expect("NAME", "in")
        iterable = stream.parse_expression()
        stream.expect_end()
        body, keyword, _ = self._parse_body(("else", "endfor"))
        else_body: tuple[Node, ...] = ()
        if keyword == "else":
            else_body, _, _ = self._parse_body(("endfor",))
        return For(tuple(targets), iterable, body, else_body, token.lineno)

    def _parse_set(self, token: SourceToken) -> Set:
        stream = self._expressions(self._arguments(token), token)
        name = stream.expect_name()
        stream.expect("OP", "=")
        expr = stream.parse_expression()
        stream.expect_end()
        return Set(name, expr, token.lineno)

    def _parse_include(self, token: SourceToken) -> Include:
        stream = self._expressions(self._arguments(token), token)
        template = stream.parse_expression()
        ignore_missing = False
        if stream.match("NAME", "ignore"):
            stream.expect("NAME", "missing")
            ignore_missing = True
        stream.expect_end()
        return Include(template, ignore_missing, token.lineno)

    def _parse_import(self, token: SourceToken) -> None:
        stream = self._expressions(self._arguments(token), token)
        template = str(stream.expect("STRING").value)
        stream.expect("NAME", "as")
        alias = stream.expect_name()
        stream.expect_end()
        self._imports.append(Import(template, alias, token.lineno))
        return None

    def _parse_macro(self, token: SourceToken) -> None:
        stream = self._expressions(self._arguments(token), token)
        name = stream.expect_name()
        stream.expect("OP", "(")
        params: list[tuple[str, Expr | None]] = []
        while not stream.check("OP", ")"):
            param = stream.expect_name()
            default = stream.parse_expression() if stream.match("OP", "=") else None
            params.append((param, default))
            if not stream.match("OP", ","):
                break
        stream.expect("OP", ")")
        stream.expect_end()
        if name in self._macros:
            raise TemplateSyntaxError(
                f"Macro '{name}' is declared more than once", self.name, token.lineno
            )
        body, _, end = self._parse_body(("endmacro",))
        end_name = self._arguments(end).strip()
        if end_name and end_name != name:
            raise TemplateSyntaxError(
                f"Mismatched endmacro: expected '{name}', got '{end_name}'",
                self.name,
                end.lineno,
            )
        self._macros[name] = Macro(name, tuple(params), body, self.name, token.lineno)
        return None
