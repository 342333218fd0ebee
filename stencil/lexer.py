"""Lexers for template source and expressions.

Template source is split into text, variable (``{{ ... }}``) and tag
(``{% ... %}``) tokens. Comments (``{# ... #}``) are dropped and
``{% raw %}`` sections come out as plain text. A ``-`` next to a
delimiter strips the whitespace on that side.

Expressions inside variables and tags are tokenized separately by
ExpressionLexer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import TemplateSyntaxError

_OPEN_RE = re.compile(r"\{([{%#])(-?)")
_CLOSERS = {"{": "}}", "%": "%}", "#": "#}"}
_RAW_RE = re.compile(r"^\s*raw\s*$")
_ENDRAW_RE = re.compile(r"\{%(-?)\s*endraw\s*(-?)%\}")
_KIND_NAMES = {"{": "variable", "%": "tag", "#": "comment"}
# quoted strings are skipped so a literal "}}" or "%}" does not end the tag
_CLOSE_RES = {
    kind: re.compile(r'"(?:[^"\\]|\\.)*"|\'(?:[^\'\\]|\\.)*\'|(' + re.escape(closer) + ")")
    for kind, closer in (("{", "}}"), ("%", "%}"))
}

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "'": "'", "\\": "\\"}


@dataclass(frozen=True)
class SourceToken:
    """A chunk of template source.

    Attributes:
        type: "text", "var" or "tag".
        value: Raw text, or the stripped inner source of a variable/tag.
        lineno: Line on which the chunk starts.
    """

    type: str
    value: str
    lineno: int


@dataclass(frozen=True)
class Token:
    """An expression token.

    Attributes:
        type: NUMBER, STRING, NAME, OP or EOF.
        value: Token text (unescaped for strings, converted for numbers).
        position: Offset in the expression source.
    """

    type: str
    value: object
    position: int


def _find_closer(source: str, kind: str, start: int) -> int:
    pattern = _CLOSE_RES.get(kind)
    if pattern is None:
        return source.find(_CLOSERS[kind], start)
    for found in pattern.finditer(source, start):
        if found.group(1):
            return found.start()
    return -1


def tokenize_template(source: str, name: str | None = None) -> list[SourceToken]:
    """Split template source into text, variable and tag tokens.

    Args:
        source: Raw template source.
        name: Template name used in error messages.

    Returns:
        List of SourceToken in document order.

    Raises:
        TemplateSyntaxError: If a delimiter or raw section is left open.
    """
    tokens: list[SourceToken] = []
    pos = 0
    lineno = 1
    strip_next = False

    def emit_text(text: str, line: int, strip_left: bool, strip_right: bool) -> None:
        if strip_left:
            text = text.lstrip()
        if strip_right:
            text = text.rstrip()
        if text:
            tokens.append(SourceToken("text", text, line))

    while True:
        match = _OPEN_RE.search(source, pos)
        if match is None:
            emit_text(source[pos:], lineno, strip_next, False)
            break

        emit_text(source[pos : match.start()], lineno, strip_next, bool(match.group(2)))
        lineno += source.count("\n", pos, match.start())

        kind = match.group(1)
        closer = _CLOSERS[kind]
        end = _find_closer(source, kind, match.end())
        if end == -1:
            raise TemplateSyntaxError(
                f"Unclosed {_KIND_NAMES[kind]}, expected '{closer}'", name, lineno
            )
        inner = source[match.end() : end]
        strip_next = inner.endswith("-")
        if strip_next:
            inner = inner[:-1]

        if kind == "{":
            tokens.append(SourceToken("var", inner.strip(), lineno))
        elif kind == "%" and _RAW_RE.match(inner):
            raw_end = _ENDRAW_RE.search(source, end + 2)
            if raw_end is None:
                raise TemplateSyntaxError(
                    "Unclosed raw section, expected '{% endraw %}'", name, lineno
                )
            emit_text(
                source[end + 2 : raw_end.start()],
                lineno,
                strip_next,
                bool(raw_end.group(1)),
            )
            strip_next = bool(raw_end.group(2))
            lineno += source.count("\n", match.start(), raw_end.end())
            pos = raw_end.end()
            continue
        elif kind == "%":
            tokens.append(SourceToken("tag", inner.strip(), lineno))

        lineno += source.count("\n", match.start(), end + 2)
        pos = end + 2

    return tokens


class ExpressionLexer:
    """Tokenizer for expressions found inside variables and tags.

    Token specs are tried in order: (regex_pattern, token_type, ignore_flag).
    """

    TOKEN_SPECS = [
        (r"\s+", "WHITESPACE", True),
        (r"\d+\.\d+", "FLOAT", False),
        (r"\d+", "INTEGER", False),
        (r'"(?:[^"\\]|\\.)*"', "STRING", False),
        (r"'(?:[^'\\]|\\.)*'", "STRING", False),
        (r"[A-Za-z_][A-Za-z0-9_]*", "NAME", False),
        (r"==|!=|<=|>=|::", "OP", False),
        (r"[-+*/%~<>|.,:()\[\]=]", "OP", False),
        (r".", "UNKNOWN", False),
    ]

    def __init__(self):
        self._compiled_patterns = [
            (re.compile(pattern), token_type, ignore)
            for pattern, token_type, ignore in self.TOKEN_SPECS
        ]

    def tokenize(
        self, text: str, name: str | None = None, lineno: int | None = None
    ) -> list[Token]:
        """Tokenize an expression.

        Args:
            text: Expression source.
            name: Template name for error messages.
            lineno: Line of the enclosing tag for error messages.

        Returns:
            List of tokens ending with an EOF token.

        Raises:
            TemplateSyntaxError: On an unexpected character.
        """
        tokens: list[Token] = []
        position = 0
        while position < len(text):
            for pattern, token_type, ignore in self._compiled_patterns:
                match = pattern.match(text, position)
                if not match:
                    continue
                value = match.group(0)
                if not ignore:
                    if token_type == "UNKNOWN":
                        raise TemplateSyntaxError(
                            f"Unexpected character '{value}' in expression", name, lineno
                        )
                    tokens.append(_make_token(token_type, value, position))
                position = match.end()
                break
        tokens.append(Token("EOF", "", position))
        return tokens


def _make_token(token_type: str, value: str, position: int) -> Token:
    if token_type == "FLOAT":
        return Token("NUMBER", float(value), position)
    if token_type == "INTEGER":
        return Token("NUMBER", int(value), position)
    if token_type == "STRING":
        return Token("STRING", _unescape(value[1:-1]), position)
    return Token(token_type, value, position)


def _unescape(body: str) -> str:
    if "\\" not in body:
        return body
    out: list[str] = []
    chars = iter(body)
    for char in chars:
        if char == "\\":
            nxt = next(chars, "\\")
            out.append(_ESCAPES.get(nxt, "\\" + nxt))
        else:
            out.append(char)
    return "".join(out)
