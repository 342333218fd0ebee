"""Expression evaluation for Stencil.

Expressions are evaluated against a frame: a ChainMap of render-local
variables (loop variables, ``set`` assignments, macro arguments) over the
read-only page context. The context itself is never written to.

A lookup that misses yields an Undefined value instead of raising. Undefined
is falsy, so ``{% if page.later %}`` works on pages without a later page,
and ``is defined`` / ``is undefined`` can test for it. Any other use of an
Undefined value (output, filters, iteration, arithmetic) raises
UndefinedVariableError.
"""

from __future__ import annotations

import operator
from collections import ChainMap
from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from markupsafe import Markup

from .errors import FilterError, TemplateError, UndefinedVariableError
from .nodes import (
    BinOp,
    Call,
    Const,
    Expr,
    Filter,
    Getattr,
    Getitem,
    ListExpr,
    Name,
    Test,
    Unary,
)

if TYPE_CHECKING:
    from .environment import Environment

Frame = ChainMap

MacroCaller = Callable[[str, str, list[Any], dict[str, Any]], Markup]

_ORDERING = {
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
}
_ARITHMETIC = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "%": operator.mod,
}


class Undefined:
    """Result of a lookup that found nothing.

    Attributes:
        path: Dotted path of the failed lookup, for error messages.
    """

    __slots__ = ("path",)

    def __init__(self, path: str):
        self.path = path

    def __bool__(self) -> bool:
        return False

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Undefined)

    def __ne__(self, other: object) -> bool:
        return not isinstance(other, Undefined)

    def __hash__(self) -> int:
        return hash(Undefined)

    def __repr__(self) -> str:
        return f"Undefined({self.path!r})"


def pass_context(func: Callable) -> Callable:
    """Mark a global function as receiving the current frame first."""
    func.stencil_pass_context = True  # type: ignore[attr-defined]
    return func


def stringify(value: Any) -> str:
    """Convert a value to its output text without escaping."""
    if value is None:
        return ""
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, str):
        return value
    return str(value)


def get_attribute(obj: Any, attr: Any, path: str) -> Any:
    """Look up ``attr`` on ``obj`` as a key, index or attribute.

    Args:
        obj: Container to look into.
        attr: Key, index or attribute name.
        path: Dotted path used for an Undefined result.

    Returns:
        The value found, or Undefined(path).
    """
    if isinstance(obj, Undefined):
        return Undefined(path)
    if isinstance(obj, Mapping):
        if attr in obj:
            return obj[attr]
        return Undefined(path)
    if isinstance(obj, Sequence) and isinstance(attr, int) and not isinstance(attr, bool):
        if -len(obj) <= attr < len(obj):
            return obj[attr]
        return Undefined(path)
    if isinstance(attr, str) and not attr.startswith("_") and hasattr(obj, attr):
        return getattr(obj, attr)
    return Undefined(path)


def describe(expr: Expr) -> str:
    """Render an expression back to a short dotted path for messages."""
    if isinstance(expr, Name):
        return expr.name
    if isinstance(expr, Getattr):
        return f"{describe(expr.obj)}.{expr.attr}"
    if isinstance(expr, Getitem):
        key = expr.key.value if isinstance(expr.key, Const) else "..."
        return f"{describe(expr.obj)}[{key!r}]"
    if isinstance(expr, Filter):
        return f"{describe(expr.expr)}|{expr.name}"
    if isinstance(expr, Call):
        prefix = f"{expr.namespace}::" if expr.namespace else ""
        return f"{prefix}{expr.name}()"
    if isinstance(expr, Const):
        return repr(expr.value)
    return type(expr).__name__


class Evaluator:
    """Evaluates expression nodes for one render.

    Attributes:
        env: Environment holding filters, tests and globals.
        call_macro: Callback used for ``namespace::macro(...)`` calls.
    """

    def __init__(self, env: Environment, call_macro: MacroCaller):
        self.env = env
        self.call_macro = call_macro

    def evaluate(self, expr: Expr, frame: Frame) -> Any:
        method = getattr(self, f"_eval_{type(expr).__name__}", None)
        if method is None:
            raise TemplateError(f"Cannot evaluate {type(expr).__name__}")
        return method(expr, frame)

    def require(self, expr: Expr, frame: Frame) -> Any:
        """Evaluate an expression whose value must be defined."""
        value = self.evaluate(expr, frame)
        if isinstance(value, Undefined):
            raise UndefinedVariableError(value.path)
        return value

    def truthy(self, expr: Expr, frame: Frame) -> bool:
        """Evaluate an expression in boolean context; Undefined is false."""
        return bool(self.evaluate(expr, frame))

    # --- node evaluators ---

    def _eval_Const(self, expr: Const, frame: Frame) -> Any:
        return expr.value

    def _eval_ListExpr(self, expr: ListExpr, frame: Frame) -> list[Any]:
        return [self.require(item, frame) for item in expr.items]

    def _eval_Name(self, expr: Name, frame: Frame) -> Any:
        if expr.name in frame:
            return frame[expr.name]
        if expr.name in self.env.globals:
            return self.env.globals[expr.name]
        return Undefined(expr.name)

    def _eval_Getattr(self, expr: Getattr, frame: Frame) -> Any:
        obj = self.evaluate(expr.obj, frame)
        return get_attribute(obj, expr.attr, describe(expr))

    def _eval_Getitem(self, expr: Getitem, frame: Frame) -> Any:
        obj = self.evaluate(expr.obj, frame)
        key = self.require(expr.key, frame)
        return get_attribute(obj, key, describe(expr))

    def _eval_Unary(self, expr: Unary, frame: Frame) -> Any:
        if expr.op == "not":
            return not self.truthy(expr.operand, frame)
        value = self.require(expr.operand, frame)
        try:
            return -value
        except TypeError as exc:
            raise TemplateError(f"Cannot negate {describe(expr.operand)}: {exc}") from exc

    def _eval_BinOp(self, expr: BinOp, frame: Frame) -> Any:
        op = expr.op
        if op == "and":
            left = self.evaluate(expr.left, frame)
            return self.evaluate(expr.right, frame) if left else left
        if op == "or":
            left = self.evaluate(expr.left, frame)
            return left if left else self.evaluate(expr.right, frame)
        if op == "==":
            return self.evaluate(expr.left, frame) == self.evaluate(expr.right, frame)
        if op == "!=":
            return self.evaluate(expr.left, frame) != self.evaluate(expr.right, frame)

        left = self.require(expr.left, frame)
        right = self.require(expr.right, frame)
        if op == "~":
            joined = stringify(left) + stringify(right)
            if isinstance(left, Markup) and isinstance(right, Markup):
                return Markup(joined)
            return joined
        try:
            if op in _ORDERING:
                return _ORDERING[op](left, right)
            if op == "in":
                return left in right
            if op == "not in":
                return left not in right
            return _ARITHMETIC[op](left, right)
        except (TypeError, ZeroDivisionError) as exc:
            operands = f"{describe(expr.left)}, {describe(expr.right)}"
            raise TemplateError(f"Invalid operands for '{op}': {operands} ({exc})") from exc

    def _eval_Filter(self, expr: Filter, frame: Frame) -> Any:
        func = self.env.filters.get(expr.name)
        if func is None:
            raise FilterError(f"Unknown filter '{expr.name}'")
        if expr.name in self.env.undefined_filters:
            value = self.evaluate(expr.expr, frame)
        else:
            value = self.require(expr.expr, frame)
        args = [self.require(arg, frame) for arg in expr.args]
        kwargs = {key: self.require(arg, frame) for key, arg in expr.kwargs}
        try:
            return func(value, *args, **kwargs)
        except (TypeError, ValueError) as exc:
            raise FilterError(f"Filter '{expr.name}' failed: {exc}") from exc

    def _eval_Test(self, expr: Test, frame: Frame) -> bool:
        if expr.name in ("defined", "undefined"):
            missing = isinstance(self.evaluate(expr.expr, frame), Undefined)
            result = missing if expr.name == "undefined" else not missing
            return not result if expr.negated else result
        func = self.env.tests.get(expr.name)
        if func is None:
            raise FilterError(f"Unknown test '{expr.name}'")
        value = self.require(expr.expr, frame)
        args = [self.require(arg, frame) for arg in expr.args]
        try:
            result = bool(func(value, *args))
        except (TypeError, ValueError) as exc:
            raise FilterError(f"Test '{expr.name}' failed: {exc}") from exc
        return not result if expr.negated else result

    def _eval_Call(self, expr: Call, frame: Frame) -> Any:
        args = [self.require(arg, frame) for arg in expr.args]
        kwargs = {key: self.require(arg, frame) for key, arg in expr.kwargs}
        if expr.namespace is not None:
            return self.call_macro(expr.namespace, expr.name, args, kwargs)
        if expr.name == "super":
            raise TemplateError("super() must be used on its own, as {{ super() }}")
        func = self.env.globals.get(expr.name)
        if not callable(func):
            raise FilterError(f"Unknown function '{expr.name}'")
        try:
            if getattr(func, "stencil_pass_context", False):
                return func(frame, *args, **kwargs)
            return func(*args, **kwargs)
        except (TypeError, ValueError) as exc:
            raise FilterError(f"Function '{expr.name}' failed: {exc}") from exc
