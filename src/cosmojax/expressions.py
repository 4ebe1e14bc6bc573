"""Safe evaluation of the time-polynomial expressions in frame definitions.

IAU rotation models are written as small arithmetic expressions of the
time arguments ``T`` (Julian centuries since J2000 TDB) and ``d`` (days
since J2000 TDB), optionally referencing named context variables such as
``Ja`` or ``E1``.  Expressions are parsed once with :mod:`ast` and
validated against a whitelist of node types, then evaluated by walking
the tree; nothing is ever passed to :func:`eval`.

Supported syntax: numeric literals, names, ``+ - * / **``, unary ``+``
and ``-``, and calls to ``sin cos tan asin acos atan sqrt abs``.
"""

from __future__ import annotations

import ast
import math
import operator
from collections.abc import Callable, Mapping

from .errors import LoadingError

_BINARY_OPS: dict[type, Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type, Callable[[float], float]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_RADIAN_FUNCTIONS: dict[str, Callable[[float], float]] = {
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "asin": math.asin,
    "acos": math.acos,
    "atan": math.atan,
    "sqrt": math.sqrt,
    "abs": abs,
}

# Trigonometric arguments and results in degrees
_DEGREE_FUNCTIONS: dict[str, Callable[[float], float]] = {
    **_RADIAN_FUNCTIONS,
    "sin": lambda x: math.sin(math.radians(x)),
    "cos": lambda x: math.cos(math.radians(x)),
    "tan": lambda x: math.tan(math.radians(x)),
    "asin": lambda x: math.degrees(math.asin(x)),
    "acos": lambda x: math.degrees(math.acos(x)),
    "atan": lambda x: math.degrees(math.atan(x)),
}


class Expression:
    """A parsed arithmetic expression.

    Args:
        text: Expression source, e.g. ``"190.147 + 360.9856235*d"``.

    Raises:
        LoadingError: If *text* is not valid or uses unsupported syntax.

    Examples:
        ```python
        from cosmojax.expressions import Expression
        expr = Expression("84.176 + 14.1844*d")
        expr.evaluate({"d": 1.0})  # 98.3604
        ```
    """

    __slots__ = ("text", "names", "_tree")

    def __init__(self, text: str) -> None:
        self.text = text
        try:
            tree = ast.parse(text.strip(), mode="eval")
        except SyntaxError as err:
            raise LoadingError(f"could not parse `{text}`: {err.msg}") from err
        self.names = frozenset(self._validate(tree.body))
        self._tree = tree.body

    def _validate(self, node: ast.AST) -> set[str]:
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
            return set()
        if isinstance(node, ast.Name):
            return {node.id}
        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
            return self._validate(node.left) | self._validate(node.right)
        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
            return self._validate(node.operand)
        if (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Name)
            and node.func.id in _RADIAN_FUNCTIONS
            and len(node.args) == 1
            and not node.keywords
        ):
            return self._validate(node.args[0])
        raise LoadingError(
            f"unsupported syntax `{ast.dump(node)}` in expression `{self.text}`"
        )

    def evaluate(self, variables: Mapping[str, float], degrees: bool = False) -> float:
        """Evaluate the expression.

        Args:
            variables: Values of the free names.
            degrees: If ``True``, trigonometric functions take and return degrees.

        Returns:
            float: The value of the expression.

        Raises:
            KeyError: If a free name has no value in *variables*.
        """
        functions = _DEGREE_FUNCTIONS if degrees else _RADIAN_FUNCTIONS
        return float(self._eval(self._tree, variables, functions))

    def _eval(self, node, variables, functions):
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            return variables[node.id]
        if isinstance(node, ast.BinOp):
            return _BINARY_OPS[type(node.op)](
                self._eval(node.left, variables, functions),
                self._eval(node.right, variables, functions),
            )
        if isinstance(node, ast.UnaryOp):
            return _UNARY_OPS[type(node.op)](self._eval(node.operand, variables, functions))
        return functions[node.func.id](self._eval(node.args[0], variables, functions))

    def __repr__(self) -> str:
        return f"Expression({self.text!r})"
