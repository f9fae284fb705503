"""Safe expression evaluation for rule expressions and conditions.

Provides a restricted AST evaluator that only allows safe operations,
preventing attribute access, imports, and other dangerous operations.
Parsed expressions are cached since the engine evaluates the same small set
of rule expressions for every build.
"""

import ast
import math
import operator
from functools import lru_cache
from typing import Any

from .comparisons import compare_values, coerce_number, matches

# Safe builtins allowed in rule/condition evaluation
SAFE_BUILTINS = {
    "True": True,
    "False": False,
    "None": None,
    "abs": abs,
    "min": min,
    "max": max,
    "int": int,
    "bool": bool,
    "floor": math.floor,
    "ceil": math.ceil,
    "num": coerce_number,
    "compare": compare_values,
    "matches": matches,
}


class FormulaError(Exception):
    """Raised when formula evaluation fails."""

    pass


class ConditionError(Exception):
    """Raised when condition evaluation fails."""

    pass


_SAFE_BIN_OPS: dict[type[ast.operator], Any] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}
_SAFE_UNARY_OPS: dict[type[ast.unaryop], Any] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
}
_SAFE_BOOL_OPS = (ast.And, ast.Or)
_SAFE_CMP_OPS: dict[type[ast.cmpop], Any] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
}


def _eval_ast(node: ast.AST, context: dict[str, Any]) -> Any:
    if isinstance(node, ast.Expression):
        return _eval_ast(node.body, context)

    if isinstance(node, ast.Constant):
        return node.value

    if isinstance(node, ast.Name):
        if node.id.startswith("__"):
            raise FormulaError("dunder names are not allowed in expressions")
        if node.id in context:
            return context[node.id]
        if node.id in SAFE_BUILTINS:
            return SAFE_BUILTINS[node.id]
        raise FormulaError(f"Unknown name '{node.id}' in expression")

    if isinstance(node, ast.List):
        return [_eval_ast(elt, context) for elt in node.elts]

    if isinstance(node, ast.Tuple):
        return tuple(_eval_ast(elt, context) for elt in node.elts)

    if isinstance(node, ast.UnaryOp):
        op_type = type(node.op)
        if op_type not in _SAFE_UNARY_OPS:
            raise FormulaError(f"Unary operator not allowed: {op_type.__name__}")
        return _SAFE_UNARY_OPS[op_type](_eval_ast(node.operand, context))

    if isinstance(node, ast.BinOp):
        op_type = type(node.op)
        if op_type not in _SAFE_BIN_OPS:
            raise FormulaError(f"Binary operator not allowed: {op_type.__name__}")
        left = _eval_ast(node.left, context)
        right = _eval_ast(node.right, context)
        return _SAFE_BIN_OPS[op_type](left, right)

    if isinstance(node, ast.BoolOp):
        if not isinstance(node.op, _SAFE_BOOL_OPS):
            raise FormulaError(
                f"Boolean operator not allowed: {type(node.op).__name__}"
            )
        # Python semantics: return the deciding operand, not a bool
        if isinstance(node.op, ast.And):
            result: Any = True
            for value in node.values:
                result = _eval_ast(value, context)
                if not result:
                    return result
            return result
        result = False
        for value in node.values:
            result = _eval_ast(value, context)
            if result:
                return result
        return result

    if isinstance(node, ast.Compare):
        left = _eval_ast(node.left, context)
        for op, comparator in zip(node.ops, node.comparators):
            op_type = type(op)
            if op_type not in _SAFE_CMP_OPS:
                raise FormulaError(
                    f"Comparison operator not allowed: {op_type.__name__}"
                )
            right = _eval_ast(comparator, context)
            if not _SAFE_CMP_OPS[op_type](left, right):
                return False
            left = right
        return True

    if isinstance(node, ast.IfExp):
        return (
            _eval_ast(node.body, context)
            if _eval_ast(node.test, context)
            else _eval_ast(node.orelse, context)
        )

    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name):
            raise FormulaError("Only direct function calls are allowed")
        func_name = node.func.id
        if func_name.startswith("__"):
            raise FormulaError("Dunder functions are not allowed")
        # Context may supply callables (e.g. the engine's attr() reader)
        func = context.get(func_name, SAFE_BUILTINS.get(func_name))
        if not callable(func):
            raise FormulaError(f"Function '{func_name}' is not allowed")

        args = []
        for arg in node.args:
            if isinstance(arg, ast.Starred):
                raise FormulaError("Star-args are not allowed")
            args.append(_eval_ast(arg, context))
        kwargs = {}
        for kw in node.keywords:
            if kw.arg is None:
                raise FormulaError("Keyword splats are not allowed")
            kwargs[kw.arg] = _eval_ast(kw.value, context)

        return func(*args, **kwargs)

    raise FormulaError(f"Unsupported expression element: {type(node).__name__}")


@lru_cache(maxsize=4096)
def parse_expression(expression: str) -> ast.Expression:
    """Parse an expression once; repeated evaluations reuse the tree."""
    return ast.parse(expression, mode="eval")


def eval_safe(expression: str, context: dict[str, Any]) -> Any:
    """Evaluate ``expression`` against ``context`` with the restricted builtins.

    Raises:
        FormulaError: If the expression is not allowed or fails

    Example:
        >>> eval_safe("(source - 10) // 2", {"source": 15})
        2
        >>> eval_safe("attr('level', 0) >= 3", {"attr": {"level": 4}.get})
        True
    """
    try:
        return _eval_ast(parse_expression(expression), context)
    except FormulaError:
        raise
    except Exception as e:
        raise FormulaError(f"Failed to evaluate '{expression}': {e}") from e


def eval_formula(formula: str, values: dict[str, Any]) -> Any:
    """Contribution of a rule expression; ``values`` holds ``source`` and ``attr``."""
    try:
        return eval_safe(formula, values)
    except FormulaError:
        raise
    except Exception as e:
        raise FormulaError(f"Formula '{formula}' failed: {e}") from e


def eval_condition(
    condition: str,
    values: dict[str, Any],
    *,
    raise_on_error: bool = False,
) -> bool:
    """Truth of a ``?`` rule's test.

    A failing test reads as False unless ``raise_on_error`` is set, in which
    case it raises ConditionError.
    """
    try:
        return bool(eval_safe(condition, values))
    except Exception as e:
        if raise_on_error:
            raise ConditionError(f"Condition '{condition}' failed: {e}") from e
        return False
