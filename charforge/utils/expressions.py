"""Expression validation primitives for rule expressions.

Rule expressions are restricted Python over ``source`` (the value of the
rule's source attribute) that may read further attributes through
``attr('name', default)``. These helpers validate that shape at compile time
and find the extra attributes an expression reads, so the engine can add
them as dependency edges.

All functions return simple types (str | None for errors, set[str] for names)
to avoid coupling with domain-specific validation models.
"""

import ast


# =============================================================================
# Constants
# =============================================================================

BUILTIN_NAMES = frozenset(
    {
        "True",
        "False",
        "None",
        "abs",
        "min",
        "max",
        "int",
        "bool",
        "floor",
        "ceil",
        "num",
        "compare",
        "matches",
    }
)

# Names the engine injects into every rule expression
CONTEXT_NAMES = frozenset({"source", "attr"})

SAFE_CALL_NAMES = (BUILTIN_NAMES - {"True", "False", "None"}) | {"attr"}


# =============================================================================
# Name Extraction
# =============================================================================


def extract_names_from_expression(expr: str) -> set[str]:
    """Extract free variable names from an expression.

    Args:
        expr: A Python expression string (e.g., "source * 2 + bonus")

    Returns:
        Set of variable names other than builtins and engine context names

    Example:
        >>> extract_names_from_expression("source * 2 + bonus")
        {'bonus'}
    """
    try:
        tree = ast.parse(expr, mode="eval")
    except SyntaxError:
        return set()
    names = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Name):
            if node.id not in BUILTIN_NAMES and node.id not in CONTEXT_NAMES:
                names.add(node.id)
    return names


def extract_attribute_references(expr: str) -> set[str]:
    """Find attributes read through ``attr('...')`` calls.

    Example:
        >>> sorted(extract_attribute_references("source + attr('conModifier', 0)"))
        ['conModifier']
    """
    try:
        tree = ast.parse(expr, mode="eval")
    except SyntaxError:
        return set()
    refs = set()
    for node in ast.walk(tree):
        if (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Name)
            and node.func.id == "attr"
            and node.args
            and isinstance(node.args[0], ast.Constant)
            and isinstance(node.args[0].value, str)
        ):
            refs.add(node.args[0].value)
    return refs


# =============================================================================
# Syntax Validation
# =============================================================================


def validate_expression_syntax(expr: str | None) -> str | None:
    """Validate rule expression syntax.

    Returns an error message if invalid, None if valid.

    Example:
        >>> validate_expression_syntax("source >= 5")
        None
        >>> validate_expression_syntax("source >= ")
        "invalid Python syntax: ..."
    """
    if not expr:
        return None

    if expr.count("(") != expr.count(")"):
        return (
            f"unbalanced parentheses ({expr.count('(')} open, {expr.count(')')} close)"
        )

    try:
        tree = ast.parse(expr, mode="eval")
    except SyntaxError as e:
        error_msg = str(e.msg) if hasattr(e, "msg") else str(e)
        return f"invalid Python syntax: {error_msg}"

    safety_error = _validate_safe_expression_tree(tree)
    if safety_error:
        return safety_error

    unknown = extract_names_from_expression(expr)
    if unknown:
        return f"unknown names: {', '.join(sorted(unknown))}"

    for node in ast.walk(tree):
        if isinstance(node, ast.Call) and getattr(node.func, "id", None) == "attr":
            if not node.args or not isinstance(node.args[0], ast.Constant):
                return "attr() needs a literal attribute name"

    return None


def _validate_safe_expression_tree(tree: ast.AST) -> str | None:
    """Validate expression AST for safe, supported nodes only."""
    allowed_nodes = (
        ast.Expression,
        ast.BoolOp,
        ast.BinOp,
        ast.UnaryOp,
        ast.Compare,
        ast.Add,
        ast.Sub,
        ast.Mult,
        ast.Div,
        ast.FloorDiv,
        ast.Mod,
        ast.UAdd,
        ast.USub,
        ast.Not,
        ast.And,
        ast.Or,
        ast.Eq,
        ast.NotEq,
        ast.Lt,
        ast.LtE,
        ast.Gt,
        ast.GtE,
        ast.Name,
        ast.Constant,
        ast.List,
        ast.Tuple,
        ast.Call,
        ast.IfExp,
        ast.Load,
        ast.keyword,
    )

    for node in ast.walk(tree):
        if not isinstance(node, allowed_nodes):
            return f"unsupported expression element: {type(node).__name__}"

        if isinstance(node, ast.Name):
            if node.id.startswith("__"):
                return "expression may not reference dunder names"

        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name):
                return "function calls must be direct names"
            if node.func.id not in SAFE_CALL_NAMES:
                return f"function '{node.func.id}' is not allowed"
            for arg in node.args:
                if isinstance(arg, ast.Starred):
                    return "star-args are not allowed"
            for kw in node.keywords:
                if kw.arg is None:
                    return "keyword splats are not allowed"

    return None
