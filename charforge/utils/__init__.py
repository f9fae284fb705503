"""Pure utility functions for Charforge.

This module contains pure functions with ZERO dependencies on charforge models
or other charforge modules. These are foundational utilities that can be
imported from anywhere without circular import risk.

Modules:
- graphs: Topological sort and cycle detection
- expressions: AST parsing and syntax validation
- comparisons: Requirement comparison semantics
- eval_safe: Safe expression evaluation
"""

from .graphs import topological_sort, find_path, CircularDependencyError
from .expressions import (
    extract_names_from_expression,
    extract_attribute_references,
    validate_expression_syntax,
    BUILTIN_NAMES,
)
from .comparisons import (
    compare_values,
    coerce_number,
    matches,
    COMPARISON_OPS,
)
from .eval_safe import (
    eval_safe,
    eval_formula,
    eval_condition,
    FormulaError,
    ConditionError,
    SAFE_BUILTINS,
)

__all__ = [
    # Graphs
    "topological_sort",
    "find_path",
    "CircularDependencyError",
    # Expressions
    "extract_names_from_expression",
    "extract_attribute_references",
    "validate_expression_syntax",
    "BUILTIN_NAMES",
    # Comparisons
    "compare_values",
    "coerce_number",
    "matches",
    "COMPARISON_OPS",
    # Eval
    "eval_safe",
    "eval_formula",
    "eval_condition",
    "FormulaError",
    "ConditionError",
    "SAFE_BUILTINS",
]
