"""Reference dependency-evaluation engine."""

from .evaluator import EvaluationError, RuleEngine

__all__ = ["EvaluationError", "RuleEngine"]
