"""Rule store and topologically-ordered evaluator.

The engine accepts ``target <- combine(source, op, expr)`` rules and turns an
input build into a full attribute mapping. Rules are keyed by
(target, source, op, expr) and carry a set of owners, so the same rule
registered by two entities survives until both are removed.

Per target, rules combine in a fixed order:

1. ``?`` conditions (evaluated even when the source is unset); any failure
   leaves the target unset
2. the input value, if the target is also an input
3. ``=`` overrides, then ``+=`` / ``+`` sums, ``^=`` / ``^`` maxima and
   ``v=`` / ``v`` minima. The ``=`` forms create the value when it is unset;
   the bare forms only adjust an existing value.

A rule whose source is unset, or whose expression yields None, contributes
nothing.
"""

import logging
from collections import Counter, defaultdict
from typing import Any, Iterable, Mapping

from ..core.models.rules import DerivationRule, RuleExpr, RuleOp
from ..utils.eval_safe import ConditionError, FormulaError, eval_condition, eval_formula
from ..utils.graphs import CircularDependencyError, find_path, topological_sort

logger = logging.getLogger(__name__)

_COMBINE_ORDER: tuple[str, ...] = ("=", "+=", "+", "^=", "^", "v=", "v")

RuleKey = tuple[str, str, str, RuleExpr]


class EvaluationError(Exception):
    """Raised when a rule expression fails during evaluation."""

    def __init__(self, rule: DerivationRule, cause: Exception):
        self.rule = rule
        self.cause = cause
        super().__init__(f"Evaluating {rule}: {cause}")


class RuleEngine:
    """Dependency-ordered attribute evaluator."""

    def __init__(self) -> None:
        self._rules: dict[RuleKey, DerivationRule] = {}
        self._owners: dict[RuleKey, set[str]] = {}
        self._by_target: dict[str, list[RuleKey]] = defaultdict(list)
        # dependency -> Counter of targets that read it
        self._edges: dict[str, Counter] = defaultdict(Counter)
        self._order: list[str] | None = None

    # ── Rule registration ──

    def add_rule(self, rule: DerivationRule, owner: str = "") -> bool:
        """Register a rule for ``owner``.

        Returns:
            True if the rule is new, False if it was already registered

        Raises:
            CircularDependencyError: If the rule would close a cycle
        """
        key = rule.key
        if key in self._rules:
            self._owners[key].add(owner)
            return False

        deps = rule.dependencies()
        for dep in deps:
            path = find_path(self._edges, rule.target, dep)
            if path is not None:
                cycle = " -> ".join(path + [rule.target])
                raise CircularDependencyError(f"Rule {rule} closes a cycle: {cycle}")

        self._rules[key] = rule
        self._owners[key] = {owner}
        self._by_target[rule.target].append(key)
        for dep in deps:
            self._edges[dep][rule.target] += 1
        self._order = None
        return True

    def define(
        self,
        target: str,
        source: str,
        op: RuleOp,
        expr: RuleExpr = None,
        owner: str = "",
    ) -> bool:
        """Shorthand for ``add_rule(DerivationRule(...), owner)``."""
        return self.add_rule(
            DerivationRule(target=target, source=source, op=op, expr=expr), owner
        )

    def remove_owner(self, owner: str) -> int:
        """Drop ``owner`` from every rule; delete rules left without owners.

        Returns:
            Number of rules deleted
        """
        removed = 0
        for key in [k for k, owners in self._owners.items() if owner in owners]:
            owners = self._owners[key]
            owners.discard(owner)
            if owners:
                continue
            rule = self._rules.pop(key)
            del self._owners[key]
            self._by_target[rule.target].remove(key)
            if not self._by_target[rule.target]:
                del self._by_target[rule.target]
            for dep in rule.dependencies():
                self._edges[dep][rule.target] -= 1
                if self._edges[dep][rule.target] <= 0:
                    del self._edges[dep][rule.target]
            removed += 1
        if removed:
            self._order = None
        return removed

    # ── Introspection ──

    def rules(self, target: str | None = None) -> list[DerivationRule]:
        if target is None:
            return list(self._rules.values())
        return [self._rules[k] for k in self._by_target.get(target, [])]

    def rules_owned_by(self, owner: str) -> list[DerivationRule]:
        return [self._rules[k] for k, owners in self._owners.items() if owner in owners]

    def owners_of(self, rule: DerivationRule) -> set[str]:
        return set(self._owners.get(rule.key, set()))

    def rule_keys(self) -> frozenset[RuleKey]:
        return frozenset(self._rules)

    def targets(self) -> set[str]:
        return set(self._by_target)

    def __len__(self) -> int:
        return len(self._rules)

    def evaluation_order(self) -> list[str]:
        """Targets in dependency order (cached until the rules change)."""
        if self._order is None:
            deps: dict[str, set[str]] = {}
            for target, keys in self._by_target.items():
                deps[target] = set()
                for key in keys:
                    deps[target] |= self._rules[key].dependencies()
            targets = set(self._by_target)
            self._order = [n for n in topological_sort(deps) if n in targets]
        return self._order

    # ── Evaluation ──

    def evaluate(self, build: Mapping[str, Any]) -> dict[str, Any]:
        """Compute every derived attribute for ``build``.

        Args:
            build: Input attributes (not modified)

        Returns:
            New mapping of inputs plus derived values; unset attributes are absent

        Raises:
            EvaluationError: If a rule expression fails
        """
        values: dict[str, Any] = {k: v for k, v in build.items() if v is not None}

        def attr(name: str, default: Any = None) -> Any:
            value = values.get(name)
            return default if value is None else value

        for target in self.evaluation_order():
            rules = [self._rules[k] for k in self._by_target[target]]
            value = self._combine(target, rules, build.get(target), values, attr)
            if value is None:
                values.pop(target, None)
            else:
                values[target] = value
        return values

    def _combine(
        self,
        target: str,
        rules: Iterable[DerivationRule],
        base: Any,
        values: dict[str, Any],
        attr,
    ) -> Any:
        by_op: dict[str, list[DerivationRule]] = defaultdict(list)
        for rule in rules:
            by_op[rule.op].append(rule)

        for rule in by_op.get("?", []):
            source = values.get(rule.source) if rule.source else None
            if rule.expr is None:
                holds = bool(source)
            else:
                try:
                    holds = eval_condition(
                        str(rule.expr), {"source": source, "attr": attr}, raise_on_error=True
                    )
                except ConditionError as e:
                    raise EvaluationError(rule, e) from e
            if not holds:
                return None

        value = base
        for op in _COMBINE_ORDER:
            for rule in by_op.get(op, []):
                if rule.source:
                    source = values.get(rule.source)
                    if source is None:
                        continue
                else:
                    source = None
                contribution = self._contribution(rule, source, attr)
                if contribution is None:
                    continue
                value = _apply(op, value, contribution)
        return value

    @staticmethod
    def _contribution(rule: DerivationRule, source: Any, attr) -> Any:
        if rule.expr is None:
            return source
        if not isinstance(rule.expr, str):
            return rule.expr
        try:
            return eval_formula(rule.expr, {"source": source, "attr": attr})
        except FormulaError as e:
            raise EvaluationError(rule, e) from e


def _apply(op: str, value: Any, contribution: Any) -> Any:
    if op == "=":
        return contribution
    if op in ("+=", "^=", "v="):
        if value is None:
            return contribution
    elif value is None:
        return None
    if op in ("+=", "+"):
        return value + contribution
    if op in ("^=", "^"):
        return max(value, contribution)
    return min(value, contribution)
