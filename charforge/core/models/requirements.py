"""Requirement expression models.

A requirement field such as

    Require="dwarfLevel >= 5","features.Rock Runner || rank.Athletics >= 2"

parses into a ``Requirement`` with one ``RequirementGroup`` per list element
(all groups must hold). Each group is a set of ``||`` alternatives, and each
alternative a ``/``-joined list of conjuncts. A conjunct is either a
``Comparison`` or a ``Choose`` directive.

The models are evaluated directly against a build's values by the randomizer
and the repair engine, and compiled into derivation rules by the compiler.
Both paths use ``compare_values`` so they agree.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from ...utils.comparisons import coerce_number, compare_values

ComparisonOp = Literal[">=", "<=", "==", "!=", "=~", "!~", ">", "<"]


class Comparison(BaseModel):
    """``<path> <op> <value>``; a bare path reads as ``<path> >= 1``."""

    kind: Literal["comparison"] = "comparison"
    path: str
    op: ComparisonOp = ">="
    value: int | float | str = 1

    def test(self, actual: Any) -> bool:
        return compare_values(actual, self.op, self.value)

    def evaluate(self, values: dict[str, Any]) -> bool:
        return self.test(values.get(self.path))

    @property
    def holds_when_unset(self) -> bool:
        """Whether the comparison is satisfied by an unset attribute."""
        return self.test(None)

    def paths(self) -> list[str]:
        return [self.path]

    def expression(self) -> str:
        """Rule expression testing ``source`` against this comparison."""
        return f"compare(source, {self.op!r}, {self.value!r})"

    def __str__(self) -> str:
        value = f"'{self.value}'" if isinstance(self.value, str) else self.value
        return f"{self.path} {self.op} {value}"


class Choose(BaseModel):
    """``Choose <count> from <domain>``.

    ``domain`` holds full attribute paths for a literal list. For ``any`` the
    domain is None and ``aggregate`` names the attribute that totals picks in
    the category (``allocated.feats`` or ``allocated.feats.Skill``).
    """

    kind: Literal["choose"] = "choose"
    count: int = Field(ge=0)
    category: str
    domain: list[str] | None = None
    aggregate: str | None = None

    def chosen(self, values: dict[str, Any]) -> list[str]:
        """Domain members already picked in ``values``."""
        return [p for p in self.domain or [] if coerce_number(values.get(p)) > 0]

    def evaluate(self, values: dict[str, Any]) -> bool:
        if self.domain is None:
            return coerce_number(values.get(self.aggregate)) >= self.count
        return len(self.chosen(values)) >= self.count

    @property
    def holds_when_unset(self) -> bool:
        return self.count <= 0

    def paths(self) -> list[str]:
        if self.domain is None:
            return [self.aggregate] if self.aggregate else []
        return list(self.domain)

    def __str__(self) -> str:
        if self.domain is None:
            sub = self.aggregate.split(".", 2)[2] if self.aggregate.count(".") >= 2 else ""
            return f"Choose {self.count} from any{' ' + sub if sub else ''}"
        return f"Choose {self.count} from {', '.join(self.domain)}"


Conjunct = Annotated[Comparison | Choose, Field(discriminator="kind")]


class Alternative(BaseModel):
    """Conjuncts that must all hold."""

    conjuncts: list[Conjunct]

    def evaluate(self, values: dict[str, Any]) -> bool:
        return all(c.evaluate(values) for c in self.conjuncts)

    def unmet(self, values: dict[str, Any]) -> list[Comparison | Choose]:
        return [c for c in self.conjuncts if not c.evaluate(values)]

    def __str__(self) -> str:
        return " / ".join(str(c) for c in self.conjuncts)


class RequirementGroup(BaseModel):
    """One list element of a Require/Imply field: any alternative suffices."""

    text: str
    alternatives: list[Alternative]

    def evaluate(self, values: dict[str, Any]) -> bool:
        return any(a.evaluate(values) for a in self.alternatives)


class Requirement(BaseModel):
    """A parsed Require/Imply field: every group must hold."""

    groups: list[RequirementGroup] = Field(default_factory=list)

    def evaluate(self, values: dict[str, Any]) -> bool:
        return all(g.evaluate(values) for g in self.groups)

    def unmet_groups(self, values: dict[str, Any]) -> list[RequirementGroup]:
        return [g for g in self.groups if not g.evaluate(values)]

    def violation_count(self, values: dict[str, Any]) -> int:
        """Number of unsatisfied groups; the value its signal takes."""
        return len(self.unmet_groups(values))

    def paths(self) -> set[str]:
        return {
            p
            for g in self.groups
            for a in g.alternatives
            for c in a.conjuncts
            for p in c.paths()
        }

    @property
    def text(self) -> str:
        return ", ".join(g.text for g in self.groups)
