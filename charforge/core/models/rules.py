"""Compiled rule, signal and choice-instruction models."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from ...utils.expressions import extract_attribute_references
from .requirements import Requirement
from .validation import Severity

RuleOp = Literal["=", "+=", "+", "^=", "^", "v=", "v", "?"]
RuleExpr = str | int | float | None

SignalKind = Literal["requirement", "allocation", "special"]

AllocationCategory = Literal[
    "feats", "skills", "boosts", "languages", "spells", "selectableFeatures"
]


class DerivationRule(BaseModel):
    """``target <- combine(source, op, expr)``.

    ``source`` of "" makes the rule a constant. ``expr`` of None passes the
    source value through; a number is a literal contribution; a string is a
    restricted Python expression over ``source``.
    """

    model_config = ConfigDict(frozen=True)

    target: str
    source: str = ""
    op: RuleOp = "="
    expr: RuleExpr = None

    @property
    def key(self) -> tuple[str, str, str, RuleExpr]:
        return (self.target, self.source, self.op, self.expr)

    def dependencies(self) -> set[str]:
        deps = {self.source} if self.source else set()
        if isinstance(self.expr, str):
            deps |= extract_attribute_references(self.expr)
        return deps

    def __str__(self) -> str:
        return f"{self.target} <- {self.source or '<const>'} {self.op} {self.expr!r}"


class AllocationSpec(BaseModel):
    """Ties an allocation count to the inputs that satisfy it."""

    category: AllocationCategory
    count_attribute: str = Field(description="Owed picks, e.g. featCount.Class")
    allocated_attribute: str = Field(description="Aggregate of picks, e.g. allocated.languages")
    group: str | None = Field(
        default=None, description="Feat slot, selectable group or spell group"
    )


class SignalInfo(BaseModel):
    """Registry entry describing one violation signal attribute."""

    name: str
    kind: SignalKind
    owner: str
    requirement: Requirement | None = None
    trigger: str | None = Field(
        default=None, description="Input attribute whose choice raised the signal"
    )
    trigger_value: str | None = Field(
        default=None, description="Value of a single-choice trigger (e.g. armor name)"
    )
    allocation: AllocationSpec | None = None
    special: str | None = None
    special_target: str | None = None

    @property
    def severity(self) -> Severity:
        if self.name.startswith("sanityNotes."):
            return Severity.WARNING
        return Severity.ERROR

    def describe(self, value: int | float) -> str:
        if self.kind == "allocation" and self.allocation is not None:
            what = self.allocation.count_attribute
            if value > 0:
                return f"{value} more {what} chosen than allowed"
            return f"{-value} {what} still to choose"
        if self.kind == "requirement" and self.requirement is not None:
            return f"requires {self.requirement.text}"
        return f"{self.special or self.name} not satisfied"


class ChoiceInstruction(BaseModel):
    """A ``Choose N from <domain>`` embedded in a rank/selection phrase."""

    category: Literal["Skill", "Ability"]
    count: int
    domain: list[str] | None = Field(
        default=None, description="Member names; None means any member"
    )
    rank: int = Field(default=1, description="Rank a skill pick reaches")
    trigger: str = Field(description="Attribute that must be truthy for the choice to apply")
    owner: str
