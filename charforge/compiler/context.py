"""Per-entity compilation context.

An ``EntityContext`` is handed to each kind emitter. It registers rules under
the entity's owner tag, records everything else the entity contributes
(signals, choice instructions, allocation members, references) in a
``Registrations`` bag, and turns field-level parse failures into diagnostics.
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from ..core.models import (
    AllocationSpec,
    ChoiceInstruction,
    DerivationRule,
    Requirement,
    SignalInfo,
    ValidationError,
    ValidationIssue,
)
from ..core.models.rules import RuleExpr, RuleOp
from ..parser import AttributeValue, ParseError, attr_list, attr_value
from ..utils.expressions import validate_expression_syntax
from ..utils.graphs import CircularDependencyError

if TYPE_CHECKING:
    from .core import RuleCompiler

logger = logging.getLogger(__name__)

ABILITIES = (
    "strength",
    "dexterity",
    "constitution",
    "intelligence",
    "wisdom",
    "charisma",
)


class CatalogError(Exception):
    """Raised for catalog programming errors (bad references, bad structure)."""

    pass


def prefix_of(name: str) -> str:
    """camelCase attribute prefix for an entity name.

    Example:
        >>> prefix_of("Half-Elf"), prefix_of("Field Medic")
        ('halfElf', 'fieldMedic')
    """
    words = re.sub(r"[^A-Za-z0-9]+", " ", name).split()
    if not words:
        raise CatalogError(f"cannot derive an attribute prefix from {name!r}")
    return words[0].lower() + "".join(w[:1].upper() + w[1:] for w in words[1:])


def ability_name(value: AttributeValue) -> str:
    """Normalize an ability reference ("Strength" -> "strength")."""
    name = str(value).strip().lower()
    if name not in ABILITIES:
        raise CatalogError(f"unknown ability {value!r}")
    return name


@dataclass
class Registrations:
    """Everything one entity contributed besides its rules."""

    signals: dict[str, SignalInfo] = field(default_factory=dict)
    instructions: list[ChoiceInstruction] = field(default_factory=list)
    members: dict[str, set[str]] = field(default_factory=lambda: defaultdict(set))
    features: set[str] = field(default_factory=set)
    selectables: dict[str, str] = field(default_factory=dict)
    references: list[tuple[str, str, str]] = field(default_factory=list)
    diagnostics: list[ValidationIssue] = field(default_factory=list)
    feat_slot: str | None = None
    feat_types: list[str] = field(default_factory=list)


class EntityContext:
    """Compilation state for one entity definition."""

    def __init__(
        self,
        compiler: "RuleCompiler",
        kind: str,
        name: str,
        attrs: dict[str, list[AttributeValue]],
    ):
        self.compiler = compiler
        self.kind = kind
        self.name = name
        self.attrs = attrs
        self.owner = f"{kind}:{name}"
        self.bag = Registrations()
        self._sums: dict[tuple[str, str], int] = defaultdict(int)

    # ── Attribute access ──

    def value(self, key: str, default: AttributeValue | None = None) -> AttributeValue | None:
        return attr_value(self.attrs, key, default)

    def values(self, key: str) -> list[AttributeValue]:
        return attr_list(self.attrs, key)

    def int_value(self, key: str, default: int | None = None) -> int | None:
        value = self.value(key)
        if value is None:
            return default
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise CatalogError(f"{self.owner}.{key} must be a number, got {value!r}")
        return int(value)

    def parse(self, field_name: str, fn: Callable[..., Any], *args: Any) -> Any:
        """Run a parser on one field fragment.

        A ParseError becomes a diagnostic naming this entity and field; the
        fragment registers nothing and None is returned.
        """
        try:
            return fn(*args)
        except ParseError as e:
            located = e.located(self.owner, field_name)
            logger.error("Skipping unparseable fragment: %s", located)
            self.bag.diagnostics.append(
                ValidationError(
                    category="parse",
                    location=f"{self.owner}.{field_name}",
                    message=str(located),
                )
            )
            return None

    # ── Registration ──

    def rule(self, target: str, source: str, op: RuleOp, expr: RuleExpr = None) -> None:
        if isinstance(expr, str):
            error = validate_expression_syntax(expr)
            if error:
                raise CatalogError(f"{self.owner}: bad expression {expr!r} for {target}: {error}")
        rule = DerivationRule(target=target, source=source, op=op, expr=expr)
        try:
            self.compiler.engine.add_rule(rule, self.owner)
        except CircularDependencyError as e:
            raise CatalogError(f"{self.owner}: {e}") from e

    def lookup(self, target: str, choice: str, value: Any) -> None:
        """``target`` takes ``value`` while input ``choice`` names this entity."""
        self.rule(target, choice, "=", f"{value!r} if source == {self.name!r} else None")

    def add_sum(self, target: str, trigger: str, amount: int) -> None:
        """Accumulate a ``+=`` contribution emitted once per (target, trigger)."""
        self._sums[(target, trigger)] += amount

    def flush_sums(self) -> None:
        for (target, trigger), amount in sorted(self._sums.items()):
            self.rule(target, trigger, "+=", f"{amount} if source else None")
        self._sums.clear()

    def signal(self, info: SignalInfo) -> None:
        self.bag.signals[info.name] = info

    def allocation_signal(
        self,
        category: str,
        count_attribute: str,
        allocated_attribute: str,
        group: str | None = None,
    ) -> str:
        """Signal equal to allocated minus owed picks."""
        name = f"validationNotes.{count_attribute}"
        self.rule(name, count_attribute, "=", "-source")
        self.rule(name, allocated_attribute, "+=", None)
        self.signal(
            SignalInfo(
                name=name,
                kind="allocation",
                owner=self.owner,
                allocation=AllocationSpec(
                    category=category,
                    count_attribute=count_attribute,
                    allocated_attribute=allocated_attribute,
                    group=group,
                ),
            )
        )
        return name

    def member(self, allocated_attribute: str, input_path: str) -> None:
        """Count truthy ``input_path`` into ``allocated_attribute``."""
        self.rule(allocated_attribute, input_path, "+=", "1 if source else None")
        self.bag.members[allocated_attribute].add(input_path)

    def requirement_signal(
        self,
        name: str,
        requirement: Requirement,
        trigger: str,
        trigger_value: str | None = None,
        removable: bool = True,
    ) -> None:
        from .requirements import compile_requirement

        test = "source" if trigger_value is None else f"source == {trigger_value!r}"
        compile_requirement(self, name, requirement, trigger, test)
        self.signal(
            SignalInfo(
                name=name,
                kind="requirement",
                owner=self.owner,
                requirement=requirement,
                trigger=trigger if removable else None,
                trigger_value=trigger_value,
            )
        )
        for path in requirement.paths():
            self.reference_path(path, "Require")

    def instruction(self, instruction: ChoiceInstruction) -> None:
        self.bag.instructions.append(instruction)

    def feature(self, name: str) -> None:
        self.bag.features.add(name)

    def reference(self, kind: str, name: str, field_name: str) -> None:
        self.bag.references.append((kind, name, field_name))

    def reference_path(self, path: str, field_name: str) -> None:
        """Record references implied by an attribute path."""
        head, _, rest = path.partition(".")
        if not rest:
            return
        if head in ("features", "feats"):
            self.reference("feature" if head == "features" else "Feat", rest, field_name)
        elif head in ("rank", "skillsChosen", "grantedRank"):
            self.reference("Skill", rest, field_name)
        elif head == "languages":
            self.reference("Language", rest, field_name)
