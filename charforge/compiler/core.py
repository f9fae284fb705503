"""Rule compiler: catalog entities in, derivation rules and signals out.

The compiler owns a ``RuleEngine`` and keeps, per entity, the stack of
attribute strings it was compiled from (the top one is live; lower ones are
shadowed base definitions) and the registrations the live definition made.

Compiling an ancestry or class recompiles the feats typed by it, so the
final rule set does not depend on the order entities arrive in.
"""

import logging
from typing import Any, Callable, Mapping

from ..core.models import (
    Catalog,
    ChoiceInstruction,
    SignalInfo,
    Severity,
    ValidationError,
    ValidationIssue,
    ValidationResult,
    ValidationWarning,
)
from ..engine import RuleEngine
from ..parser import parse_attributes
from ..utils.comparisons import coerce_number
from .context import CatalogError, EntityContext, Registrations
from .core_rules import compile_core_rules
from .entities import (
    compile_alignment,
    compile_ancestry,
    compile_background,
    compile_class,
    compile_deity,
    compile_feat,
    compile_feature,
    compile_language,
    compile_school,
    compile_skill,
)
from .equipment import compile_armor, compile_shield, compile_spell, compile_weapon

logger = logging.getLogger(__name__)

KIND_EMITTERS: dict[str, Callable[[EntityContext], None]] = {
    "Alignment": compile_alignment,
    "Ancestry": compile_ancestry,
    "Armor": compile_armor,
    "Background": compile_background,
    "Class": compile_class,
    "Deity": compile_deity,
    "Feat": compile_feat,
    "Feature": compile_feature,
    "Language": compile_language,
    "School": compile_school,
    "Shield": compile_shield,
    "Skill": compile_skill,
    "Spell": compile_spell,
    "Weapon": compile_weapon,
}

# Single-valued inputs and the entity kind naming their legal values
SINGLE_CHOICES = {
    "ancestry": "Ancestry",
    "background": "Background",
    "class": "Class",
    "deity": "Deity",
    "alignment": "Alignment",
    "armor": "Armor",
    "shield": "Shield",
}

# Kinds whose compilation changes the slot of feats typed by them
_SLOT_KINDS = ("Ancestry", "Class")

CORE_OWNER = "Core:rules"


class RuleCompiler:
    """Compiles entity definitions into an engine and a signal registry."""

    def __init__(self, engine: RuleEngine | None = None):
        self.engine = engine or RuleEngine()
        self._definitions: dict[tuple[str, str], list[str]] = {}
        self._registrations: dict[str, Registrations] = {}

        ctx = EntityContext(self, "Core", "rules", {})
        compile_core_rules(ctx)
        ctx.flush_sums()
        self._registrations[ctx.owner] = ctx.bag

    # ── Compilation ──

    def compile_entity(self, kind: str, name: str, attributes: str = "") -> bool:
        """Compile (or redefine) one entity.

        A definition identical to the live one is a no-op. A different one
        shadows it: the live rules are retracted and the new ones emitted.

        Args:
            kind: Entity kind, e.g. "Feat"
            name: Entity name
            attributes: Attribute string in the catalog mini-language

        Returns:
            True if rules changed, False for an identical redefinition

        Raises:
            CatalogError: If the definition cannot be compiled; the previous
                definition, if any, is restored
        """
        if kind not in KIND_EMITTERS:
            raise CatalogError(f"unknown entity kind {kind!r}")
        attributes = attributes or ""
        key = (kind, name)
        stack = self._definitions.setdefault(key, [])
        if stack and stack[-1] == attributes:
            logger.debug("%s:%s unchanged", kind, name)
            return False

        previous = stack[-1] if stack else None
        self._retract(kind, name)
        stack.append(attributes)
        try:
            self._emit(kind, name, attributes)
        except CatalogError as e:
            logger.error("Cannot compile %s:%s: %s", kind, name, e)
            self._retract(kind, name)
            stack.pop()
            if previous is not None:
                self._emit(kind, name, previous)
            else:
                del self._definitions[key]
            raise

        self._refresh_dependents(kind, name)
        return True

    def remove_entity(self, kind: str, name: str) -> None:
        """Remove the live definition of an entity.

        A shadowed base definition, if any, is compiled back in.

        Raises:
            CatalogError: If the entity is not compiled
        """
        key = (kind, name)
        stack = self._definitions.get(key)
        if not stack:
            raise CatalogError(f"{kind}:{name} is not compiled")

        self._retract(kind, name)
        stack.pop()
        if stack:
            self._emit(kind, name, stack[-1])
        else:
            del self._definitions[key]
        self._refresh_dependents(kind, name)

    def compile_catalog(self, catalog: Catalog, strict: bool = True) -> ValidationResult:
        """Compile every entity of a catalog, then check references.

        Args:
            catalog: Catalog to compile
            strict: Raise if any entity failed or any reference is unresolved

        Returns:
            ValidationResult with entity failures, unresolved references and
            parse diagnostics

        Raises:
            CatalogError: In strict mode, on entity failures or bad references
        """
        result = ValidationResult()
        for definition in catalog.definitions():
            try:
                self.compile_entity(definition.kind, definition.name, definition.attributes)
            except CatalogError as e:
                result.add(
                    ValidationError(
                        category="catalog",
                        location=f"{definition.kind}:{definition.name}",
                        message=str(e),
                    )
                )

        result.extend(self.check_references())
        result.extend(self.diagnostics)
        logger.info(
            "Compiled catalog %r: %d entities, %d rules, %d issues",
            catalog.name,
            len(self._definitions),
            len(self.engine),
            len(result.issues),
        )

        fatal = [i for i in result.errors if i.category in ("catalog", "reference")]
        if strict and fatal:
            summary = "; ".join(str(i) for i in fatal[:5])
            more = f" (and {len(fatal) - 5} more)" if len(fatal) > 5 else ""
            raise CatalogError(f"{len(fatal)} catalog errors: {summary}{more}")
        return result

    def check_references(self) -> list[ValidationIssue]:
        """Unresolved references and slotless feats across the live entities."""
        known = {kind: set(self.entity_names(kind)) for kind in KIND_EMITTERS}
        features: set[str] = set()
        for bag in self._registrations.values():
            features |= bag.features

        issues = []
        for owner, bag in sorted(self._registrations.items()):
            for kind, name, field_name in bag.references:
                found = name in features if kind == "feature" else name in known.get(kind, ())
                if not found:
                    issues.append(
                        ValidationError(
                            category="reference",
                            location=f"{owner}.{field_name}",
                            message=f"unknown {kind.lower()} {name!r}",
                        )
                    )
            if owner.startswith("Feat:") and bag.feat_slot is None:
                issues.append(
                    ValidationError(
                        category="reference",
                        location=f"{owner}.Type",
                        message=f"no feat slot for types {bag.feat_types}",
                        suggestion="Type must name a compiled ancestry or class, Skill or General",
                    )
                )
        return issues

    def _emit(self, kind: str, name: str, attributes: str) -> None:
        ctx = EntityContext(self, kind, name, {})
        self._registrations[ctx.owner] = ctx.bag
        ctx.attrs = ctx.parse("attributes", parse_attributes, attributes) or {}
        KIND_EMITTERS[kind](ctx)
        ctx.flush_sums()
        logger.debug("Compiled %s (%d rules)", ctx.owner, len(self.engine.rules_owned_by(ctx.owner)))

    def _retract(self, kind: str, name: str) -> None:
        owner = f"{kind}:{name}"
        self.engine.remove_owner(owner)
        self._registrations.pop(owner, None)

    def _refresh_dependents(self, kind: str, name: str) -> None:
        if kind not in _SLOT_KINDS:
            return
        for feat_kind, feat_name in list(self._definitions):
            if feat_kind != "Feat":
                continue
            bag = self._registrations.get(f"Feat:{feat_name}")
            if bag is not None and name in bag.feat_types:
                logger.debug("Recompiling Feat:%s after %s:%s changed", feat_name, kind, name)
                self._retract("Feat", feat_name)
                self._emit("Feat", feat_name, self._definitions[("Feat", feat_name)][-1])

    # ── Registry queries ──

    def entity_names(self, kind: str) -> list[str]:
        return sorted(n for k, n in self._definitions if k == kind)

    def definition(self, kind: str, name: str) -> str | None:
        """Live attribute string of an entity."""
        stack = self._definitions.get((kind, name))
        return stack[-1] if stack else None

    def choice_domain(self, attribute: str) -> list[str]:
        """Legal values of a single-choice input such as ``ancestry``."""
        kind = SINGLE_CHOICES.get(attribute)
        if kind is None:
            raise KeyError(f"{attribute!r} is not a single-choice input")
        return self.entity_names(kind)

    def signals(self) -> dict[str, SignalInfo]:
        result: dict[str, SignalInfo] = {}
        for bag in self._registrations.values():
            result.update(bag.signals)
        return result

    def signal(self, name: str) -> SignalInfo | None:
        for bag in self._registrations.values():
            if name in bag.signals:
                return bag.signals[name]
        return None

    def active_signals(self, values: Mapping[str, Any]) -> list[tuple[SignalInfo, float]]:
        """Signals non-zero in ``values``, sorted by name."""
        active = []
        for name, info in sorted(self.signals().items()):
            value = coerce_number(values.get(name))
            if value != 0:
                active.append((info, value))
        return active

    def issues(self, values: Mapping[str, Any]) -> list[ValidationIssue]:
        """Active signals as issues; ``sanityNotes.*`` are warnings."""
        issues = []
        for info, value in self.active_signals(values):
            make = ValidationWarning if info.severity == Severity.WARNING else ValidationError
            issues.append(
                make(
                    category=info.kind,
                    location=info.name,
                    message=info.describe(value),
                    value=value,
                )
            )
        return issues

    def instructions(
        self, category: str | None = None, values: Mapping[str, Any] | None = None
    ) -> list[ChoiceInstruction]:
        """Choice instructions, optionally limited to a category and to active triggers."""
        result = []
        for owner in sorted(self._registrations):
            for instruction in self._registrations[owner].instructions:
                if category is not None and instruction.category != category:
                    continue
                if values is not None and not values.get(instruction.trigger):
                    continue
                result.append(instruction)
        return result

    def allocation_members(self, allocated_attribute: str) -> list[str]:
        """Input attributes that count toward an ``allocated.*`` aggregate."""
        members: set[str] = set()
        for bag in self._registrations.values():
            members |= bag.members.get(allocated_attribute, set())
        return sorted(members)

    def feat_slot(self, name: str) -> str | None:
        bag = self._registrations.get(f"Feat:{name}")
        return bag.feat_slot if bag is not None else None

    def selectable_group(self, name: str) -> str | None:
        """Group a selectable feature belongs to, if any."""
        for bag in self._registrations.values():
            if name in bag.selectables:
                return bag.selectables[name]
        return None

    @property
    def diagnostics(self) -> list[ValidationIssue]:
        """Parse failures recorded by the live definitions."""
        return [d for owner in sorted(self._registrations) for d in self._registrations[owner].diagnostics]

    # ── Evaluation ──

    def evaluate(self, build: Mapping[str, Any]) -> dict[str, Any]:
        return self.engine.evaluate(build)

    def validate(self, build: Mapping[str, Any]) -> ValidationResult:
        """Active signals of a build as validation issues."""
        return ValidationResult(issues=self.issues(self.evaluate(build)))


def load_compiler(catalog: Catalog | None = None, strict: bool = True) -> RuleCompiler:
    """Compiler loaded with ``catalog`` (the bundled sample catalog by default)."""
    compiler = RuleCompiler()
    compiler.compile_catalog(catalog or Catalog.default(), strict=strict)
    return compiler
