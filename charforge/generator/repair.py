"""Constraint repair engine.

Walks the active violation signals of a build and mutates as few inputs as it
can to clear them:

- requirement signals: set one unmet conjunct that names a settable input,
  or drop the choice that raised the signal when nothing is settable
- allocation signals: trim random members on overage, ask the randomizer to
  fill on shortage
- special signals: the fixed ability fixes

Each pass re-evaluates after every fix and skips signals that already
cleared. The loop stops after ``max_passes`` or when a pass fixes nothing;
what remains is returned as validation issues, never raised.
"""

import logging
import random
from typing import Any, MutableMapping

from ..compiler import ABILITIES, SINGLE_CHOICES, RuleCompiler
from ..compiler.entities import SPELL_CASTING_FLOOR
from ..config import RepairConfig, get_config
from ..core.models import Choose, Comparison, SignalInfo, ValidationIssue
from ..utils.comparisons import coerce_number, compare_values
from .randomizer import Randomizer

logger = logging.getLogger(__name__)

Build = MutableMapping[str, Any]

# Counter inputs decremented, rather than removed, when trimming
_COUNTER_PREFIXES = ("skillsChosen.", "abilityBoosts.")

# Multi-choice inputs a requirement may name directly
_DIRECT_PREFIXES = ("languages.", "weapons.", "spells.", "feats.", "selectableFeatures.")


class RepairEngine:
    """Iterative repair of a build's violation signals."""

    def __init__(
        self,
        compiler: RuleCompiler,
        config: RepairConfig | None = None,
        randomizer: Randomizer | None = None,
        rng: random.Random | None = None,
    ):
        forge_config = get_config()
        self.compiler = compiler
        self.config = config or forge_config.repair
        self.rng = rng or random.Random(forge_config.seed)
        self.randomizer = randomizer or Randomizer(compiler, rng=self.rng)

    def repair_build(self, build: Build) -> list[ValidationIssue]:
        """Repair ``build`` in place.

        Args:
            build: Input attributes; mutated in place

        Returns:
            Signals still active after repair (empty when fully repaired)
        """
        for pass_number in range(1, self.config.max_passes + 1):
            active = self.compiler.active_signals(self.compiler.evaluate(build))
            if not active:
                break

            touched: set[str] = set()
            fixed = 0
            for info, _ in active:
                values = self.compiler.evaluate(build)
                value = coerce_number(values.get(info.name))
                if value == 0:
                    continue
                if self._repair_signal(build, info, value, values, touched):
                    fixed += 1

            logger.info("Repair pass %d: %d of %d signals addressed", pass_number, fixed, len(active))
            if fixed == 0:
                break

        return self.compiler.issues(self.compiler.evaluate(build))

    # ── Dispatch ──

    def _repair_signal(
        self,
        build: Build,
        info: SignalInfo,
        value: float,
        values: dict[str, Any],
        touched: set[str],
    ) -> bool:
        if info.kind == "allocation" and info.allocation is not None:
            if value > 0:
                return self._trim(build, info, value, touched)
            changed = self.randomizer.fill_allocation(build, info.allocation)
            touched.update(changed)
            return bool(changed)
        if info.kind == "requirement" and info.requirement is not None:
            return self._satisfy(build, info, values, touched)
        if info.special == "abilityModifierSum":
            return self._raise_low_abilities(build, values)
        if info.special == "abilityFloor" and info.special_target:
            return self._raise_ability(build, info.special_target, values)
        logger.debug("No repair for %s", info.name)
        return False

    # ── Allocations ──

    def _trim(self, build: Build, info: SignalInfo, excess: float, touched: set[str]) -> bool:
        """Remove random untouched members until the overage is gone.

        A removal that leaves the signal where it was is undone: a feat held
        in its own slot frees no General slot.
        """
        members = [
            m
            for m in self.compiler.allocation_members(info.allocation.allocated_attribute)
            if build.get(m) and m not in touched and not self._protected(m)
        ]
        self.rng.shuffle(members)
        removed = False
        for member in members:
            if excess <= 0:
                break
            previous = build[member]
            current = coerce_number(previous)
            if member.startswith(_COUNTER_PREFIXES) and current > excess:
                build[member] = current - excess
            else:
                del build[member]
            remaining = coerce_number(self.compiler.evaluate(build).get(info.name))
            if remaining >= excess:
                build[member] = previous
                continue
            excess = remaining
            logger.info("Repair %s: reduced %s", info.name, member)
            removed = True
        return removed

    # ── Requirements ──

    def _satisfy(self, build: Build, info: SignalInfo, values: dict[str, Any], touched: set[str]) -> bool:
        groups = info.requirement.unmet_groups(values)
        if not groups:
            return False
        group = self.rng.choice(groups)
        alternatives = list(group.alternatives)
        self.rng.shuffle(alternatives)
        for alternative in alternatives:
            unmet = alternative.unmet(values)
            self.rng.shuffle(unmet)
            for conjunct in unmet:
                if self._apply_conjunct(build, conjunct, values, touched):
                    logger.info("Repair %s: applied %s", info.name, conjunct)
                    return True
        return self._drop_trigger(build, info, touched)

    def _apply_conjunct(
        self,
        build: Build,
        conjunct: Comparison | Choose,
        values: dict[str, Any],
        touched: set[str],
    ) -> bool:
        if isinstance(conjunct, Choose):
            if conjunct.domain is None:
                return False
            missing = [p for p in conjunct.domain if p not in conjunct.chosen(values)]
            self.rng.shuffle(missing)
            needed = conjunct.count - len(conjunct.chosen(values))
            applied = 0
            for path in missing:
                if applied >= needed:
                    break
                if self._set_path(build, path, True, values, touched):
                    applied += 1
            return applied > 0

        path, op, expected = conjunct.path, conjunct.op, conjunct.value
        if path in SINGLE_CHOICES:
            return self._set_choice(build, path, op, expected, touched)
        if path in ABILITIES:
            return self._raise_to(build, path, op, expected, values, touched)
        if path.startswith("rank."):
            return self._raise_skill(build, path[len("rank."):], op, expected, values, touched)
        # Presence tests: positive conjuncts need the input, negative ones its removal
        wanted = not compare_values(None, op, expected)
        if wanted and not compare_values(1, op, expected):
            return False
        return self._set_path(build, path, wanted, values, touched)

    def _set_choice(self, build: Build, path: str, op: str, expected: Any, touched: set[str]) -> bool:
        if self._protected(path) or path in touched:
            return False
        options = [
            name
            for name in self.compiler.choice_domain(path)
            if name != build.get(path) and compare_values(name, op, expected)
        ]
        if not options:
            return False
        build[path] = self.rng.choice(options)
        touched.add(path)
        return True

    def _raise_to(
        self,
        build: Build,
        ability: str,
        op: str,
        expected: Any,
        values: dict[str, Any],
        touched: set[str],
    ) -> bool:
        if op not in (">=", ">", "==") or isinstance(expected, str):
            return False
        if self._protected(ability) or ability in touched:
            return False
        target = expected + 1 if op == ">" else expected
        base = build.get(ability)
        if base is None:
            build[ability] = target
        else:
            build[ability] = base + (target - coerce_number(values.get(ability)))
        touched.add(ability)
        return True

    def _raise_skill(
        self,
        build: Build,
        skill: str,
        op: str,
        expected: Any,
        values: dict[str, Any],
        touched: set[str],
    ) -> bool:
        if op not in (">=", ">", "==") or isinstance(expected, str):
            return False
        if self.compiler.definition("Skill", skill) is None:
            return False
        attribute = f"skillsChosen.{skill}"
        if self._protected(attribute) or attribute in touched:
            return False
        target = expected + 1 if op == ">" else expected
        increase = target - coerce_number(values.get(f"rank.{skill}"))
        if increase <= 0:
            return False
        build[attribute] = coerce_number(build.get(attribute)) + increase
        touched.add(attribute)
        return True

    def _set_path(
        self,
        build: Build,
        path: str,
        present: bool,
        values: dict[str, Any],
        touched: set[str],
    ) -> bool:
        """Add or remove the input behind a presence-style path."""
        attribute = self._input_for(path)
        if attribute is None or self._protected(attribute) or attribute in touched:
            return False
        if present:
            if build.get(attribute):
                return False
            build[attribute] = 1
        else:
            if not build.get(attribute):
                return False
            del build[attribute]
        touched.add(attribute)
        return True

    def _input_for(self, path: str) -> str | None:
        """Input attribute that grants ``path``, if the build can hold one."""
        head, _, name = path.partition(".")
        if head in ("features", "feats"):
            if self.compiler.definition("Feat", name) is not None:
                return f"feats.{name}"
            if self.compiler.selectable_group(name) is not None:
                return f"selectableFeatures.{name}"
            return None
        if path.startswith(_DIRECT_PREFIXES):
            return path
        return None

    def _drop_trigger(self, build: Build, info: SignalInfo, touched: set[str]) -> bool:
        """Remove the choice that raised an unfixable requirement signal."""
        trigger = info.trigger
        if trigger is None:
            return False
        if trigger.startswith("features."):
            trigger = self._input_for(trigger)
            if trigger is None:
                return False
        if trigger not in build or trigger in touched or self._protected(trigger):
            return False
        if info.trigger_value is not None and build.get(trigger) != info.trigger_value:
            return False
        logger.info("Repair %s: dropping %s=%r", info.name, trigger, build[trigger])
        del build[trigger]
        touched.add(trigger)
        return True

    # ── Special cases ──

    def _raise_low_abilities(self, build: Build, values: dict[str, Any]) -> bool:
        """+2 to every ability whose modifier is not positive."""
        raised = False
        for ability in ABILITIES:
            if self._protected(ability) or build.get(ability) is None:
                continue
            if coerce_number(values.get(f"{ability}Modifier")) <= 0:
                build[ability] = build[ability] + 2
                raised = True
        return raised

    def _raise_ability(self, build: Build, ability: str, values: dict[str, Any]) -> bool:
        """Raise a casting ability to the casting floor."""
        if self._protected(ability):
            return False
        shortfall = SPELL_CASTING_FLOOR - coerce_number(values.get(ability))
        if shortfall <= 0:
            return False
        build[ability] = coerce_number(build.get(ability)) + shortfall
        return True

    def _protected(self, attribute: str) -> bool:
        return attribute in self.config.protected
