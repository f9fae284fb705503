"""Allocation randomizer.

Fills unset or under-allocated build choices with random legal picks. Every
pick is provisional: it is committed, the build re-evaluated, and the pick
rolled back if it raised a requirement or sanity signal that was not already
active. Allocation signals are expected to move while filling and never cause
a rejection.
"""

import logging
import math
import random
from typing import Any, Callable, MutableMapping

from ..compiler import ABILITIES, SINGLE_CHOICES, RuleCompiler
from ..config import RandomizerConfig, get_config
from ..core.models import AllocationSpec
from ..utils.comparisons import coerce_number

logger = logging.getLogger(__name__)

CATEGORIES = (
    "level",
    "abilities",
    "alignment",
    "ancestry",
    "background",
    "class",
    "deity",
    "boosts",
    "feats",
    "selectableFeatures",
    "skills",
    "languages",
    "spells",
    "armor",
    "shield",
    "weapons",
)

# Order used to generate a whole character; later categories depend on
# counts and grants produced by earlier ones.
BUILD_ORDER = (
    "level",
    "abilities",
    "ancestry",
    "alignment",
    "background",
    "deity",
    "class",
    "selectableFeatures",
    "boosts",
    "skills",
    "languages",
    "feats",
    "spells",
    "armor",
    "weapons",
    "shield",
)

# A pick in one of these can owe picks in another (a feat granting skill
# choices), so they are revisited until nothing changes.
ALLOCATION_CATEGORIES = (
    "selectableFeatures",
    "boosts",
    "skills",
    "languages",
    "feats",
    "spells",
)
SETTLE_PASSES = 4

# Highest skill rank reachable at a character level
SKILL_RANK_STEPS = (3, 7, 15)
MAX_SKILL_RANK = 4

Build = MutableMapping[str, Any]
Acceptance = Callable[[dict[str, Any], str], bool]


def skill_rank_ceiling(level: int) -> int:
    """Trained at 1, Expert at 3, Master at 7, Legendary at 15."""
    return min(1 + sum(1 for step in SKILL_RANK_STEPS if level >= step), MAX_SKILL_RANK)


class Randomizer:
    """Random legal picks for one build category at a time."""

    def __init__(
        self,
        compiler: RuleCompiler,
        config: RandomizerConfig | None = None,
        rng: random.Random | None = None,
    ):
        forge_config = get_config()
        self.compiler = compiler
        self.config = config or forge_config.randomizer
        self.rng = rng or random.Random(forge_config.seed)

    # ── Entry points ──

    def randomize_attribute(self, build: Build, category: str) -> list[str]:
        """Fill one category of ``build`` in place.

        Args:
            build: Input attributes; mutated in place
            category: One of CATEGORIES

        Returns:
            Input attributes that were set or changed

        Raises:
            ValueError: If ``category`` is unknown
        """
        if category not in CATEGORIES:
            raise ValueError(f"Unknown category {category!r}; expected one of {', '.join(CATEGORIES)}")

        if category == "level":
            changed = self._randomize_level(build)
        elif category == "abilities":
            changed = self._randomize_abilities(build)
        elif category in SINGLE_CHOICES:
            changed = self._randomize_choice(build, category)
        elif category == "weapons":
            changed = self._randomize_weapons(build)
        else:
            changed = []
            for spec in self._allocations(build, category):
                changed.extend(self.fill_allocation(build, spec))

        logger.debug("Randomized %s: %s", category, changed or "nothing to do")
        return changed

    def randomize_build(self, build: Build) -> Build:
        """Fill every category of ``build`` in dependency order.

        The allocation categories are then revisited until a pass changes
        nothing, so picks owed by late choices are filled too.
        """
        for category in BUILD_ORDER:
            self.randomize_attribute(build, category)
        for settle_pass in range(1, SETTLE_PASSES + 1):
            changed = []
            for category in ALLOCATION_CATEGORIES:
                changed.extend(self.randomize_attribute(build, category))
            if not changed:
                break
            logger.debug("Settle pass %d filled %s", settle_pass, changed)
        return build

    def fill_allocation(self, build: Build, spec: AllocationSpec) -> list[str]:
        """Pick members until one allocation count is met or the pool runs dry."""
        values = self.compiler.evaluate(build)
        shortage = -coerce_number(values.get(f"validationNotes.{spec.count_attribute}"))
        if shortage <= 0:
            return []

        if spec.category in ("boosts", "skills"):
            return self._allocate_increments(build, spec)

        accept = None
        if spec.category == "feats":
            candidates = self._feat_candidates(values, spec.group)
            # A feat lands in its own slot while that has room
            accept = _reduces_shortage(f"validationNotes.{spec.count_attribute}", -shortage)
        else:
            candidates = [
                m
                for m in self.compiler.allocation_members(spec.allocated_attribute)
                if not values.get(m)
            ]
            if spec.category == "selectableFeatures":
                accept = _grants_feature("selectableFeatures.")

        changed = self._draw(build, [(c, 1) for c in candidates], int(shortage), accept)
        if len(changed) < shortage:
            logger.info(
                "%s short by %d after drawing from %d candidates",
                spec.count_attribute,
                shortage - len(changed),
                len(candidates),
            )
        return changed

    # ── Categories ──

    def _randomize_level(self, build: Build) -> list[str]:
        if build.get("level") is not None:
            return []
        # 1..8, each level half as likely as the one below it
        build["level"] = 9 - int(math.log2(self.rng.randint(2, 511)))
        return ["level"]

    def _roll_ability(self) -> int:
        if self.config.ability_method == "3d6":
            return sum(self.rng.randint(1, 6) for _ in range(3))
        rolls = sorted(self.rng.randint(1, 6) for _ in range(4))
        return sum(rolls[1:])

    def _randomize_abilities(self, build: Build) -> list[str]:
        unset = [a for a in ABILITIES if build.get(a) is None]
        if not unset:
            return []
        baseline = self._problems(build)
        for attempt in range(max(self.config.ability_retries, 1)):
            for ability in unset:
                build[ability] = self._roll_ability()
            new = self._problems(build) - baseline
            if not new:
                break
            logger.debug("Ability roll %d raised %s, rerolling", attempt + 1, sorted(new))
        return unset

    def _randomize_choice(self, build: Build, attribute: str) -> list[str]:
        if build.get(attribute) is not None:
            return []
        options = [(attribute, name) for name in self.compiler.choice_domain(attribute)]
        return self._draw(build, options, 1)

    def _randomize_weapons(self, build: Build) -> list[str]:
        weapons = [f"weapons.{w}" for w in self.compiler.entity_names("Weapon")]
        owned = [w for w in weapons if build.get(w)]
        needed = self.config.weapon_count - len(owned)
        if needed <= 0:
            return []
        candidates = [(w, 1) for w in weapons if not build.get(w)]
        return self._draw(build, candidates, needed)

    # ── Feats ──

    def _feat_candidates(self, values: dict[str, Any], slot: str | None) -> list[str]:
        """Unchosen feats with met prerequisites; any slotted feat may fill General."""
        candidates = []
        for name in self.compiler.entity_names("Feat"):
            own_slot = self.compiler.feat_slot(name)
            if own_slot is None or (slot != "General" and own_slot != slot):
                continue
            if values.get(f"feats.{name}") or values.get(f"features.{name}"):
                continue
            info = self.compiler.signal(f"validationNotes.feats.{name}")
            if info is not None and info.requirement is not None:
                if not info.requirement.evaluate(values):
                    continue
            candidates.append(f"feats.{name}")
        return candidates

    # ── Rank increments (skills, ability boosts) ──

    def _allocate_increments(self, build: Build, spec: AllocationSpec) -> list[str]:
        """Spend owed skill increases or ability boosts.

        Restricted-domain choices go first, each reduced by the domain
        members already picked; the generic remainder then goes to distinct
        targets per pass.
        """
        if spec.category == "boosts":
            prefix, kind, targets = "abilityBoosts.", "Ability", list(ABILITIES)
        else:
            prefix, kind, targets = "skillsChosen.", "Skill", self.compiler.entity_names("Skill")

        signal = f"validationNotes.{spec.count_attribute}"
        changed: list[str] = []
        values = self.compiler.evaluate(build)
        baseline = self._problems(build, values)

        for instruction in self.compiler.instructions(kind, values):
            if not instruction.domain:
                continue
            domain = [d for d in instruction.domain if d in targets]
            chosen = [d for d in domain if coerce_number(build.get(prefix + d)) > 0]
            need = instruction.count - len(chosen)
            eligible = [
                d
                for d in domain
                if d not in chosen and self._can_raise(kind, d, values, instruction.rank)
            ]
            self.rng.shuffle(eligible)
            for target in eligible:
                if need <= 0:
                    break
                if self._increment(build, prefix + target, baseline):
                    need -= 1
                    changed.append(prefix + target)
            values = self.compiler.evaluate(build)

        remaining = -coerce_number(values.get(signal))
        while remaining > 0:
            progress = False
            pool = [t for t in targets if self._can_raise(kind, t, values)]
            self.rng.shuffle(pool)
            for target in pool:
                if remaining <= 0:
                    break
                if self._increment(build, prefix + target, baseline):
                    remaining -= 1
                    progress = True
                    changed.append(prefix + target)
            if not progress:
                break
            values = self.compiler.evaluate(build)
        return changed

    def _can_raise(self, kind: str, target: str, values: dict[str, Any], rank: int | None = None) -> bool:
        if kind == "Ability":
            return True
        current = coerce_number(values.get(f"rank.{target}"))
        if rank is not None and current != rank - 1:
            return False
        return current + 1 <= skill_rank_ceiling(int(coerce_number(values.get("level"))))

    def _increment(self, build: Build, attribute: str, baseline: set[str]) -> bool:
        previous = build.get(attribute)
        build[attribute] = coerce_number(previous) + 1
        if self._problems(build) - baseline:
            _restore(build, attribute, previous)
            return False
        return True

    # ── Drawing ──

    def _draw(
        self,
        build: Build,
        candidates: list[tuple[str, Any]],
        needed: int,
        accept: Acceptance | None = None,
    ) -> list[str]:
        """Commit up to ``needed`` candidates that raise no new signal."""
        if needed <= 0 or not candidates:
            return []
        pool = list(candidates)
        self.rng.shuffle(pool)
        pool = pool[: max(self.config.candidate_cap, needed)]

        baseline = self._problems(build)
        picked: list[str] = []
        for attribute, value in pool:
            if len(picked) >= needed:
                break
            previous = build.get(attribute)
            build[attribute] = value
            values = self.compiler.evaluate(build)
            problems = self._problems(build, values)
            if problems - baseline or (accept is not None and not accept(values, attribute)):
                _restore(build, attribute, previous)
                continue
            picked.append(attribute)
            baseline = problems
        return picked

    def _problems(self, build: Build, values: dict[str, Any] | None = None) -> set[str]:
        """Names of active requirement, sanity and special signals."""
        if values is None:
            values = self.compiler.evaluate(build)
        return {
            info.name
            for info, _ in self.compiler.active_signals(values)
            if info.kind != "allocation"
        }

    def _allocations(self, build: Build, category: str) -> list[AllocationSpec]:
        values = self.compiler.evaluate(build)
        specs = []
        for name, info in sorted(self.compiler.signals().items()):
            if info.allocation is None or info.allocation.category != category:
                continue
            if coerce_number(values.get(name)) < 0:
                specs.append(info.allocation)
        return specs


def _restore(build: Build, attribute: str, previous: Any) -> None:
    if previous is None:
        build.pop(attribute, None)
    else:
        build[attribute] = previous


def _reduces_shortage(signal: str, current: float) -> Acceptance:
    """Accept a pick only if it moves ``signal`` up from its last value."""
    last = current

    def accept(values: dict[str, Any], attribute: str) -> bool:
        nonlocal last
        value = coerce_number(values.get(signal))
        if value <= last:
            return False
        last = value
        return True

    return accept


def _grants_feature(prefix: str) -> Acceptance:
    """Accept a pick only once the feature it selects is actually granted."""

    def accept(values: dict[str, Any], attribute: str) -> bool:
        return bool(values.get("features." + attribute[len(prefix):]))

    return accept
