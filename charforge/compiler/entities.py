"""Emitters for character-building entity kinds.

Each emitter receives an ``EntityContext`` for one definition and registers
its rules and signals through it. Ancestries and backgrounds get a
``<prefix>Level`` attribute that mirrors ``level`` while chosen; classes get
``levels.<Class>``. Feature grants, selectables and phrases then hang off
those attributes.
"""

import logging
import re
from typing import TYPE_CHECKING

from ..core.models import (
    Alternative,
    Comparison,
    Requirement,
    RequirementGroup,
    SignalInfo,
)
from ..parser import (
    PhraseChoice,
    SelectionPhrase,
    parse_requirement,
    parse_spell_slots,
)
from .context import CatalogError, ability_name, prefix_of
from .features import compile_feature_list, compile_phrase, compile_phrases, compile_selectables

if TYPE_CHECKING:
    from .context import EntityContext

logger = logging.getLogger(__name__)

# Law/chaos and good/evil axis positions of alignment abbreviation letters
_LAW_AXIS = {"L": 1, "N": 0, "C": -1}
_GOOD_AXIS = {"G": 1, "N": 0, "E": -1}
_LAW_WORDS = {1: "Lawful", 0: "Neutral", -1: "Chaotic"}
_GOOD_WORDS = {1: "Good", 0: "Neutral", -1: "Evil"}

SPELL_CASTING_FLOOR = 14


def _axes(abbreviation: str) -> tuple[int, int]:
    abbreviation = abbreviation.strip().upper()
    if abbreviation == "N":
        return 0, 0
    if (
        len(abbreviation) != 2
        or abbreviation[0] not in _LAW_AXIS
        or abbreviation[1] not in _GOOD_AXIS
    ):
        raise CatalogError(f"unknown alignment abbreviation {abbreviation!r}")
    return _LAW_AXIS[abbreviation[0]], _GOOD_AXIS[abbreviation[1]]


def _alignment_name(law: int, good: int) -> str:
    if law == 0 and good == 0:
        return "Neutral"
    return f"{_LAW_WORDS[law]} {_GOOD_WORDS[good]}"


def follower_alignments(abbreviation: str) -> list[str]:
    """Alignments within one step of a deity's alignment.

    Example:
        >>> follower_alignments("LN")
        ['Lawful Good', 'Lawful Neutral', 'Lawful Evil', 'Neutral']
    """
    law, good = _axes(abbreviation)
    result = []
    for other_law in (1, 0, -1):
        for other_good in (1, 0, -1):
            if abs(other_law - law) + abs(other_good - good) <= 1:
                result.append(_alignment_name(other_law, other_good))
    return result


def _single_comparison(path: str, op: str, value) -> Requirement:
    comparison = Comparison(path=path, op=op, value=value)
    return Requirement(
        groups=[
            RequirementGroup(
                text=str(comparison),
                alternatives=[Alternative(conjuncts=[comparison])],
            )
        ]
    )


def _level_attribute(ctx: "EntityContext", choice: str) -> str:
    """``<prefix>Level``: the character level while ``choice`` names this entity."""
    attr = f"{prefix_of(ctx.name)}Level"
    ctx.rule(attr, choice, "?", f"source == {ctx.name!r}")
    ctx.rule(attr, "level", "=", None)
    return attr


def _requirements(
    ctx: "EntityContext",
    path: str,
    trigger: str,
    prefix: Requirement | None = None,
    trigger_value: str | None = None,
) -> None:
    """Register Require/Imply signals named after ``path``."""
    require = ctx.values("Require")
    groups = list(prefix.groups) if prefix else []
    if require:
        parsed = ctx.parse("Require", parse_requirement, [str(r) for r in require])
        if parsed is not None:
            groups.extend(parsed.groups)
    if groups:
        ctx.requirement_signal(
            f"validationNotes.{path}", Requirement(groups=groups), trigger, trigger_value
        )

    imply = ctx.values("Imply")
    if imply:
        parsed = ctx.parse("Imply", parse_requirement, [str(i) for i in imply])
        if parsed is not None:
            ctx.requirement_signal(f"sanityNotes.{path}", parsed, trigger, trigger_value)


def _selectables(ctx: "EntityContext", level_attr: str, feature_set: str) -> None:
    if "Selectables" in ctx.attrs:
        compile_selectables(ctx, "Selectables", ctx.values("Selectables"), level_attr, feature_set)


# ── Domain-only kinds ──


def compile_alignment(ctx: "EntityContext") -> None:
    """Alignments only populate the ``alignment`` choice domain."""


def compile_school(ctx: "EntityContext") -> None:
    """Schools only serve as spell references."""


def compile_language(ctx: "EntityContext") -> None:
    ctx.member("allocated.languages", f"languages.{ctx.name}")


def compile_skill(ctx: "EntityContext") -> None:
    """Rank, ability and modifier rules for one skill.

    ``rank.<S>`` is the granted rank plus chosen increases; each trained rank
    adds ``2 * rank + level`` to the keyed ability modifier.
    """
    name = ctx.name
    ability = ability_name(ctx.value("Ability", "intelligence"))
    chosen = f"skillsChosen.{name}"

    ctx.rule(f"rank.{name}", f"grantedRank.{name}", "+=", None)
    ctx.rule(f"rank.{name}", chosen, "+=", None)
    ctx.rule("allocated.skillsChosen", chosen, "+=", "source if num(source) > 0 else None")
    ctx.bag.members["allocated.skillsChosen"].add(chosen)

    modifier = f"skillModifiers.{name}"
    ctx.rule(modifier, f"{ability}Modifier", "=", None)
    ctx.rule(modifier, f"rank.{name}", "+", "2 * source + attr('level', 0) if source > 0 else None")


# ── Character choices ──


def compile_ancestry(ctx: "EntityContext") -> None:
    level_attr = _level_attribute(ctx, "ancestry")
    feature_set = f"{prefix_of(ctx.name)}Features"

    hit_points = ctx.int_value("HitPoints")
    if hit_points is not None:
        ctx.lookup("ancestryHitPoints", "ancestry", hit_points)

    compile_feature_list(ctx, "Features", ctx.values("Features"), level_attr, feature_set)
    _selectables(ctx, level_attr, feature_set)

    boosts = [str(b) for b in ctx.values("Boost")]
    fixed = [b for b in boosts if b.lower() != "any"]
    free = len(boosts) - len(fixed)
    if boosts:
        phrase = SelectionPhrase(
            group="Ability",
            fixed=fixed,
            choices=[PhraseChoice(count=free)] if free else [],
        )
        compile_phrase(ctx, phrase, level_attr, "Boost")
    for flaw in ctx.values("Flaw"):
        ctx.add_sum(f"grantedBoosts.{ability_name(flaw)}", level_attr, -1)

    languages = [str(lang) for lang in ctx.values("Languages")]
    for language in languages:
        ctx.rule(f"languages.{language}", level_attr, "=", 1)
        ctx.reference("Language", language, "Languages")
    if languages:
        ctx.add_sum("languageCount", level_attr, len(languages))

    ctx.rule("featCount.Ancestry", level_attr, "+=", "(source + 3) // 4")


def compile_background(ctx: "EntityContext") -> None:
    level_attr = _level_attribute(ctx, "background")
    feature_set = f"{prefix_of(ctx.name)}Features"

    abilities = [ability_name(a) for a in ctx.values("Ability")]
    if abilities:
        phrase = SelectionPhrase(
            group="Ability",
            choices=[PhraseChoice(count=1, domain=abilities), PhraseChoice(count=1)],
        )
        compile_phrase(ctx, phrase, level_attr, "Ability")

    skills = [str(s) for s in ctx.values("Skill")]
    if skills:
        compile_phrase(ctx, SelectionPhrase(group="Skill", fixed=skills), level_attr, "Skill")

    feats = ctx.values("Feat")
    for feat in feats:
        ctx.reference("Feat", str(feat), "Feat")
    compile_feature_list(ctx, "Feat", feats, level_attr, feature_set)
    compile_feature_list(ctx, "Features", ctx.values("Features"), level_attr, feature_set)


def compile_class(ctx: "EntityContext") -> None:
    name = ctx.name
    level_attr = f"levels.{name}"
    ctx.rule(level_attr, "class", "?", f"source == {name!r}")
    ctx.rule(level_attr, "level", "=", None)
    feature_set = f"{prefix_of(name)}Features"

    hit_points = ctx.int_value("HitPoints")
    if hit_points is not None:
        ctx.lookup("classHitPoints", "class", hit_points)

    key_abilities = [ability_name(a) for a in ctx.values("Ability")]
    if len(key_abilities) == 1:
        phrase = SelectionPhrase(group="Ability", fixed=key_abilities)
        compile_phrase(ctx, phrase, level_attr, "Ability")
    elif key_abilities:
        phrase = SelectionPhrase(
            group="Ability", choices=[PhraseChoice(count=1, domain=key_abilities)]
        )
        compile_phrase(ctx, phrase, level_attr, "Ability")

    for level in ctx.values("ClassFeats"):
        if not isinstance(level, int):
            raise CatalogError(f"{ctx.owner}.ClassFeats must list levels, got {level!r}")
        ctx.rule("featCount.Class", level_attr, "+=", f"1 if source >= {level} else None")

    compile_feature_list(ctx, "Features", ctx.values("Features"), level_attr, feature_set)
    _selectables(ctx, level_attr, feature_set)
    compile_phrases(ctx, "Effects", ctx.values("Effects"), level_attr)

    for entry in ctx.values("SpellSlots"):
        parsed = ctx.parse("SpellSlots", parse_spell_slots, entry)
        if parsed is None:
            continue
        group, table = parsed
        # Highest reached step wins
        expr = " else ".join(
            f"{count} if source >= {level}" for level, count in reversed(table)
        )
        ctx.rule(f"spellSlots.{group}", level_attr, "=", f"{expr} else None")
        ctx.allocation_signal("spells", f"spellSlots.{group}", f"allocated.spells.{group}", group=group)

    spell_ability = ctx.value("SpellAbility")
    if spell_ability is not None:
        ability = ability_name(spell_ability)
        signal = f"validationNotes.spellAbility.{name}"
        ctx.rule(
            signal,
            level_attr,
            "=",
            f"1 if attr({ability!r}, 0) < {SPELL_CASTING_FLOOR} else 0",
        )
        ctx.signal(
            SignalInfo(
                name=signal,
                kind="special",
                owner=ctx.owner,
                special="abilityFloor",
                special_target=ability,
            )
        )

    _requirements(ctx, f"class.{name}", "class", trigger_value=name)


def compile_deity(ctx: "EntityContext") -> None:
    """Follower alignment and favored weapon."""
    alignment = ctx.value("Alignment")
    if alignment is not None:
        allowed = follower_alignments(str(alignment))
        for name in allowed:
            ctx.reference("Alignment", name, "Alignment")
        pattern = "^(" + "|".join(re.escape(a) for a in allowed) + ")$"
        ctx.requirement_signal(
            f"validationNotes.deity.{ctx.name}",
            _single_comparison("alignment", "=~", pattern),
            "deity",
            trigger_value=ctx.name,
        )

    weapon = ctx.value("Weapon")
    if weapon is not None:
        ctx.lookup("deityFavoredWeapon", "deity", str(weapon))
        ctx.reference("Weapon", str(weapon), "Weapon")


# ── Feats and features ──


def feat_slot(ctx: "EntityContext", types: list[str]) -> tuple[str | None, str]:
    """Allocation slot and owner level attribute for a feat's types."""
    ancestries = ctx.compiler.entity_names("Ancestry")
    classes = ctx.compiler.entity_names("Class")
    for t in types:
        if t in ancestries:
            return "Ancestry", f"{prefix_of(t)}Level"
        if t in classes:
            return "Class", f"levels.{t}"
    if "Skill" in types:
        return "Skill", "level"
    if "General" in types:
        return "General", "level"
    return None, "level"


def compile_feat(ctx: "EntityContext") -> None:
    name = ctx.name
    choice = f"feats.{name}"
    types = [str(t) for t in ctx.values("Type")]
    level = ctx.int_value("Level", 1)

    slot, level_attr = feat_slot(ctx, types)
    ctx.bag.feat_types = types
    ctx.bag.feat_slot = slot

    ctx.rule(f"features.{name}", choice, "=", "1 if source else None")
    ctx.member("allocated.feats", choice)
    if slot is not None:
        ctx.member(f"allocated.feats.{slot}", choice)
        ctx.bag.members[f"filled.feats.{slot}"].add(choice)
        ctx.bag.members["filled.feats.General"].add(choice)
    ctx.feature(name)

    implicit = None
    if level_attr != "level" or level > 1:
        implicit = _single_comparison(level_attr, ">=", level)
    _requirements(ctx, f"feats.{name}", choice, implicit)
    compile_phrases(ctx, "Effects", ctx.values("Effects"), f"features.{name}")


def compile_feature(ctx: "EntityContext") -> None:
    name = ctx.name
    trigger = f"features.{name}"
    ctx.feature(name)

    for replaced in ctx.values("Replaces"):
        ctx.rule(f"features.{replaced}", trigger, "?", "not source")
        ctx.reference("feature", str(replaced), "Replaces")

    _requirements(ctx, f"features.{name}", trigger)
    compile_phrases(ctx, "Effects", ctx.values("Effects"), trigger)
