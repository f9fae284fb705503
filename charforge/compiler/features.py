"""Feature lists, selectable groups and rank/selection phrases."""

from collections import defaultdict
from typing import TYPE_CHECKING

from ..core.models import ChoiceInstruction
from ..parser import (
    AttributeValue,
    SelectionPhrase,
    parse_feature_entry,
    parse_selection_phrase,
)
from .context import CatalogError, ability_name
from .requirements import compile_condition

if TYPE_CHECKING:
    from .context import EntityContext

# Rank attribute families per proficiency phrase group
_RANK_TARGETS = {
    "Skill": "grantedRank",
    "Armor": "armorRank",
    "Attack": "weaponRank",
}


def compile_feature_list(
    ctx: "EntityContext",
    field_name: str,
    entries: list[AttributeValue],
    level_attr: str,
    feature_set: str,
) -> None:
    """Grant each feature once ``level_attr`` reaches its level.

    ``<feature_set>.<F>`` holds the gated grant and feeds ``features.<F>``.
    """
    for raw in entries:
        entry = ctx.parse(field_name, parse_feature_entry, raw)
        if entry is None:
            continue
        target = f"{feature_set}.{entry.name}"
        ctx.rule(target, level_attr, "=", f"1 if source >= {entry.level} else None")
        if entry.condition is not None:
            compile_condition(ctx, target, entry.condition, level_attr)
            for path in entry.condition.paths():
                ctx.reference_path(path, field_name)
        ctx.rule(f"features.{entry.name}", target, "=", None)
        ctx.feature(entry.name)


def compile_selectables(
    ctx: "EntityContext",
    field_name: str,
    entries: list[AttributeValue],
    level_attr: str,
    feature_set: str,
) -> None:
    """Selectable features owed one per distinct level in each group.

    A group named in the entry (``1:Rock Dwarf:Heritage``) becomes
    ``<Entity> (<Group>)``; otherwise the group is the entity name.
    """
    if not entries:
        raise CatalogError(f"{ctx.owner}.{field_name} has no options")

    levels: dict[str, set[int]] = defaultdict(set)
    for raw in entries:
        entry = ctx.parse(field_name, parse_feature_entry, raw)
        if entry is None:
            continue
        group = f"{ctx.name} ({entry.group})" if entry.group else ctx.name
        levels[group].add(entry.level)

        choice = f"selectableFeatures.{entry.name}"
        target = f"{feature_set}.{entry.name}"
        ctx.rule(target, choice, "=", "1 if source else None")
        ctx.rule(target, level_attr, "?", f"num(source) >= {entry.level}")
        if entry.condition is not None:
            compile_condition(ctx, target, entry.condition, level_attr)
            for path in entry.condition.paths():
                ctx.reference_path(path, field_name)
        ctx.rule(f"features.{entry.name}", target, "=", None)
        ctx.member(f"allocated.selectableFeatures.{group}", choice)
        ctx.feature(entry.name)
        ctx.bag.selectables[entry.name] = group

    if not levels:
        raise CatalogError(f"{ctx.owner}.{field_name} has no usable options")

    for group, group_levels in sorted(levels.items()):
        count_attr = f"selectableFeatureCount.{group}"
        for level in sorted(group_levels):
            ctx.rule(count_attr, level_attr, "+=", f"1 if source >= {level} else None")
        ctx.allocation_signal(
            "selectableFeatures",
            count_attr,
            f"allocated.selectableFeatures.{group}",
            group=group,
        )


def compile_phrase(
    ctx: "EntityContext", phrase: SelectionPhrase, trigger: str, field_name: str
) -> None:
    """Emit grants and owed picks for one phrase active while ``trigger`` is set."""
    if phrase.group == "Ability":
        for item in phrase.fixed:
            ctx.add_sum(f"grantedBoosts.{ability_name(item)}", trigger, 1)
        for choice in phrase.choices:
            domain = [ability_name(d) for d in choice.domain] if choice.domain else None
            ctx.add_sum("choiceCount.Ability", trigger, choice.count)
            ctx.instruction(
                ChoiceInstruction(
                    category="Ability",
                    count=choice.count,
                    domain=domain,
                    trigger=trigger,
                    owner=ctx.owner,
                )
            )
        return

    family = _RANK_TARGETS[phrase.group]
    for item in phrase.fixed:
        ctx.rule(f"{family}.{item}", trigger, "^=", f"{phrase.rank} if source else None")
        if phrase.group == "Skill":
            ctx.reference("Skill", item, field_name)

    for choice in phrase.choices:
        ctx.add_sum("choiceCount.Skill", trigger, choice.count)
        for skill in choice.domain or []:
            ctx.reference("Skill", skill, field_name)
        ctx.instruction(
            ChoiceInstruction(
                category="Skill",
                count=choice.count,
                domain=choice.domain,
                rank=phrase.rank,
                trigger=trigger,
                owner=ctx.owner,
            )
        )


def compile_phrases(
    ctx: "EntityContext", field_name: str, texts: list[AttributeValue], trigger: str
) -> None:
    for text in texts:
        phrase = ctx.parse(field_name, parse_selection_phrase, text)
        if phrase is not None:
            compile_phrase(ctx, phrase, trigger, field_name)
