"""Emitters for armor, shields, weapons and spells."""

from typing import TYPE_CHECKING

from ..parser import parse_requirement
from .context import CatalogError

if TYPE_CHECKING:
    from .context import EntityContext

ARMOR_CATEGORIES = ("Unarmored", "Light", "Medium", "Heavy")
WEAPON_CATEGORIES = ("Unarmed", "Simple", "Martial", "Advanced")


def _category(ctx: "EntityContext", categories: tuple[str, ...]) -> str:
    """Category by name or by index into ``categories``."""
    value = ctx.value("Category", categories[0])
    if isinstance(value, int):
        if not 0 <= value < len(categories):
            raise CatalogError(f"{ctx.owner}.Category {value} out of range")
        return categories[value]
    if value not in categories:
        raise CatalogError(f"{ctx.owner}.Category must be one of {', '.join(categories)}")
    return value


def compile_armor(ctx: "EntityContext") -> None:
    category = _category(ctx, ARMOR_CATEGORIES)
    ctx.lookup("armorCategory", "armor", category)
    ctx.lookup("armorACBonus", "armor", ctx.int_value("AC", 0))
    dex_cap = ctx.int_value("Dex")
    if dex_cap is not None:
        ctx.lookup("armorDexCap", "armor", dex_cap)

    ctx.requirement_signal(
        f"sanityNotes.armor.{ctx.name}",
        parse_requirement(f"armorRank.{category} >= 1"),
        "armor",
        trigger_value=ctx.name,
    )


def compile_shield(ctx: "EntityContext") -> None:
    ctx.lookup("shieldACBonus", "shield", ctx.int_value("AC", 0))


def compile_weapon(ctx: "EntityContext") -> None:
    category = _category(ctx, WEAPON_CATEGORIES)
    ctx.requirement_signal(
        f"sanityNotes.weapons.{ctx.name}",
        parse_requirement(f"weaponRank.{category} >= 1"),
        f"weapons.{ctx.name}",
    )


def spell_groups(ctx: "EntityContext") -> list[str]:
    """``<Tradition><Level>`` groups a spell belongs to."""
    level = ctx.int_value("Level")
    if level is None:
        raise CatalogError(f"{ctx.owner} has no Level")
    traditions = [str(t) for t in ctx.values("Traditions")]
    if not traditions:
        raise CatalogError(f"{ctx.owner} has no Traditions")
    return [f"{tradition}{level}" for tradition in traditions]


def compile_spell(ctx: "EntityContext") -> None:
    for group in spell_groups(ctx):
        ctx.member(f"allocated.spells.{group}", f"spells.{ctx.name} ({group})")

    school = ctx.value("School")
    if school is not None:
        ctx.reference("School", str(school), "School")
