"""Rules every build gets regardless of catalog content."""

from typing import TYPE_CHECKING

from ..core.models import SignalInfo
from .context import ABILITIES

if TYPE_CHECKING:
    from .context import EntityContext

FEAT_SLOTS = ("Ancestry", "Class", "General", "Skill")
SPILLING_SLOTS = ("Ancestry", "Class", "Skill")


def compile_core_rules(ctx: "EntityContext") -> None:
    """Ability scores, allocation counts, hit points and armor class."""
    for ability in ABILITIES:
        modifier = f"{ability}Modifier"
        ctx.rule(ability, f"abilityBoosts.{ability}", "+", "2 * source")
        ctx.rule(ability, f"grantedBoosts.{ability}", "+", "2 * source")
        ctx.rule(modifier, ability, "=", "(source - 10) // 2")
        ctx.rule("abilityModifierMax", modifier, "^=", None)
        ctx.rule("allocated.abilityBoosts", f"abilityBoosts.{ability}", "+=", None)
        ctx.bag.members["allocated.abilityBoosts"].add(f"abilityBoosts.{ability}")

    # All six modifiers at or below zero
    ctx.rule("validationNotes.abilityModifierSum", "abilityModifierMax", "=", "1 if source <= 0 else 0")
    ctx.signal(
        SignalInfo(
            name="validationNotes.abilityModifierSum",
            kind="special",
            owner=ctx.owner,
            special="abilityModifierSum",
        )
    )

    ctx.rule("choiceCount.Ability", "level", "+=", "4 + 4 * (source // 5)")
    ctx.allocation_signal("boosts", "choiceCount.Ability", "allocated.abilityBoosts")

    ctx.rule("featCount.General", "level", "=", "(source + 1) // 4")
    ctx.rule("featCount.Skill", "level", "=", "source // 2")
    # Feats past the room in their own slot take General slots instead
    for slot in SPILLING_SLOTS:
        claimed = f"allocated.feats.{slot}"
        ctx.rule(f"filled.feats.{slot}", claimed, "=", f"min(source, attr('featCount.{slot}', 0))")
        ctx.rule("filled.feats.General", claimed, "+=", f"max(source - attr('featCount.{slot}', 0), 0)")
    ctx.rule("filled.feats.General", "allocated.feats.General", "+=", None)
    for slot in FEAT_SLOTS:
        ctx.allocation_signal("feats", f"featCount.{slot}", f"filled.feats.{slot}", group=slot)

    ctx.rule("choiceCount.Skill", "level", "+=", "max((source - 1) // 2, 0)")
    ctx.rule("choiceCount.Skill", "intelligenceModifier", "+=", "max(source, 0)")
    ctx.allocation_signal("skills", "choiceCount.Skill", "allocated.skillsChosen")

    ctx.rule("languageCount", "intelligenceModifier", "+=", "max(source, 0)")
    ctx.allocation_signal("languages", "languageCount", "allocated.languages")

    ctx.rule("hitPoints", "ancestryHitPoints", "+=", None)
    ctx.rule(
        "hitPoints",
        "level",
        "+=",
        "source * (attr('classHitPoints', 0) + attr('constitutionModifier', 0))",
    )

    ctx.rule("armorClass", "", "=", 10)
    ctx.rule("armorClass", "dexterityModifier", "+", "min(source, attr('armorDexCap', source))")
    ctx.rule("armorClass", "armorACBonus", "+", None)
    ctx.rule("armorClass", "shieldACBonus", "+", None)
