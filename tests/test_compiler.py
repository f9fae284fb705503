"""Tests for the rule compiler."""

import pytest

from charforge.compiler import CatalogError, RuleCompiler, follower_alignments, prefix_of
from charforge.core.models import Catalog, Severity


def _fighter(level: int = 1, **extra) -> dict:
    build = {
        "level": level,
        "class": "Fighter",
        "strength": 16,
        "dexterity": 14,
        "constitution": 12,
        "intelligence": 10,
        "wisdom": 10,
        "charisma": 10,
    }
    build.update(extra)
    return build


def _cleric(level: int = 1, **extra) -> dict:
    build = {
        "level": level,
        "class": "Cleric",
        "strength": 10,
        "dexterity": 12,
        "constitution": 12,
        "intelligence": 10,
        "wisdom": 12,
        "charisma": 10,
    }
    build.update(extra)
    return build


def _trained(level: int, *feats: str) -> dict:
    """Trained in Acrobatics and Athletics, holding ``feats``."""
    build = {"level": level, "skillsChosen.Acrobatics": 1, "skillsChosen.Athletics": 1}
    build.update({f"feats.{name}": 1 for name in feats})
    return build


class TestCatalogLoading:
    """Compiling whole catalogs."""

    def test_mini_catalog_compiles_cleanly(self, mini_catalog):
        compiler = RuleCompiler()
        result = compiler.compile_catalog(mini_catalog)
        assert result.issues == []
        assert compiler.entity_names("Ancestry") == ["Dwarf", "Human"]

    def test_bundled_catalog_compiles_cleanly(self, core_compiler):
        assert core_compiler.diagnostics == []
        assert core_compiler.check_references() == []
        assert "Fighter" in core_compiler.entity_names("Class")
        assert len(core_compiler.engine) > 300

    def test_unresolved_reference_is_fatal_in_strict_mode(self):
        catalog = Catalog(entities={"Background": {"Acolyte": 'Feat="Missing Feat"'}})
        with pytest.raises(CatalogError, match="Missing Feat"):
            RuleCompiler().compile_catalog(catalog)

    def test_unresolved_reference_is_reported_otherwise(self):
        catalog = Catalog(entities={"Background": {"Acolyte": 'Feat="Missing Feat"'}})
        result = RuleCompiler().compile_catalog(catalog, strict=False)
        assert [i.category for i in result.errors] == ["reference"]
        assert result.errors[0].location == "Background:Acolyte.Feat"

    def test_feat_without_slot_is_reported(self):
        catalog = Catalog(entities={"Feat": {"Orphan": "Type=Nobody"}})
        result = RuleCompiler().compile_catalog(catalog, strict=False)
        assert result.errors[0].location == "Feat:Orphan.Type"

    def test_definition_and_choice_domain(self, compiler):
        assert compiler.definition("Feat", "Toughness") == "Type=General"
        assert compiler.definition("Feat", "Nope") is None
        assert compiler.choice_domain("deity") == ["Abadar"]
        with pytest.raises(KeyError):
            compiler.choice_domain("feats")


class TestCompileEntity:
    """compile_entity / remove_entity semantics."""

    def test_identical_recompile_is_a_noop(self, compiler):
        keys = compiler.engine.rule_keys()
        signals = set(compiler.signals())
        assert compiler.compile_entity("Feat", "Toughness", "Type=General") is False
        assert compiler.engine.rule_keys() == keys
        assert set(compiler.signals()) == signals

    def test_compiling_twice_equals_compiling_once(self, compiler):
        attrs = 'Type=General Require="rank.Athletics >= 1" Effects="Skill Trained (Society)"'
        compiler.compile_entity("Feat", "Hefty Hauler", attrs)
        once = compiler.engine.rule_keys()
        compiler.compile_entity("Feat", "Hefty Hauler", attrs)
        assert compiler.engine.rule_keys() == once

    def test_removal_round_trip(self, compiler, base_build):
        build = dict(base_build, **{"feats.Hefty Hauler": 1})
        keys = compiler.engine.rule_keys()
        before = compiler.evaluate(build)

        compiler.compile_entity(
            "Feat", "Hefty Hauler", 'Type=General Effects="Skill Trained (Society)"'
        )
        during = compiler.evaluate(build)
        assert during["rank.Society"] == 1
        assert during["validationNotes.featCount.General"] == 1

        compiler.remove_entity("Feat", "Hefty Hauler")
        assert compiler.engine.rule_keys() == keys
        assert compiler.evaluate(build) == before

    def test_shadowed_definition_is_restored(self, compiler, base_build):
        build = dict(base_build, **{"feats.Toughness": 1})
        compiler.compile_entity("Feat", "Toughness", 'Type=General Effects="Skill Trained (Arcana)"')
        assert compiler.evaluate(build)["rank.Arcana"] == 1

        compiler.remove_entity("Feat", "Toughness")
        assert compiler.definition("Feat", "Toughness") == "Type=General"
        assert "rank.Arcana" not in compiler.evaluate(build)
        assert compiler.evaluate(build)["features.Toughness"] == 1

    def test_remove_unknown_entity(self, compiler):
        with pytest.raises(CatalogError, match="not compiled"):
            compiler.remove_entity("Feat", "Nope")

    def test_unknown_kind(self, compiler):
        with pytest.raises(CatalogError, match="unknown entity kind"):
            compiler.compile_entity("Vehicle", "Cart", "")

    def test_failed_redefinition_keeps_previous(self, compiler):
        keys = compiler.engine.rule_keys()
        with pytest.raises(CatalogError):
            compiler.compile_entity("Class", "Fighter", "ClassFeats=one")
        assert compiler.engine.rule_keys() == keys
        assert compiler.definition("Class", "Fighter").startswith("Ability=Strength")

    def test_zero_option_selectables(self, compiler):
        with pytest.raises(CatalogError, match="no usable options"):
            compiler.compile_entity("Ancestry", "Gnome", 'Selectables="" HitPoints=8')
        assert "Gnome" not in compiler.entity_names("Ancestry")
        assert compiler.engine.rules_owned_by("Ancestry:Gnome") == []

    def test_cycle_is_a_catalog_error(self, compiler):
        with pytest.raises(CatalogError, match="cycle"):
            compiler.compile_entity("Feature", "Loop", 'Replaces="Loop"')
        assert compiler.definition("Feature", "Loop") is None

    def test_feat_slot_is_order_independent(self):
        feat_first = RuleCompiler()
        feat_first.compile_entity("Feat", "Rock Runner", "Type=Dwarf")
        assert feat_first.feat_slot("Rock Runner") is None
        feat_first.compile_entity("Ancestry", "Dwarf", "HitPoints=10")

        ancestry_first = RuleCompiler()
        ancestry_first.compile_entity("Ancestry", "Dwarf", "HitPoints=10")
        ancestry_first.compile_entity("Feat", "Rock Runner", "Type=Dwarf")

        assert feat_first.feat_slot("Rock Runner") == "Ancestry"
        assert feat_first.engine.rule_keys() == ancestry_first.engine.rule_keys()

    def test_removing_ancestry_unslots_its_feats(self, compiler):
        compiler.remove_entity("Ancestry", "Dwarf")
        assert compiler.feat_slot("Rock Runner") is None
        assert compiler.feat_slot("Stonecunning") is None


class TestDiagnostics:
    """Parse failures are recorded, not raised."""

    def test_bad_field_skips_only_that_fragment(self, compiler, base_build):
        compiler.compile_entity("Feat", "Broken", "Type=General Require=\"rank.Athletics >= 'two\"")
        [diagnostic] = compiler.diagnostics
        assert diagnostic.category == "parse"
        assert diagnostic.location == "Feat:Broken.Require"
        assert compiler.signal("validationNotes.feats.Broken") is None
        assert compiler.evaluate(dict(base_build, **{"feats.Broken": 1}))["features.Broken"] == 1

    def test_bad_attribute_string(self, compiler):
        compiler.compile_entity("Feat", "Garbled", 'Type=General Require="unterminated')
        [diagnostic] = compiler.diagnostics
        assert diagnostic.location == "Feat:Garbled.attributes"
        assert compiler.feat_slot("Garbled") is None

    def test_diagnostics_go_with_the_definition(self, compiler):
        compiler.compile_entity("Feat", "Garbled", 'Type=General Require="unterminated')
        compiler.remove_entity("Feat", "Garbled")
        assert compiler.diagnostics == []


class TestDerivedValues:
    """Values produced by compiled entities."""

    def test_dwarf_fighter(self, compiler):
        values = compiler.evaluate(_fighter(ancestry="Dwarf"))
        assert values["dwarfLevel"] == 1
        assert values["constitution"] == 14
        assert values["charisma"] == 8
        assert values["charismaModifier"] == -1
        assert values["hitPoints"] == 10 + 1 * (10 + 2)
        assert values["features.Darkvision"] == 1
        assert values["features.Attack Of Opportunity"] == 1
        assert values["languages.Dwarven"] == 1
        assert values["languageCount"] == 2
        assert values["featCount.Ancestry"] == 1
        assert values["featCount.Class"] == 1

    def test_ancestry_feat_count_grows_with_level(self, compiler):
        assert compiler.evaluate(_fighter(5, ancestry="Dwarf"))["featCount.Ancestry"] == 2

    def test_class_feat_count(self, compiler):
        assert compiler.evaluate(_fighter(4))["featCount.Class"] == 3
        assert compiler.evaluate(_fighter(6))["featCount.Class"] == 4

    def test_ranks_and_skill_modifier(self, compiler):
        values = compiler.evaluate(_fighter())
        assert values["rank.Athletics"] == 1
        assert values["skillModifiers.Athletics"] == 3 + 2 * 1 + 1
        assert values["skillModifiers.Acrobatics"] == 2
        assert values["armorRank.Medium"] == 1
        assert "armorRank.Heavy" not in values
        assert values["weaponRank.Martial"] == 1

    def test_chosen_skill_adds_to_granted_rank(self, compiler):
        values = compiler.evaluate(_fighter(3, **{"skillsChosen.Athletics": 1}))
        assert values["rank.Athletics"] == 2
        assert values["allocated.skillsChosen"] == 1

    def test_level_gated_feature_and_effects(self, compiler):
        assert "features.Weapon Mastery" not in compiler.evaluate(_fighter(4))
        values = compiler.evaluate(_fighter(5))
        assert values["features.Weapon Mastery"] == 1
        assert values["weaponRank.Martial"] == 2

    def test_replacement_suppresses_default(self, compiler):
        compiler.compile_entity("Feat", "Weapon Legend", "Type=General")
        compiler.compile_entity("Feature", "Weapon Legend", 'Replaces="Weapon Mastery"')
        assert compiler.evaluate(_fighter(5))["features.Weapon Mastery"] == 1
        values = compiler.evaluate(_fighter(5, **{"feats.Weapon Legend": 1}))
        assert "features.Weapon Mastery" not in values
        assert values["weaponRank.Martial"] == 1

    def test_selectable_needs_its_ancestry(self, compiler):
        chosen = {"selectableFeatures.Rock Dwarf": 1}
        assert compiler.evaluate(_fighter(ancestry="Dwarf", **chosen))["features.Rock Dwarf"] == 1
        assert "features.Rock Dwarf" not in compiler.evaluate(_fighter(**chosen))
        assert compiler.selectable_group("Rock Dwarf") == "Dwarf (Heritage)"

    def test_selectable_allocation(self, compiler):
        values = compiler.evaluate(_fighter(ancestry="Dwarf"))
        assert values["validationNotes.selectableFeatureCount.Dwarf (Heritage)"] == -1
        values = compiler.evaluate(
            _fighter(ancestry="Dwarf", **{"selectableFeatures.Rock Dwarf": 1})
        )
        assert values["validationNotes.selectableFeatureCount.Dwarf (Heritage)"] == 0

    def test_conditional_feature(self, compiler):
        rock = {"selectableFeatures.Rock Dwarf": 1}
        forge = {"selectableFeatures.Forge Dwarf": 1}
        assert compiler.evaluate(_fighter(5, ancestry="Dwarf", **rock))["features.Stone Sense"] == 1
        assert "features.Stone Sense" not in compiler.evaluate(_fighter(5, ancestry="Dwarf", **forge))
        assert "features.Stone Sense" not in compiler.evaluate(_fighter(1, ancestry="Dwarf", **rock))

    def test_background_grants_feat_and_skill(self, compiler):
        values = compiler.evaluate(_fighter(background="Acrobat"))
        assert values["features.Cat Fall"] == 1
        assert values["rank.Acrobatics"] == 1
        assert values.get("validationNotes.feats.Cat Fall", 0) == 0

    def test_armor_class(self, compiler):
        assert compiler.evaluate(_fighter(armor="Leather"))["armorClass"] == 10 + 2 + 1
        assert compiler.evaluate(_fighter(armor="Full Plate"))["armorClass"] == 10 + 0 + 6
        assert compiler.evaluate(_fighter(armor="Leather", shield="Buckler"))["armorClass"] == 14

    def test_ability_boost_allocation(self, compiler):
        values = compiler.evaluate(_fighter(ancestry="Dwarf", background="Acrobat"))
        # 4 at level 1, one free ancestry boost, two background picks, one key ability
        assert values["choiceCount.Ability"] == 8
        assert values["validationNotes.choiceCount.Ability"] == -8


class TestSignals:
    """Requirement and special signals."""

    def test_feat_requirement(self, compiler):
        assert compiler.evaluate(_fighter(**{"feats.Quick Jump": 1})).get(
            "validationNotes.feats.Quick Jump"
        ) == 0
        values = compiler.evaluate(_fighter(**{"feats.Cat Fall": 1}))
        assert values["validationNotes.feats.Cat Fall"] == 1

    def test_implicit_level_requirement(self, compiler):
        values = compiler.evaluate(_fighter(1, **{"feats.Double Shot": 1}))
        assert values["validationNotes.feats.Double Shot"] == 1
        values = compiler.evaluate(_fighter(4, **{"feats.Double Shot": 1}))
        assert values["validationNotes.feats.Double Shot"] == 0

    def test_ancestry_feat_needs_ancestry(self, compiler):
        values = compiler.evaluate(_fighter(**{"feats.Stonecunning": 1}))
        assert values["validationNotes.feats.Stonecunning"] == 1

    def test_choose_requirement(self, compiler):
        values = compiler.evaluate(_fighter(**{"feats.Assurance": 1}))
        assert values["validationNotes.feats.Assurance"] == 0
        values = compiler.evaluate(_fighter(**{"feats.Assurance": 1, "class": "Wizard"}))
        assert values["validationNotes.feats.Assurance"] == 1

    def test_deity_alignment(self, compiler):
        values = compiler.evaluate({"deity": "Abadar", "alignment": "Chaotic Evil"})
        assert values["validationNotes.deity.Abadar"] == 1
        values = compiler.evaluate({"deity": "Abadar", "alignment": "Lawful Good"})
        assert values["validationNotes.deity.Abadar"] == 0
        assert values["deityFavoredWeapon"] == "Dagger"

    def test_armor_sanity_is_a_warning(self, compiler):
        result = compiler.validate(_fighter(armor="Full Plate"))
        [issue] = [i for i in result.issues if i.location.startswith("sanityNotes.")]
        assert issue.location == "sanityNotes.armor.Full Plate"
        assert issue.severity == Severity.WARNING
        assert not any(
            i.location == "sanityNotes.armor.Leather"
            for i in compiler.validate(_fighter(armor="Leather")).issues
        )

    def test_untrained_weapon_warns(self, compiler):
        values = compiler.evaluate({"class": "Wizard", "level": 1, "weapons.Longsword": 1})
        assert values["sanityNotes.weapons.Longsword"] == 1

    def test_spell_ability_floor(self, compiler):
        build = {"level": 1, "class": "Wizard", "intelligence": 12}
        assert compiler.evaluate(build)["validationNotes.spellAbility.Wizard"] == 0
        build["intelligence"] = 10
        assert compiler.evaluate(build)["validationNotes.spellAbility.Wizard"] == 1
        assert compiler.signal("validationNotes.spellAbility.Wizard").special == "abilityFloor"

    def test_ability_modifier_sum(self, compiler):
        build = {a: 10 for a in ("strength", "dexterity", "constitution", "intelligence", "wisdom", "charisma")}
        assert compiler.evaluate(build)["validationNotes.abilityModifierSum"] == 1
        build["wisdom"] = 12
        assert compiler.evaluate(build)["validationNotes.abilityModifierSum"] == 0

    def test_valid_build_has_no_issues(self, compiler, base_build):
        assert compiler.validate(base_build).issues == []

    def test_active_signals_are_sorted(self, compiler):
        values = compiler.evaluate(_fighter(**{"feats.Cat Fall": 1, "feats.Stonecunning": 1}))
        names = [info.name for info, _ in compiler.active_signals(values)]
        assert names == sorted(names)

    def test_requirement_issue_is_an_error(self, compiler):
        issues = compiler.validate({"deity": "Abadar", "alignment": "Chaotic Evil"}).issues
        issue = next(i for i in issues if i.location == "validationNotes.deity.Abadar")
        assert issue.severity == Severity.ERROR
        assert issue.category == "requirement"


class TestFeatSlots:
    """Chosen feats fill their own slot first, then General slots."""

    def test_second_skill_feat_takes_the_general_slot(self, compiler):
        values = compiler.evaluate(_trained(3, "Cat Fall", "Quick Jump"))
        assert values["validationNotes.featCount.Skill"] == 0
        assert values["validationNotes.featCount.General"] == 0
        assert values["validationNotes.feats.Quick Jump"] == 0

    def test_general_feat_never_takes_a_skill_slot(self, compiler):
        values = compiler.evaluate(_trained(3, "Toughness", "Fleet"))
        assert values["validationNotes.featCount.General"] == 1
        assert values["validationNotes.featCount.Skill"] == -1

    def test_feats_past_every_slot_are_a_general_overage(self, compiler):
        values = compiler.evaluate(_trained(3, "Cat Fall", "Quick Jump", "Assurance"))
        assert values["validationNotes.featCount.Skill"] == 0
        assert values["validationNotes.featCount.General"] == 1

    def test_class_feat_can_fill_a_general_slot(self, compiler):
        feats = {"feats.Power Attack": 1, "feats.Sudden Charge": 1, "feats.Lunge": 1}
        values = compiler.evaluate(_fighter(3, **feats))
        assert values["featCount.Class"] == 2
        assert values["validationNotes.featCount.Class"] == 0
        assert values["validationNotes.featCount.General"] == 0

    def test_second_class_feat_at_first_level_is_an_overage(self, compiler):
        values = compiler.evaluate(_fighter(**{"feats.Power Attack": 1, "feats.Lunge": 1}))
        assert values["validationNotes.featCount.Class"] == 0
        assert values["validationNotes.featCount.General"] == 1

    def test_any_slotted_feat_can_be_trimmed_from_general(self, compiler):
        members = compiler.allocation_members("filled.feats.General")
        assert "feats.Toughness" in members
        assert "feats.Cat Fall" in members
        assert "feats.Power Attack" in members
        assert compiler.allocation_members("filled.feats.Skill") == [
            "feats.Assurance",
            "feats.Cat Fall",
            "feats.Intimidating Prowess",
            "feats.Quick Jump",
        ]


class TestSpells:
    """Spell slot tables and tradition groups."""

    def test_slot_table_follows_level(self, compiler):
        values = compiler.evaluate(_cleric())
        assert values["spellSlots.Divine0"] == 2
        assert values["spellSlots.Divine1"] == 1
        assert compiler.evaluate(_cleric(3))["spellSlots.Divine1"] == 2

    def test_open_slots_are_owed(self, compiler):
        values = compiler.evaluate(_cleric(**{"spells.Heal (Divine1)": 1}))
        assert values["validationNotes.spellSlots.Divine0"] == -2
        assert values["validationNotes.spellSlots.Divine1"] == 0

        allocation = compiler.signal("validationNotes.spellSlots.Divine0").allocation
        assert allocation.category == "spells"
        assert allocation.group == "Divine0"

    def test_spell_joins_each_tradition_group(self, compiler):
        assert compiler.allocation_members("allocated.spells.Divine0") == [
            "spells.Divine Lance (Divine0)",
            "spells.Light (Divine0)",
            "spells.Shield (Divine0)",
        ]
        assert compiler.allocation_members("allocated.spells.Arcane0") == [
            "spells.Light (Arcane0)",
            "spells.Shield (Arcane0)",
        ]

    def test_extra_spells_are_an_overage(self, compiler):
        spells = {f"spells.{name} (Divine1)": 1 for name in ("Bless", "Command", "Heal")}
        values = compiler.evaluate(_cleric(**spells))
        assert values["validationNotes.spellSlots.Divine1"] == 2

    def test_non_caster_owes_no_spells(self, compiler):
        values = compiler.evaluate(_fighter())
        assert "spellSlots.Divine0" not in values
        assert "validationNotes.spellSlots.Divine0" not in values

    def test_casting_floor_uses_the_class_ability(self, compiler):
        assert compiler.evaluate(_cleric())["validationNotes.spellAbility.Cleric"] == 0
        assert compiler.evaluate(_cleric(wisdom=10))["validationNotes.spellAbility.Cleric"] == 1


class TestNaming:
    def test_prefix_of(self):
        assert prefix_of("Half-Elf") == "halfElf"
        assert prefix_of("Field Medic") == "fieldMedic"
        with pytest.raises(CatalogError):
            prefix_of("--")

    def test_follower_alignments(self):
        assert follower_alignments("LN") == [
            "Lawful Good",
            "Lawful Neutral",
            "Lawful Evil",
            "Neutral",
        ]
        assert follower_alignments("N") == [
            "Lawful Neutral",
            "Neutral Good",
            "Neutral",
            "Neutral Evil",
            "Chaotic Neutral",
        ]
        assert follower_alignments("ce") == ["Neutral Evil", "Chaotic Neutral", "Chaotic Evil"]

    def test_unknown_alignment(self):
        with pytest.raises(CatalogError):
            follower_alignments("XY")
