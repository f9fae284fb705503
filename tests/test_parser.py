"""Tests for the attribute mini-language parser."""

import pytest

from charforge.core.models import Choose, Comparison
from charforge.parser import (
    ParseError,
    parse_attributes,
    parse_condition,
    parse_feature_entry,
    parse_requirement,
    parse_selection_phrase,
    parse_spell_slots,
    split_phrase_elements,
)


class TestParseAttributes:
    """Key/value block splitting."""

    def test_lists_and_quoted_values(self):
        attrs = parse_attributes('Type=General,Skill Require="level >= 2"')
        assert attrs == {"Type": ["General", "Skill"], "Require": ["level >= 2"]}

    def test_unquoted_numbers_are_converted(self):
        attrs = parse_attributes("HitPoints=10 ClassFeats=1,2,4 Weight=0.5")
        assert attrs["HitPoints"] == [10]
        assert attrs["ClassFeats"] == [1, 2, 4]
        assert attrs["Weight"] == [0.5]

    def test_quoted_numbers_stay_strings(self):
        assert parse_attributes('Level="3"') == {"Level": ["3"]}

    def test_list_continues_across_line_break(self):
        attrs = parse_attributes('Features="1:Darkvision",\n  "5:Stone Sense" HitPoints=10')
        assert attrs["Features"] == ["1:Darkvision", "5:Stone Sense"]
        assert attrs["HitPoints"] == [10]

    def test_parentheses_group_separators(self):
        attrs = parse_attributes("Effects=Trained(Athletics, Arcana) HitPoints=8")
        assert attrs["Effects"] == ["Trained(Athletics, Arcana)"]
        attrs = parse_attributes('Effects="Skill Trained (Athletics, Arcana)"')
        assert attrs["Effects"] == ["Skill Trained (Athletics, Arcana)"]

    def test_unbalanced_parentheses(self):
        with pytest.raises(ParseError, match="unbalanced"):
            parse_attributes("Effects=Trained(Athletics")

    def test_empty_text(self):
        assert parse_attributes("") == {}
        assert parse_attributes(None) == {}

    def test_missing_equals(self):
        with pytest.raises(ParseError, match="expected Key=Value"):
            parse_attributes("Type=General Orphan")

    def test_duplicate_key(self):
        with pytest.raises(ParseError, match="duplicate key"):
            parse_attributes("Type=General Type=Skill")

    def test_unterminated_quote(self):
        with pytest.raises(ParseError, match="unterminated"):
            parse_attributes('Require="level >= 2')


class TestFeatureEntries:
    """``[<condition> ? ]<level>:<name>[:<group>]``"""

    def test_plain_name_defaults_to_level_one(self):
        entry = parse_feature_entry("Darkvision")
        assert entry.name == "Darkvision"
        assert entry.level == 1
        assert entry.condition is None
        assert entry.group is None

    def test_level_and_group(self):
        entry = parse_feature_entry("1:Rock Dwarf:Heritage")
        assert (entry.level, entry.name, entry.group) == (1, "Rock Dwarf", "Heritage")

    def test_condition(self):
        entry = parse_feature_entry("features.Rock Dwarf ? 5:Rock Runner")
        assert entry.level == 5
        assert entry.name == "Rock Runner"
        assert entry.condition_text == "features.Rock Dwarf"
        assert entry.condition.evaluate({"features.Rock Dwarf": 1})
        assert not entry.condition.evaluate({})

    def test_numeric_entry(self):
        # ClassFeats-style numbers arrive as ints from parse_attributes
        assert parse_feature_entry(3).name == "3"

    def test_empty_entry_is_rejected(self):
        with pytest.raises(ParseError):
            parse_feature_entry("")

    def test_choose_not_allowed_in_condition(self):
        with pytest.raises(ParseError, match="Choose"):
            parse_condition("Choose 1 from any")


class TestRequirementCorpus:
    """Parsed requirements evaluated against hand-computed expectations."""

    @pytest.mark.parametrize(
        "text,values,expected",
        [
            ("level >= 5", {"level": 5}, True),
            ("level >= 5", {"level": 4}, False),
            ("level >= 5", {}, False),
            ("features.Rage", {"features.Rage": 1}, True),
            ("features.Rage", {}, False),
            ("rank.Athletics >= 2", {"rank.Athletics": 2}, True),
            ("rank.Athletics >= 2", {"rank.Athletics": 1}, False),
            ("Choose 2 from any", {"allocated.feats": 2}, True),
            ("Choose 2 from any", {"allocated.feats": 1}, False),
            ("alignment =~ 'Good'", {"alignment": "Neutral Good"}, True),
            ("alignment =~ 'Good'", {"alignment": "Chaotic Evil"}, False),
            ("alignment =~ 'Good'", {}, False),
            ("alignment !~ 'Evil'", {}, True),
            ("alignment !~ 'Evil'", {"alignment": "Lawful Evil"}, False),
            ("deity == 'Abadar'", {"deity": "Abadar"}, True),
            ("deity != 'Abadar'", {"deity": "Desna"}, True),
            ("strength < 10", {"strength": 8}, True),
            ("strength <= 10", {"strength": 12}, False),
            ("features.Rage || level >= 5", {"level": 6}, True),
            ("features.Rage || level >= 5", {"features.Rage": 1}, True),
            ("features.Rage || level >= 5", {"level": 2}, False),
            ("dwarfLevel >= 1 / features.Rock Dwarf", {"dwarfLevel": 1}, False),
            (
                "dwarfLevel >= 1 / features.Rock Dwarf",
                {"dwarfLevel": 1, "features.Rock Dwarf": 1},
                True,
            ),
        ],
    )
    def test_corpus(self, text, values, expected):
        assert parse_requirement(text).evaluate(values) is expected

    def test_list_elements_are_all_required(self):
        req = parse_requirement(["level >= 2", "features.Rage"])
        assert len(req.groups) == 2
        assert not req.evaluate({"level": 3})
        assert req.evaluate({"level": 3, "features.Rage": 1})
        assert req.violation_count({}) == 2

    def test_bare_path_reads_as_at_least_one(self):
        conjunct = parse_requirement("features.Rage").groups[0].alternatives[0].conjuncts[0]
        assert isinstance(conjunct, Comparison)
        assert (conjunct.op, conjunct.value) == (">=", 1)

    def test_choose_any_subcategory(self):
        choose = parse_requirement("Choose 1 from any Skill").groups[0].alternatives[0].conjuncts[0]
        assert isinstance(choose, Choose)
        assert choose.domain is None
        assert choose.aggregate == "allocated.feats.Skill"

    def test_choose_literal_list_names_features(self):
        choose = parse_requirement("Choose 1 from Power Attack, rank.Athletics").groups[0]
        choose = choose.alternatives[0].conjuncts[0]
        assert choose.domain == ["features.Power Attack", "rank.Athletics"]
        assert choose.evaluate({"rank.Athletics": 1})
        assert not choose.evaluate({})

    def test_or_inside_quotes_is_literal(self):
        req = parse_requirement("alignment =~ 'Good||Neutral'")
        assert len(req.groups[0].alternatives) == 1

    def test_unset_holding_comparisons(self):
        comparison = parse_requirement("alignment !~ 'Evil'").groups[0].alternatives[0].conjuncts[0]
        assert comparison.holds_when_unset
        comparison = parse_requirement("level >= 2").groups[0].alternatives[0].conjuncts[0]
        assert not comparison.holds_when_unset

    def test_unterminated_quote(self):
        with pytest.raises(ParseError, match="unterminated quote"):
            parse_requirement("alignment =~ 'Good")

    def test_empty_term(self):
        with pytest.raises(ParseError):
            parse_requirement("level >= 2 / ")


class TestSelectionPhrases:
    """Rank and selection phrases."""

    def test_skill_with_embedded_choice(self):
        phrase = parse_selection_phrase("Skill Trained (Athletics; Choose 2 from any)")
        assert phrase.group == "Skill"
        assert phrase.rank == 1
        assert phrase.fixed == ["Athletics"]
        assert phrase.choices[0].count == 2
        assert phrase.choices[0].domain is None

    def test_attack_rank(self):
        phrase = parse_selection_phrase("Attack Expert (Simple; Martial)")
        assert phrase.rank == 2
        assert phrase.fixed == ["Simple", "Martial"]

    def test_ability_boost_choices(self):
        phrase = parse_selection_phrase(
            "Ability Boost (Choose 1 from Strength, Constitution; Choose 1 from any)"
        )
        assert phrase.is_boost
        assert [c.count for c in phrase.choices] == [1, 1]
        assert phrase.choices[0].domain == ["Strength", "Constitution"]

    def test_comma_list_with_trailing_choose(self):
        assert split_phrase_elements("Athletics, Choose 2 from Acrobatics, Stealth") == [
            "Athletics",
            "Choose 2 from Acrobatics, Stealth",
        ]

    def test_armor_cannot_embed_choice(self):
        with pytest.raises(ParseError, match="cannot embed"):
            parse_selection_phrase("Armor Trained (Choose 1 from any)")

    def test_rank_word_must_match_group(self):
        with pytest.raises(ParseError):
            parse_selection_phrase("Skill Boost (Athletics)")
        with pytest.raises(ParseError):
            parse_selection_phrase("Ability Trained (Strength)")

    def test_unknown_group(self):
        with pytest.raises(ParseError, match="unknown phrase group"):
            parse_selection_phrase("Save Expert (Fortitude)")

    def test_empty_phrase(self):
        with pytest.raises(ParseError, match="grants nothing"):
            parse_selection_phrase("Skill Trained ()")


class TestSpellSlots:
    """``<Tradition><Level>:<level>=<count>;...``"""

    def test_table(self):
        assert parse_spell_slots("Arcane1:2=3;1=2") == ("Arcane1", [(1, 2), (2, 3)])

    @pytest.mark.parametrize("text", ["Arcane:1=2", "Arcane1:1-2", "Arcane1:", "1=2"])
    def test_malformed(self, text):
        with pytest.raises(ParseError):
            parse_spell_slots(text)
