"""Shared fixtures: a small inline catalog and compilers built from it."""

import random

import pytest
import yaml

from charforge.compiler import load_compiler
from charforge.config import ForgeConfig, configure, reset_config
from charforge.core.models import Catalog

MINI_CATALOG = """
name: mini
entities:
  Alignment:
    Lawful Good:
    Lawful Neutral:
    Lawful Evil:
    Neutral:
    Chaotic Evil:
  Language:
    Common:
    Dwarven:
    Elven:
    Gnomish:
    Sylvan:
  Skill:
    Acrobatics: Ability=Dexterity
    Arcana: Ability=Intelligence
    Athletics: Ability=Strength
    Society: Ability=Intelligence
    Diplomacy: Ability=Charisma
    Medicine: Ability=Wisdom
  Armor:
    None: Category=Unarmored AC=0
    Leather: Category=Light AC=1 Dex=4
    Full Plate: Category=Heavy AC=6 Dex=0
  Shield:
    Buckler: AC=1
  Weapon:
    Fist: Category=Unarmed
    Dagger: Category=Simple
    Longsword: Category=Martial
  Ancestry:
    Dwarf: >-
      Features=Darkvision,"features.Rock Dwarf ? 5:Stone Sense"
      Selectables="1:Rock Dwarf:Heritage","1:Forge Dwarf:Heritage"
      Boost=Constitution,Wisdom,any Flaw=Charisma
      HitPoints=10 Languages=Common,Dwarven
    Human: Boost=any,any HitPoints=8 Languages=Common
  School:
    Abjuration:
    Evocation:
    Necromancy:
  Background:
    Acrobat: Ability=Dexterity,Strength Skill=Acrobatics Feat="Cat Fall"
  Class:
    Fighter: >-
      Ability=Strength,Dexterity HitPoints=10 ClassFeats=1,2,4,6
      Effects="Skill Trained (Athletics; Choose 1 from any)",
      "Armor Trained (Unarmored; Light; Medium)",
      "Attack Trained (Unarmed; Simple; Martial)"
      Features="1:Attack Of Opportunity","5:Weapon Mastery"
    Wizard: >-
      Ability=Intelligence HitPoints=6 SpellAbility=Intelligence
      Effects="Armor Trained (Unarmored)"
    Cleric: >-
      Ability=Wisdom HitPoints=8 SpellAbility=Wisdom
      SpellSlots=Divine0:1=2,Divine1:1=1;3=2
  Deity:
    Abadar: Alignment=LN Weapon=Dagger
  Feature:
    Weapon Mastery: Effects="Attack Expert (Simple; Martial)"
  Feat:
    Toughness: Type=General
    Fleet: Type=General
    Diehard: Type=General
    Cat Fall: Type=General,Skill Require="rank.Acrobatics >= 1"
    Quick Jump: Type=General,Skill Require="rank.Athletics >= 1"
    Assurance: Type=General,Skill Require="Choose 1 from rank.Acrobatics, rank.Athletics"
    Intimidating Prowess: Type=General,Skill Level=2 Require="strength >= 16"
    Rock Runner: Type=Dwarf Require="features.Rock Dwarf"
    Stonecunning: Type=Dwarf
    Natural Skill: Type=Human Effects="Skill Trained (Choose 2 from any)"
    Power Attack: Type=Fighter
    Sudden Charge: Type=Fighter
    Double Slice: Type=Fighter
    Brutish Shove: Type=Fighter Level=2
    Lunge: Type=Fighter Level=2
    Double Shot: Type=Fighter Level=4
    Powerful Shove: Type=Fighter Level=4 Require="features.Brutish Shove"
  Spell:
    Divine Lance: Traditions=Divine Level=0 School=Evocation
    Light: Traditions=Arcane,Divine Level=0 School=Evocation
    Shield: Traditions=Arcane,Divine Level=0 School=Abjuration
    Bless: Traditions=Divine Level=1
    Command: Traditions=Divine Level=1
    Heal: Traditions=Divine Level=1 School=Necromancy
"""


@pytest.fixture(autouse=True)
def default_config():
    """Keep the user's config file and CHARFORGE_* variables out of tests."""
    configure(ForgeConfig())
    yield
    reset_config()


@pytest.fixture
def mini_catalog() -> Catalog:
    return Catalog.model_validate(yaml.safe_load(MINI_CATALOG))


@pytest.fixture
def catalog_file(tmp_path):
    """The mini catalog written to disk, for --catalog."""
    path = tmp_path / "mini.yaml"
    path.write_text(MINI_CATALOG)
    return path


@pytest.fixture
def compiler(mini_catalog):
    """Fresh compiler loaded with the mini catalog."""
    return load_compiler(mini_catalog)


@pytest.fixture(scope="session")
def core_compiler():
    """Compiler loaded with the bundled sample catalog (shared, do not mutate)."""
    return load_compiler()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def base_build() -> dict:
    """Level 1 build with no choices and its four boosts spent; validates cleanly."""
    return {
        "level": 1,
        "strength": 12,
        "dexterity": 12,
        "constitution": 12,
        "intelligence": 10,
        "wisdom": 10,
        "charisma": 10,
        "abilityBoosts.strength": 1,
        "abilityBoosts.dexterity": 1,
        "abilityBoosts.constitution": 1,
        "abilityBoosts.wisdom": 1,
    }
