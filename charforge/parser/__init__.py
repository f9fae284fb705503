"""Attribute mini-language parser.

Turns catalog attribute strings into structured fragments for the compiler:
key/value blocks, conditional feature entries, requirement expressions and
rank/selection phrases. Pure and deterministic; malformed input raises
``ParseError`` naming the offending text.
"""

from .attributes import (
    AttributeValue,
    FeatureEntry,
    ParseError,
    attr_list,
    attr_value,
    convert_scalar,
    parse_attributes,
    parse_feature_entry,
    parse_spell_slots,
    split_top_level,
)
from .phrases import (
    RANKS,
    PhraseChoice,
    SelectionPhrase,
    parse_selection_phrase,
    split_phrase_elements,
)
from .requirements import (
    parse_choose,
    parse_condition,
    parse_conjunct,
    parse_requirement,
    parse_requirement_group,
)

__all__ = [
    "AttributeValue",
    "FeatureEntry",
    "ParseError",
    "attr_list",
    "attr_value",
    "convert_scalar",
    "parse_attributes",
    "parse_feature_entry",
    "parse_spell_slots",
    "split_top_level",
    "RANKS",
    "PhraseChoice",
    "SelectionPhrase",
    "parse_selection_phrase",
    "split_phrase_elements",
    "parse_choose",
    "parse_condition",
    "parse_conjunct",
    "parse_requirement",
    "parse_requirement_group",
]
