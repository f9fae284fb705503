"""Rank and selection phrases.

    Skill Trained (Athletics; Choose 2 from Acrobatics, Stealth, Thievery)
    Attack Trained (Simple; Martial; Unarmed)
    Ability Boost (Choose 1 from Strength, Constitution; Choose 1 from any)

A phrase grants its fixed elements outright and owes one pick per ``Choose``.
"""

import re

from pydantic import BaseModel, Field

from .attributes import ParseError, split_top_level

RANKS = {"Trained": 1, "Expert": 2, "Master": 3, "Legendary": 4}

# Phrase groups and whether they may embed Choose instructions
PHRASE_GROUPS = {
    "Skill": True,
    "Ability": True,
    "Armor": False,
    "Attack": False,
}

_PHRASE_RE = re.compile(
    r"^(?P<group>[A-Za-z]+)\s+(?P<rank>Trained|Expert|Master|Legendary|Boost)"
    r"\s*(?:\((?P<items>.*)\))?\s*$"
)
_CHOOSE_RE = re.compile(r"^Choose\s+(?P<count>\d+)\s+from\s+(?P<domain>.+)$", re.IGNORECASE)


class PhraseChoice(BaseModel):
    count: int
    domain: list[str] | None = Field(default=None, description="None means any member")


class SelectionPhrase(BaseModel):
    group: str
    rank: int = Field(default=1, description="Proficiency rank; 1 for boosts")
    fixed: list[str] = Field(default_factory=list)
    choices: list[PhraseChoice] = Field(default_factory=list)

    @property
    def is_boost(self) -> bool:
        return self.group == "Ability"


def split_phrase_elements(text: str) -> list[str]:
    """Split a phrase's parenthesized list.

    ``;`` or ``/`` separate elements when present. Otherwise commas do, and
    a ``Choose`` element swallows everything after it.
    """
    text = text.strip()
    if not text:
        return []
    if ";" in text or "/" in text:
        return [p.strip() for p in re.split(r"[;/]", text) if p.strip()]

    pieces = split_top_level(text, ",")
    elements: list[str] = []
    for i, piece in enumerate(pieces):
        if piece.lower().startswith("choose "):
            elements.append(", ".join(pieces[i:]))
            break
        elements.append(piece)
    return elements


def _parse_choice(text: str) -> PhraseChoice:
    match = _CHOOSE_RE.match(text)
    if not match:
        raise ParseError("malformed Choose", text=text)
    domain_text = match.group("domain").strip()
    if domain_text.lower() == "any":
        return PhraseChoice(count=int(match.group("count")))
    if domain_text.lower().startswith("any "):
        raise ParseError("subcategory domains are not supported in phrases", text=text)
    domain = [d.strip().strip('"') for d in domain_text.split(",") if d.strip()]
    return PhraseChoice(count=int(match.group("count")), domain=domain)


def parse_selection_phrase(text: str) -> SelectionPhrase:
    """Parse one rank/selection phrase.

    Example:
        >>> p = parse_selection_phrase("Skill Trained (Athletics; Choose 2 from any)")
        >>> p.group, p.rank, p.fixed, p.choices[0].count
        ('Skill', 1, ['Athletics'], 2)
    """
    text = str(text).strip()
    match = _PHRASE_RE.match(text)
    if not match:
        raise ParseError("unrecognized rank phrase", text=text)

    group = match.group("group")
    rank_word = match.group("rank")
    if group not in PHRASE_GROUPS:
        raise ParseError(f"unknown phrase group {group!r}", text=text)
    if (group == "Ability") != (rank_word == "Boost"):
        raise ParseError(f"{group} does not take {rank_word}", text=text)

    phrase = SelectionPhrase(group=group, rank=RANKS.get(rank_word, 1))
    for element in split_phrase_elements(match.group("items") or ""):
        if element.lower().startswith("choose "):
            if not PHRASE_GROUPS[group]:
                raise ParseError(f"{group} phrases cannot embed choices", text=text)
            phrase.choices.append(_parse_choice(element))
        else:
            phrase.fixed.append(element.strip('"'))

    if not phrase.fixed and not phrase.choices:
        raise ParseError("rank phrase grants nothing", text=text)
    return phrase
