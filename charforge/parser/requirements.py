"""Requirement expression parser.

Grammar (one list element of a Require/Imply field):

    group       := alternative ('||' alternative)*
    alternative := conjunct ('/' conjunct)*
    conjunct    := path [op value] | 'Choose' N 'from' domain
    op          := '>=' | '<=' | '==' | '!=' | '=~' | '!~' | '>' | '<'
    domain      := 'any' [Sub] | item (',' item)*

Every list element is a separate group and all groups must hold.
"""

import re
from typing import Iterable

from ..core.models.requirements import (
    Alternative,
    Choose,
    Comparison,
    Requirement,
    RequirementGroup,
)
from .attributes import ParseError

_COMPARISON_RE = re.compile(
    r"^(?P<path>[^<>!=~]+?)\s*"
    r"(?:(?P<op>>=|<=|==|!=|=~|!~|>|<)\s*(?P<value>.+?))?$"
)
_CHOOSE_RE = re.compile(r"^Choose\s+(?P<count>\d+)\s+from\s+(?P<domain>.+)$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")


def _split_outside_quotes(text: str, sep: str) -> list[str]:
    """Split on ``sep`` outside single or double quotes."""
    pieces: list[str] = []
    quote: str | None = None
    start = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == quote:
                quote = None
        elif ch in "'\"":
            quote = ch
        elif text.startswith(sep, i):
            pieces.append(text[start:i])
            i += len(sep)
            start = i
            continue
        i += 1
    if quote:
        raise ParseError("unterminated quote", text=text)
    pieces.append(text[start:])
    return [p.strip() for p in pieces]


def _parse_literal(text: str) -> int | float | str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return text[1:-1]
    if _NUMBER_RE.match(text):
        return float(text) if "." in text else int(text)
    return text


def parse_choose(text: str, category: str = "feats") -> Choose | None:
    """Parse ``Choose N from <domain>``; None if ``text`` is not a Choose."""
    match = _CHOOSE_RE.match(text.strip())
    if not match:
        return None

    count = int(match.group("count"))
    domain_text = match.group("domain").strip()
    words = domain_text.split(None, 1)

    if words and words[0].lower() == "any":
        aggregate = f"allocated.{category}"
        if len(words) > 1:
            aggregate += f".{words[1].strip()}"
        return Choose(count=count, category=category, aggregate=aggregate)

    domain = []
    for item in _split_outside_quotes(domain_text, ","):
        item = str(_parse_literal(item))
        if not item:
            raise ParseError("empty Choose domain entry", text=text)
        domain.append(item if "." in item else f"features.{item}")
    return Choose(count=count, category=category, domain=domain)


def parse_conjunct(text: str, category: str = "feats") -> Comparison | Choose:
    text = text.strip()
    if not text:
        raise ParseError("empty requirement term")

    choose = parse_choose(text, category)
    if choose is not None:
        return choose

    match = _COMPARISON_RE.match(text)
    if not match:
        raise ParseError("unrecognized requirement term", text=text)

    path = match.group("path").strip()
    op = match.group("op")
    if op is None:
        return Comparison(path=path)

    value_text = match.group("value")
    if not value_text:
        raise ParseError("comparison without a value", text=text)
    return Comparison(path=path, op=op, value=_parse_literal(value_text))


def parse_requirement_group(text: str, category: str = "feats") -> RequirementGroup:
    """Parse one ``||``-joined group of ``/``-joined alternatives."""
    alternatives = []
    for alt_text in _split_outside_quotes(text, "||"):
        conjuncts = [
            parse_conjunct(term, category) for term in _split_outside_quotes(alt_text, "/")
        ]
        alternatives.append(Alternative(conjuncts=conjuncts))
    return RequirementGroup(text=text.strip(), alternatives=alternatives)


def parse_requirement(
    items: str | Iterable[str], category: str = "feats"
) -> Requirement:
    """Parse a Require/Imply field.

    Args:
        items: A single requirement string or the field's list of strings
        category: Category used for ``Choose N from any`` aggregates

    Returns:
        Requirement with one group per item

    Raises:
        ParseError: If any item is malformed

    Example:
        >>> req = parse_requirement(["level >= 5", "features.Rage"])
        >>> req.evaluate({"level": 6, "features.Rage": 1})
        True
    """
    if isinstance(items, str):
        items = [items]
    groups = []
    for item in items:
        try:
            groups.append(parse_requirement_group(str(item), category))
        except ParseError as e:
            if e.text is None:
                raise ParseError(e.reason, text=str(item)) from e
            raise
    return Requirement(groups=groups)


def parse_condition(text: str) -> Requirement:
    """Parse the condition of a conditional feature entry."""
    requirement = parse_requirement([text])
    for group in requirement.groups:
        for alternative in group.alternatives:
            if any(isinstance(c, Choose) for c in alternative.conjuncts):
                raise ParseError("Choose is not allowed in a condition", text=text)
    return requirement
