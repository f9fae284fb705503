"""Key/value blocks and conditional feature entries.

Catalog entities are described by a flat attribute string:

    Features="1:Darkvision","features.Rock Dwarf ? 5:Rock Runner" HitPoints=10

Top-level whitespace separates ``Key=Value`` pairs, top-level commas separate
list items, and double quotes or parentheses group text containing either.
"""

import re

from pydantic import BaseModel

from ..core.models.requirements import Requirement

_KEY_RE = re.compile(r"^[A-Za-z][A-Za-z0-9]*$")
_INT_RE = re.compile(r"^-?\d+$")
_FLOAT_RE = re.compile(r"^-?\d*\.\d+$")
_FEATURE_RE = re.compile(
    r"^(?:(?P<condition>[^?]+?)\s*\?\s*)?"
    r"(?:(?P<level>\d+):)?"
    r"(?P<name>[^:?]+?)"
    r"(?::(?P<group>[^:?]+))?$"
)

AttributeValue = str | int | float


class ParseError(Exception):
    """Raised when an attribute string does not follow the catalog grammar."""

    def __init__(
        self,
        message: str,
        *,
        entity: str | None = None,
        field: str | None = None,
        text: str | None = None,
    ):
        self.reason = message
        self.entity = entity
        self.field = field
        self.text = text
        super().__init__(self._format())

    def _format(self) -> str:
        where = ".".join(p for p in (self.entity, self.field) if p)
        msg = f"{where}: {self.reason}" if where else self.reason
        if self.text is not None:
            msg += f" in {self.text!r}"
        return msg

    def located(self, entity: str, field: str | None = None) -> "ParseError":
        """Copy of this error attributed to an entity/field."""
        return ParseError(
            self.reason,
            entity=entity,
            field=field or self.field,
            text=self.text,
        )


def split_top_level(text: str, separators: str) -> list[str]:
    """Split on any of ``separators`` outside double quotes and parentheses.

    Args:
        text: Text to split
        separators: Separator characters; " " splits on any whitespace

    Returns:
        Non-empty stripped pieces

    Raises:
        ParseError: On an unterminated quote or unbalanced parentheses
    """
    pieces: list[str] = []
    current: list[str] = []
    in_quote = False
    depth = 0
    split_ws = " " in separators

    for ch in text:
        if ch == '"':
            in_quote = not in_quote
        elif not in_quote:
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth < 0:
                    raise ParseError("unbalanced parentheses", text=text)
            elif depth == 0 and (ch in separators or (split_ws and ch.isspace())):
                if split_ws and ch.isspace() and "".join(current).rstrip().endswith(","):
                    # A list continues past whitespace after its comma
                    continue
                pieces.append("".join(current).strip())
                current = []
                continue
        current.append(ch)

    if in_quote:
        raise ParseError("unterminated double quote", text=text)
    if depth != 0:
        raise ParseError("unbalanced parentheses", text=text)

    pieces.append("".join(current).strip())
    return [p for p in pieces if p]


def convert_scalar(token: str) -> AttributeValue:
    """Strip surrounding quotes; convert unquoted numbers."""
    if len(token) >= 2 and token[0] == token[-1] == '"':
        return token[1:-1]
    if _INT_RE.match(token):
        return int(token)
    if _FLOAT_RE.match(token):
        return float(token)
    return token


def parse_attributes(text: str) -> dict[str, list[AttributeValue]]:
    """Parse a key/value block into a mapping of key to list of values.

    Example:
        >>> parse_attributes('Type=General,Skill Require="level >= 2"')
        {'Type': ['General', 'Skill'], 'Require': ['level >= 2']}
    """
    attrs: dict[str, list[AttributeValue]] = {}
    for token in split_top_level(text or "", " "):
        key, sep, value = token.partition("=")
        if not sep:
            raise ParseError("expected Key=Value", text=token)
        if not _KEY_RE.match(key):
            raise ParseError(f"invalid key {key!r}", text=token)
        if key in attrs:
            raise ParseError(f"duplicate key {key!r}", field=key, text=text)
        attrs[key] = [convert_scalar(item) for item in split_top_level(value, ",")]
    return attrs


def attr_value(
    attrs: dict[str, list[AttributeValue]], key: str, default: AttributeValue | None = None
) -> AttributeValue | None:
    """First value of a key, or ``default``."""
    values = attrs.get(key)
    return values[0] if values else default


def attr_list(attrs: dict[str, list[AttributeValue]], key: str) -> list[AttributeValue]:
    return list(attrs.get(key, []))


class FeatureEntry(BaseModel):
    """``[<condition> ? ]<level>:<name>[:<group>]``"""

    name: str
    level: int = 1
    condition: Requirement | None = None
    condition_text: str | None = None
    group: str | None = None


def parse_feature_entry(text: AttributeValue) -> FeatureEntry:
    """Parse one element of a Features or Selectables list.

    Example:
        >>> entry = parse_feature_entry("features.Rock Dwarf ? 5:Rock Runner")
        >>> entry.level, entry.name, entry.condition_text
        (5, 'Rock Runner', 'features.Rock Dwarf')
    """
    # Imported here: requirements imports ParseError from this module
    from .requirements import parse_condition

    text = str(text).strip()
    match = _FEATURE_RE.match(text)
    if not match:
        raise ParseError("malformed feature entry", text=text)

    name = match.group("name").strip()
    if not name:
        raise ParseError("feature entry without a name", text=text)

    condition_text = match.group("condition")
    condition = parse_condition(condition_text) if condition_text else None
    group = match.group("group")

    return FeatureEntry(
        name=name,
        level=int(match.group("level") or 1),
        condition=condition,
        condition_text=condition_text.strip() if condition_text else None,
        group=group.strip() if group else None,
    )


_SLOT_RE = re.compile(r"^(?P<group>[A-Za-z]+\d+):(?P<table>.+)$")


def parse_spell_slots(text: AttributeValue) -> tuple[str, list[tuple[int, int]]]:
    """Parse a ``SpellSlots`` element into its group and level table.

    Example:
        >>> parse_spell_slots("Arcane1:1=2;2=3")
        ('Arcane1', [(1, 2), (2, 3)])
    """
    text = str(text).strip()
    match = _SLOT_RE.match(text)
    if not match:
        raise ParseError("malformed spell slot entry", text=text)

    table = []
    for step in match.group("table").split(";"):
        level, sep, count = step.partition("=")
        if not sep or not _INT_RE.match(level.strip()) or not _INT_RE.match(count.strip()):
            raise ParseError("spell slot steps look like <level>=<count>", text=text)
        table.append((int(level), int(count)))
    table.sort()
    return match.group("group"), table
