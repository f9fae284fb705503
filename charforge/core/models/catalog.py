"""Catalog models: named game entities and their attribute strings."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator

EntityKind = Literal[
    "Alignment",
    "Ancestry",
    "Armor",
    "Background",
    "Class",
    "Deity",
    "Feat",
    "Feature",
    "Language",
    "School",
    "Shield",
    "Skill",
    "Spell",
    "Weapon",
]

# Compile order: leaves first. Any order yields the same rules; this one
# avoids recompiling feats when their ancestry or class arrives later.
ENTITY_KINDS: tuple[str, ...] = (
    "Alignment",
    "Language",
    "School",
    "Skill",
    "Armor",
    "Shield",
    "Weapon",
    "Ancestry",
    "Background",
    "Class",
    "Deity",
    "Feature",
    "Feat",
    "Spell",
)

DEFAULT_CATALOG = Path(__file__).resolve().parents[2] / "data" / "core.yaml"


class EntityDefinition(BaseModel):
    """One named game object and its attribute string."""

    kind: EntityKind
    name: str
    attributes: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.kind, self.name)


class Catalog(BaseModel):
    """A set of entity definitions grouped by kind."""

    name: str = "catalog"
    description: str | None = None
    entities: dict[EntityKind, dict[str, str]] = Field(default_factory=dict)

    @field_validator("entities", mode="before")
    @classmethod
    def _blank_attributes(cls, value):
        # YAML `Common:` (no value) means an entity without attributes
        if isinstance(value, dict):
            return {
                kind: {name: attrs or "" for name, attrs in (entries or {}).items()}
                for kind, entries in value.items()
            }
        return value

    def definitions(self) -> list[EntityDefinition]:
        """All definitions in compile order."""
        result = []
        for kind in ENTITY_KINDS:
            for name, attrs in self.entities.get(kind, {}).items():
                result.append(EntityDefinition(kind=kind, name=name, attributes=attrs))
        return result

    def names(self, kind: str) -> list[str]:
        return list(self.entities.get(kind, {}))

    def get(self, kind: str, name: str) -> EntityDefinition | None:
        attrs = self.entities.get(kind, {}).get(name)
        if attrs is None:
            return None
        return EntityDefinition(kind=kind, name=name, attributes=attrs)

    def __len__(self) -> int:
        return sum(len(entries) for entries in self.entities.values())

    @classmethod
    def from_yaml(cls, path: Path | str) -> "Catalog":
        """Load a catalog from a YAML file."""
        path = Path(path)

        with open(path) as f:
            data = yaml.safe_load(f)

        return cls.model_validate(data or {})

    @classmethod
    def default(cls) -> "Catalog":
        """The sample catalog bundled with the package."""
        return cls.from_yaml(DEFAULT_CATALOG)

    def to_yaml(self, path: Path | str) -> None:
        """Save the catalog to a YAML file."""
        with open(Path(path), "w") as f:
            yaml.safe_dump(
                self.model_dump(exclude_none=True),
                f,
                sort_keys=False,
                allow_unicode=True,
            )
