"""Rule compiler: turns catalog entities into derivation rules and signals."""

from .context import ABILITIES, CatalogError, EntityContext, Registrations, prefix_of
from .core import KIND_EMITTERS, SINGLE_CHOICES, RuleCompiler, load_compiler
from .entities import follower_alignments

__all__ = [
    "ABILITIES",
    "CatalogError",
    "EntityContext",
    "Registrations",
    "prefix_of",
    "KIND_EMITTERS",
    "SINGLE_CHOICES",
    "RuleCompiler",
    "load_compiler",
    "follower_alignments",
]
