"""Build generation: random allocation and constraint repair."""

from .randomizer import BUILD_ORDER, CATEGORIES, Randomizer, skill_rank_ceiling
from .repair import RepairEngine

__all__ = [
    "BUILD_ORDER",
    "CATEGORIES",
    "Randomizer",
    "skill_rank_ceiling",
    "RepairEngine",
]
