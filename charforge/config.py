"""Configuration management for charforge.

Bounds for the randomizer and the repair engine, plus an optional RNG seed.

Config resolution order (highest priority first):
1. Programmatic (ForgeConfig constructed in code)
2. Environment variables (CHARFORGE_MAX_PASSES, CHARFORGE_SEED, etc.)
3. Config file (~/.config/charforge/config.json)
4. Hardcoded defaults
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


# =============================================================================
# Config file location
# =============================================================================

CONFIG_DIR = Path.home() / ".config" / "charforge"
CONFIG_FILE = CONFIG_DIR / "config.json"

ABILITY_METHODS = ("4d6", "3d6")


# =============================================================================
# Config dataclasses
# =============================================================================


@dataclass
class RandomizerConfig:
    """Allocation randomizer tuning.

    - candidate_cap: most candidates tried per pick
    - ability_method: "4d6" (drop lowest) or "3d6"
    - ability_retries: rerolls while a new ability signal is active
    - weapon_count: weapons picked when the category is randomized
    """

    candidate_cap: int = 50
    ability_method: str = "4d6"
    ability_retries: int = 25
    weapon_count: int = 3


@dataclass
class RepairConfig:
    """Constraint repair bounds."""

    max_passes: int = 8
    protected: list[str] = field(default_factory=lambda: ["level"])


@dataclass
class ForgeConfig:
    """Top-level charforge configuration.

    Examples:
        # Package use, no files needed
        config = ForgeConfig(repair=RepairConfig(max_passes=4), seed=7)

        # CLI use, loads from ~/.config/charforge/config.json
        config = ForgeConfig.load()
    """

    randomizer: RandomizerConfig = field(default_factory=RandomizerConfig)
    repair: RepairConfig = field(default_factory=RepairConfig)
    seed: int | None = None

    @classmethod
    def load(cls) -> "ForgeConfig":
        """Load config from file + env vars.

        Priority: env var values > config.json values > defaults.
        """
        config = cls()

        # Layer 1: Load from config file if it exists
        if CONFIG_FILE.exists():
            try:
                with open(CONFIG_FILE) as f:
                    data = json.load(f)
                _apply_dict(config, data)
            except (json.JSONDecodeError, OSError) as exc:
                logger.warning("Failed to load config from %s: %s", CONFIG_FILE, exc)

        # Layer 2: Env var overrides
        if val := os.environ.get("CHARFORGE_MAX_PASSES"):
            try:
                config.repair.max_passes = int(val)
            except ValueError:
                logger.warning("Invalid CHARFORGE_MAX_PASSES=%r, ignoring", val)
        if val := os.environ.get("CHARFORGE_CANDIDATE_CAP"):
            try:
                config.randomizer.candidate_cap = int(val)
            except ValueError:
                logger.warning("Invalid CHARFORGE_CANDIDATE_CAP=%r, ignoring", val)
        if val := os.environ.get("CHARFORGE_ABILITY_METHOD"):
            if val in ABILITY_METHODS:
                config.randomizer.ability_method = val
            else:
                logger.warning("Invalid CHARFORGE_ABILITY_METHOD=%r, ignoring", val)
        if val := os.environ.get("CHARFORGE_WEAPON_COUNT"):
            try:
                config.randomizer.weapon_count = int(val)
            except ValueError:
                logger.warning("Invalid CHARFORGE_WEAPON_COUNT=%r, ignoring", val)
        if val := os.environ.get("CHARFORGE_SEED"):
            try:
                config.seed = int(val)
            except ValueError:
                logger.warning("Invalid CHARFORGE_SEED=%r, ignoring", val)

        return config

    def save(self) -> None:
        """Save config to ~/.config/charforge/config.json."""
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for display."""
        result: dict[str, Any] = {
            "randomizer": asdict(self.randomizer),
            "repair": asdict(self.repair),
        }
        if self.seed is not None:
            result["seed"] = self.seed
        return result


# =============================================================================
# Config dict application
# =============================================================================


def _apply_dict(config: ForgeConfig, data: dict) -> None:
    """Apply a dict of values onto a ForgeConfig."""
    if "randomizer" in data and isinstance(data["randomizer"], dict):
        for k, v in data["randomizer"].items():
            if hasattr(config.randomizer, k):
                setattr(config.randomizer, k, v)
    if "repair" in data and isinstance(data["repair"], dict):
        for k, v in data["repair"].items():
            if hasattr(config.repair, k):
                setattr(config.repair, k, v)
    if "seed" in data:
        config.seed = None if data["seed"] is None else int(data["seed"])


# =============================================================================
# Global config singleton
# =============================================================================

_config: ForgeConfig | None = None


def get_config() -> ForgeConfig:
    """Get the global ForgeConfig instance.

    First call loads from file + env vars. Subsequent calls return cached instance.
    Use configure() to replace the global config programmatically.
    """
    global _config
    if _config is None:
        _config = ForgeConfig.load()
    return _config


def configure(config: ForgeConfig) -> None:
    """Set the global ForgeConfig programmatically."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global config (forces reload on next get_config())."""
    global _config
    _config = None
