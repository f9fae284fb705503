"""Charforge: rule compiler, randomizer and repair engine for character builds."""

__version__ = "0.3.0"
