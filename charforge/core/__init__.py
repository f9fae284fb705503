"""Core models for Charforge."""
