"""Laro exercise scoring and progression engine."""

__version__ = "0.1.0"
