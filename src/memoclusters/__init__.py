"""Spaced-repetition review engine for memo clusters."""

__version__ = "0.1.0"
