"""Ranking and feed-composition engine for cards and collections."""

__version__ = "0.1.0"
