"""Semantic workspace clustering service."""

__version__ = "0.1.0"
