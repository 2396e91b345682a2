"""Royalty split and distribution engine."""

__version__ = "0.1.0"
