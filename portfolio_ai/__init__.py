"""Hierarchical AI analysis of creator portfolios."""

__version__ = "0.1.0"
