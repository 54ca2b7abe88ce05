"""API route modules."""

from . import budget, health, matrix

__all__ = ["budget", "health", "matrix"]
