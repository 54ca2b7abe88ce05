"""Commune travel time matrix: computation, budgeting, congestion profiles and serving."""

__version__ = "0.1.0"
