"""Kairos — deadline-aware project and study planner."""

__version__ = "0.1.0"
