"""Scheduler service package.

This package contains the persistence layer shared across process lifetimes:
- store.py: SQLite durable config + trigger run history
"""
from .store import DurableConfig

__all__ = ["DurableConfig"]
