"""Foreground app tracking."""
from .observer import ForegroundObserver

__all__ = ["ForegroundObserver"]
