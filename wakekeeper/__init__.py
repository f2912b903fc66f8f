"""wakekeeper - resilient interval launcher that keeps the display awake."""
__version__ = "0.1.0"
