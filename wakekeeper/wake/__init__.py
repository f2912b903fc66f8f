"""Display wakefulness: wake-hold, overlay and haptic pulses."""
from .enforcer import WakeEnforcer
from .haptics import HapticPulser

__all__ = ["WakeEnforcer", "HapticPulser"]
