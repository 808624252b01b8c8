"""Context bus for broadcasting named context records."""

from chainbridge.context.bus import ContextBus, ContextMapping, ContextRecord

__all__ = ["ContextBus", "ContextMapping", "ContextRecord"]
