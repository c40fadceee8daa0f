"""SlotShift: appointment slot transfer and schedule shift engine."""

__version__ = "0.1.0"
