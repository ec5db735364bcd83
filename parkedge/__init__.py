"""Parking sensor core: spot state and timers, frame buffering, event messages and server uploads."""

__version__ = "0.1.0"