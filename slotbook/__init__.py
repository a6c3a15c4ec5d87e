"""Booking consistency engine for slot-based appointment scheduling."""

__version__ = "0.1.0"
