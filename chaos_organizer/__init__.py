"""Chaos Organizer: personal message store with debounced JSON persistence."""

__version__ = "0.1.0"
