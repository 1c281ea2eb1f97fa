"""Recreational hockey league backend: tournaments, brackets, waitlists."""

__version__ = "0.4.0"
