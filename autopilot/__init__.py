"""Unattended job discovery, scoring and application."""

__version__ = "0.1.0"
