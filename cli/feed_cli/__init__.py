"""Livefeed CLI — tail the live message feed from a terminal."""

__version__ = "0.1.0"
