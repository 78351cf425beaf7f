"""
Repository layer for Livefeed.

All SQL lives here and ONLY here. No database access outside this module.
"""

from backend.repos.message_repo import MessageRepo

__all__ = [
    "MessageRepo",
]
