"""
Pydantic models for Livefeed.

All data shapes defined here. No imports from db, repos, or routes.
"""

from backend.models.message import HistoryQuery, MessageQuery, MessageResponse

__all__ = [
    "MessageResponse",
    "MessageQuery",
    "HistoryQuery",
]
