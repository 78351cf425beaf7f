"""
Livefeed Kernel — the pure synchronization core.

Components:
  predicate  — FilterState → (Predicate, SortSpec), shared by client and server
  limits     — window/page limit clamping
  store      — record store protocol, observers, and the in-memory store
  merge      — live window + scratch cache merge, pagination growth
"""

from engine.kernel.filters import DEFAULT_FILTERS, FilterState
from engine.kernel.limits import DEFAULT_LIMIT, MAX_LIMIT, clamp_limit
from engine.kernel.merge import Pager, ScratchCache, merge_views
from engine.kernel.predicate import MATCH_ALL, Cursor, Predicate, SortSpec, compile_filters
from engine.kernel.store import MemoryMessageStore, MessageStore, Observer
from engine.kernel.types import MESSAGE_TYPES, Change, Message

__all__ = [
    "Message",
    "Change",
    "MESSAGE_TYPES",
    "FilterState",
    "DEFAULT_FILTERS",
    "compile_filters",
    "Predicate",
    "SortSpec",
    "Cursor",
    "MATCH_ALL",
    "clamp_limit",
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
    "MessageStore",
    "MemoryMessageStore",
    "Observer",
    "merge_views",
    "ScratchCache",
    "Pager",
]
