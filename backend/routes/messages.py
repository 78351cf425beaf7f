"""Historical fetch — GET /api/messages, keyset-paginated by createdAt."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from backend.models.message import HistoryQuery, MessageResponse
from backend.store import get_store
from engine.kernel.predicate import compile_filters
from engine.kernel.store import MessageStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.get("", status_code=200)
async def list_messages(
    request: Request,
    store: MessageStore = Depends(get_store),
) -> list[MessageResponse]:
    """
    Fetch one page of messages, used while the live channel is paused.

    Query parameters (all optional, malformed values fall back to defaults):
    - types: comma-joined subset of info,warn,error,debug
    - source: exact source match
    - search: case-insensitive literal substring of text
    - startDate / endDate: YYYY-MM-DD, local day bounds, inclusive
    - limit: page size, clamped
    - sortDirection: asc | desc (default desc)
    - before: ISO-8601 createdAt of the last record already held
    - beforeId: id of that record, to page safely through equal timestamps

    The sort always includes id as a tiebreaker, so walking pages with
    before/beforeId never repeats or skips a record.
    """
    try:
        query = HistoryQuery.from_raw(dict(request.query_params))
        predicate, sort = compile_filters(
            query.to_filters(),
            before=query.before,
            before_id=query.before_id,
            tiebreak=True,
        )
        messages = await store.find(predicate, sort, query.limit)
    except Exception:
        logger.exception("messages: history fetch failed")
        return JSONResponse(status_code=500, content={"error": "internal_error"})

    return [MessageResponse.from_message(m) for m in messages]
