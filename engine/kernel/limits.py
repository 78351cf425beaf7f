"""Page/window limit clamping shared by the publication and the history endpoint."""

from __future__ import annotations

import math
from typing import Any

DEFAULT_LIMIT = 30
MAX_LIMIT = 1000


def clamp_limit(value: Any, default: int = DEFAULT_LIMIT, maximum: int = MAX_LIMIT) -> int:
    """
    Clamp a requested limit.

    Absent, non-numeric, NaN and non-positive values give `default`, as
    does anything that floors below 1. Everything else is floored and
    capped at `maximum`.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or number <= 0:
        return default
    if math.isinf(number):
        return maximum
    floored = math.floor(number)
    if floored < 1:
        return default
    return min(floored, maximum)
