from __future__ import annotations

"""Cursor pagination for append-only listings such as invoice history."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Query

DEFAULT_LIMIT = 50
# Hard cap to protect against overly large responses
MAX_LIMIT = 100


@dataclass
class Pagination:
    """Page size and the id to continue below."""

    limit: int = DEFAULT_LIMIT
    cursor: Optional[int] = None

    def next_cursor(self, rows: list[dict]) -> Optional[int]:
        """Return the cursor for the following page, if there may be one."""
        if len(rows) < self.limit or not rows:
            return None
        return rows[-1]["id"]


def pagination(
    limit: int = Query(DEFAULT_LIMIT, ge=1), cursor: Optional[int] = Query(None, ge=1)
) -> Pagination:
    """Return sanitised pagination parameters.

    ``limit`` is capped at :data:`MAX_LIMIT`; ``cursor`` is the smallest id
    already seen and stays ``None`` on the first page.
    """

    return Pagination(limit=min(limit, MAX_LIMIT), cursor=cursor)
