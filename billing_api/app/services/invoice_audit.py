"""Fire-and-forget audit trail for invoice mutations.

:func:`record` schedules the write on the running event loop and returns
straight away. The write opens its own session, so it neither joins the
caller's transaction nor can roll it back, and every failure inside it is
logged and counted rather than raised.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..models import InvoiceHistory, User
from ..routes_metrics import invoice_audit_failures_total, invoice_audit_writes_total

SYSTEM_ACTOR = "System"
UNKNOWN_ACTOR = "Unknown User"
LOOKUP_FAILED_ACTOR = "Error Fetching Name"

logger = logging.getLogger(__name__)

# strong references to in-flight writes
_pending: set[asyncio.Task] = set()


def _to_user_id(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class RequestContext:
    """Who triggered an invoice action and from where."""

    user_id: int | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    @classmethod
    def from_request(cls, request: Request) -> "RequestContext":
        user_id = getattr(request.state, "user_id", None)
        if user_id is None:
            user_id = request.headers.get("X-User-ID")
        return cls(
            user_id=_to_user_id(user_id),
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )


async def fetch_user_name(session: AsyncSession, user_id: int) -> str | None:
    return await session.scalar(select(User.name).where(User.id == user_id))


async def resolve_actor_name(session: AsyncSession, user_id: int | None) -> str:
    """Return the display name recorded for ``user_id``.

    No user id means the action came from the system itself. A lookup
    failure is logged and yields a placeholder so the entry is still written.
    """

    if user_id is None:
        return SYSTEM_ACTOR
    try:
        name = await fetch_user_name(session, user_id)
    except Exception:
        logger.exception("actor lookup failed user_id=%s", user_id)
        await session.rollback()
        return LOOKUP_FAILED_ACTOR
    if name is None:
        return UNKNOWN_ACTOR
    return name


async def _write_entry(
    invoice_id: int,
    action: str,
    details: str,
    changes: Mapping[str, Any] | None,
    context: RequestContext,
) -> None:
    try:
        async with get_session() as session:
            user_name = await resolve_actor_name(session, context.user_id)
            session.add(
                InvoiceHistory(
                    invoice_id=invoice_id,
                    action=action,
                    user_id=context.user_id,
                    user_name=user_name,
                    changes=jsonable_encoder(dict(changes or {})),
                    details=details,
                    ip_address=context.ip_address,
                    user_agent=context.user_agent,
                )
            )
            await session.commit()
    except Exception:
        invoice_audit_failures_total.inc()
        logger.exception(
            "invoice audit write failed invoice_id=%s action=%s", invoice_id, action
        )
        return
    invoice_audit_writes_total.inc()


def record(
    invoice_id: int,
    action: str,
    details: str,
    changes: Mapping[str, Any] | None = None,
    context: RequestContext | None = None,
) -> None:
    """Schedule an audit entry for ``invoice_id`` without awaiting it."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.warning(
            "no running loop, dropping audit entry invoice_id=%s action=%s",
            invoice_id,
            action,
        )
        return
    task = loop.create_task(
        _write_entry(invoice_id, action, details, changes, context or RequestContext())
    )
    _pending.add(task)
    task.add_done_callback(_pending.discard)


def pending() -> int:
    return len(_pending)


async def drain() -> None:
    """Wait for audit writes scheduled on the current loop to finish."""
    loop = asyncio.get_running_loop()
    while True:
        tasks = [task for task in _pending if task.get_loop() is loop]
        if not tasks:
            return
        await asyncio.gather(*tasks, return_exceptions=True)


async def list_history(
    session: AsyncSession,
    invoice_id: int,
    limit: int = 100,
    cursor: int | None = None,
) -> list[dict]:
    """Return history entries for ``invoice_id``, newest first."""
    stmt = (
        select(InvoiceHistory)
        .where(InvoiceHistory.invoice_id == invoice_id)
        .order_by(InvoiceHistory.id.desc())
    )
    if cursor:
        stmt = stmt.where(InvoiceHistory.id < cursor)
    rows = (await session.execute(stmt.limit(limit))).scalars().all()
    return [
        {
            "id": row.id,
            "invoice_id": row.invoice_id,
            "action": row.action,
            "user_id": row.user_id,
            "user_name": row.user_name,
            "changes": row.changes or {},
            "details": row.details,
            "ip_address": row.ip_address,
            "user_agent": row.user_agent,
            "created_at": row.created_at.isoformat() if row.created_at else None,
        }
        for row in rows
    ]


__all__ = [
    "RequestContext",
    "drain",
    "fetch_user_name",
    "list_history",
    "pending",
    "record",
    "resolve_actor_name",
]
