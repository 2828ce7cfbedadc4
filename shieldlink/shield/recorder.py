"""Fire-and-forget reporting of shield actions to the analytics collaborator."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, Set

import httpx
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from .codec import LinkId
from .errors import RecorderDeliveryError

logger = logging.getLogger(__name__)

PROCEED = "proceed"


@dataclass
class ClickActionRecord:
    link_id: LinkId
    action: str
    verdict_was_bot: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    context: Dict[str, Optional[str]] = field(default_factory=dict)


def device_for(user_agent: Optional[str], verdict_was_bot: bool) -> str:
    if verdict_was_bot:
        return "bot"
    return "mobile" if user_agent and "Mobile" in user_agent else "desktop"


async def write_shield_action(db: Any, record: ClickActionRecord) -> None:
    """Add the ``ShieldEvent`` row for ``record`` and count a proceed. The caller commits."""
    from .. import models

    user_agent = record.context.get("user_agent")
    db.add(
        models.ShieldEvent(
            link_id=record.link_id,
            event_type=f"shield_{record.action}",
            verdict_was_bot=record.verdict_was_bot,
            user_agent=user_agent,
            referer=record.context.get("referer"),
            country=record.context.get("country"),
            device=device_for(user_agent, record.verdict_was_bot),
            timestamp=record.timestamp,
        )
    )
    if record.action == PROCEED:
        await db.execute(
            update(models.Link)
            .where(models.Link.id == record.link_id)
            .values(clicks=models.Link.clicks + 1)
        )


class ActionSink(Protocol):
    async def deliver(self, record: ClickActionRecord) -> None:
        ...


class DatabaseActionSink:
    """Writes a ``ShieldEvent`` row and bumps the link's click counter."""

    def __init__(self, session_factory: Any) -> None:
        self._session_factory = session_factory

    async def deliver(self, record: ClickActionRecord) -> None:
        try:
            async with self._session_factory() as db:
                await write_shield_action(db, record)
                await db.commit()
        except SQLAlchemyError as exc:
            raise RecorderDeliveryError(f"Could not store shield event: {exc}") from exc


class HttpActionSink:
    """POSTs the record to a remote ``shield-action`` endpoint."""

    def __init__(self, endpoint: str, *, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None) -> None:
        self._endpoint = endpoint
        self._timeout = timeout
        self._client = client

    async def deliver(self, record: ClickActionRecord) -> None:
        body = {"linkId": record.link_id, "action": record.action, "isBot": record.verdict_was_bot}
        headers = {}
        if record.context.get("user_agent"):
            headers["User-Agent"] = record.context["user_agent"]
        if record.context.get("referer"):
            headers["Referer"] = record.context["referer"]
        try:
            if self._client is not None:
                res = await self._client.post(self._endpoint, json=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    res = await client.post(self._endpoint, json=body, headers=headers)
            res.raise_for_status()
        except httpx.HTTPError as exc:
            raise RecorderDeliveryError(f"Analytics endpoint rejected shield event: {exc}") from exc


class ActionRecorder:
    """Schedules deliveries in the background; callers never wait on them.

    One record per completed session is the orchestrator's job (its redirect
    latch), the recorder itself does no de-duplication.
    """

    def __init__(self, sink: ActionSink) -> None:
        self.sink = sink
        self._pending: Set[asyncio.Task] = set()

    def record(
        self,
        link_id: LinkId,
        verdict_was_bot: bool,
        action: str = PROCEED,
        context: Optional[Dict[str, Optional[str]]] = None,
    ) -> asyncio.Task:
        record = ClickActionRecord(link_id, action, verdict_was_bot, context=dict(context or {}))
        task = asyncio.get_running_loop().create_task(self._deliver(record), name=f"shield-record-{link_id}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, record: ClickActionRecord) -> None:
        try:
            await self.sink.deliver(record)
        except RecorderDeliveryError as exc:
            logger.warning("Dropped shield %s for link %s: %s", record.action, record.link_id, exc)
        except Exception:
            logger.exception("Unexpected failure delivering shield %s for link %s", record.action, record.link_id)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


__all__ = [
    "PROCEED",
    "ActionRecorder",
    "ActionSink",
    "ClickActionRecord",
    "DatabaseActionSink",
    "HttpActionSink",
    "device_for",
    "write_shield_action",
]
