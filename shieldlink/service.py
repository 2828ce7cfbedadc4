"""Wires the shield core to the store, the settings and the session channel."""
from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import database, models, settings
from .shield import config as shield_config
from .shield.classifier import Verdict, classify_static
from .shield.codec import PayloadCodec
from .shield.errors import LinkNotFound
from .shield.latch import MemoryLatch, RedirectLatch, RedisLatch
from .shield.navigation import FixedStrategyPicker, Navigator, StrategyPicker, picker_for
from .shield.orchestrator import (
    AUTO_CONFIRM_DELAY_MS,
    AUTO_PROCEED_GRACE_MS,
    TICK_MS,
    RedirectOrchestrator,
    UpdateListener,
)
from .shield.recorder import ActionRecorder, ActionSink, DatabaseActionSink, HttpActionSink
from .shield.session import ProtectedLink, VisitSession

logger = logging.getLogger(__name__)


def to_protected_link(row: models.Link) -> ProtectedLink:
    return ProtectedLink(
        id=row.id,
        slug=row.slug,
        title=row.title or "",
        destination=row.destination,
        description=row.description,
        shield_enabled=bool(row.shield_enabled),
        is_ultra_link=bool(row.is_ultra_link),
        is_direct=bool(row.is_direct),
        password_protected=row.password is not None,
        config=shield_config.load(row.shield_config),
        meta_title=row.meta_title,
        meta_description=row.meta_description,
    )


class ShieldService:
    """Long-lived collaborators shared by every visit, plus the live sessions."""

    def __init__(
        self,
        *,
        codec: PayloadCodec,
        recorder: ActionRecorder,
        latch: RedirectLatch,
        ultra_picker: StrategyPicker,
        standard_picker: Optional[StrategyPicker] = None,
        clock: Callable[[], float] = time.monotonic,
        tick_ms: int = TICK_MS,
        grace_ms: int = AUTO_PROCEED_GRACE_MS,
        confirm_delay_ms: int = AUTO_CONFIRM_DELAY_MS,
    ) -> None:
        self.codec = codec
        self.recorder = recorder
        self.latch = latch
        self.ultra_picker = ultra_picker
        self.standard_picker = standard_picker or FixedStrategyPicker()
        self.clock = clock
        self.tick_ms = tick_ms
        self.grace_ms = grace_ms
        self.confirm_delay_ms = confirm_delay_ms
        self._sessions: Dict[str, RedirectOrchestrator] = {}

    @classmethod
    def from_settings(cls) -> "ShieldService":
        if settings.ANALYTICS_URL:
            sink: ActionSink = HttpActionSink(settings.ANALYTICS_URL)
        else:
            sink = DatabaseActionSink(database.async_session)

        if settings.SHIELD_LATCH_BACKEND == "redis":
            latch: RedirectLatch = RedisLatch(database.redis_client, ttl_seconds=settings.SHIELD_LATCH_TTL_SECONDS)
        else:
            latch = MemoryLatch()

        return cls(
            codec=PayloadCodec(settings.SECRET_KEY, ttl_seconds=settings.PAYLOAD_TTL_SECONDS),
            recorder=ActionRecorder(sink),
            latch=latch,
            ultra_picker=picker_for(settings.ULTRA_NAVIGATION),
        )

    @property
    def active_sessions(self) -> Dict[str, RedirectOrchestrator]:
        return dict(self._sessions)

    async def load_link(self, db: AsyncSession, slug: str) -> ProtectedLink:
        res = await db.execute(select(models.Link).where(models.Link.slug == slug))
        row = res.scalar_one_or_none()
        if row is None:
            raise LinkNotFound(slug)
        return to_protected_link(row)

    def page_verdict(self, agent_string: Optional[str]) -> Verdict:
        """First-render decision input: declared agent only, no runtime probe yet."""
        return classify_static(agent_string)

    def issue_payload(self, link: ProtectedLink) -> str:
        return self.codec.encode(link.destination, link.id)

    def open_session(
        self,
        link: ProtectedLink,
        payload: str,
        *,
        navigator: Navigator,
        listener: Optional[UpdateListener] = None,
        context: Optional[Dict[str, Optional[str]]] = None,
    ) -> RedirectOrchestrator:
        session = VisitSession(link=link.redacted(), payload=payload)
        orchestrator = RedirectOrchestrator(
            session,
            codec=self.codec,
            recorder=self.recorder,
            navigator=navigator,
            latch=self.latch,
            picker=self.ultra_picker if link.is_ultra_link else self.standard_picker,
            listener=listener,
            context=context,
            clock=self.clock,
            tick_ms=self.tick_ms,
            grace_ms=self.grace_ms,
            confirm_delay_ms=self.confirm_delay_ms,
        )
        self._sessions[session.session_id] = orchestrator
        return orchestrator

    def release(self, orchestrator: RedirectOrchestrator) -> None:
        orchestrator.cancel()
        self._sessions.pop(orchestrator.session.session_id, None)

    async def shutdown(self) -> None:
        if self._sessions:
            logger.info("Abandoning %d live shield sessions", len(self._sessions))
        for orchestrator in list(self._sessions.values()):
            self.release(orchestrator)
        await self.recorder.drain()


__all__ = ["ShieldService", "to_protected_link"]
