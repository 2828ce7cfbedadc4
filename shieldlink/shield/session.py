"""Per-visit session state.

A :class:`VisitSession` is created when a visitor's runtime attaches to a
protected link and is discarded when the runtime goes away or the redirect
completes. It is never persisted and never shared between visits.
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from .classifier import InteractionCounters, InteractionKind, Verdict, classify_behavior
from .codec import LinkId
from .config import DEFAULT_CONFIG, ProtectionConfig


class SessionState(str, Enum):
    INIT = "init"
    CLASSIFYING = "classifying"
    CLOAKED = "cloaked"
    GATED = "gated"
    READY = "ready"
    REDIRECTED = "redirected"
    NOT_FOUND = "not_found"
    ERROR = "error"
    ABANDONED = "abandoned"


TERMINAL_STATES = frozenset(
    {
        SessionState.CLOAKED,
        SessionState.REDIRECTED,
        SessionState.NOT_FOUND,
        SessionState.ERROR,
        SessionState.ABANDONED,
    }
)


@dataclass(frozen=True)
class ProtectedLink:
    """Read-only view of a link as the protection core sees it."""

    id: LinkId
    slug: str
    title: str = ""
    destination: Optional[str] = field(default=None, repr=False)
    description: Optional[str] = None
    shield_enabled: bool = False
    is_ultra_link: bool = False
    is_direct: bool = False
    password_protected: bool = False
    config: ProtectionConfig = DEFAULT_CONFIG
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None

    def redacted(self) -> "ProtectedLink":
        """Copy without the destination, safe to keep on a session."""
        return replace(self, destination=None)


def new_session_id() -> str:
    return secrets.token_urlsafe(12)


@dataclass
class VisitSession:
    link: ProtectedLink
    payload: str = field(repr=False)
    start_time: float = 0.0
    session_id: str = field(default_factory=new_session_id)
    verdict: Verdict = Verdict.UNKNOWN
    counters: InteractionCounters = field(default_factory=InteractionCounters)
    state: SessionState = SessionState.INIT
    remaining_ms: int = 0

    @property
    def config(self) -> ProtectionConfig:
        return self.link.config

    @property
    def remaining_seconds(self) -> int:
        # ceil without floats: 2001ms shows as 3
        return -(-self.remaining_ms // 1000)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def elapsed_ms(self, now: float) -> float:
        return (now - self.start_time) * 1000

    def observe(self, kind: InteractionKind, now: float) -> Verdict:
        """Behavioral pass: count one interaction and maybe upgrade the verdict."""
        if self.verdict is Verdict.HUMAN:
            return self.verdict
        self.counters.bump(kind)
        self.verdict = classify_behavior(self.verdict, self.counters, self.elapsed_ms(now))
        return self.verdict

    def auto_confirm(self) -> Verdict:
        """Grant ``HUMAN`` to direct links without interaction, unless already a bot."""
        if self.link.is_direct and self.verdict is Verdict.UNKNOWN:
            self.verdict = Verdict.HUMAN
        return self.verdict


__all__ = [
    "ProtectedLink",
    "SessionState",
    "TERMINAL_STATES",
    "VisitSession",
    "new_session_id",
]
