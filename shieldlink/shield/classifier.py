"""Visitor classification.

Two passes decide whether a visit comes from an automated agent:

* the static pass looks at the declared agent string and, when the runtime
  has reported one, the environment probe. It can only ever say ``BOT`` or
  ``UNKNOWN``; static signals never prove a human.
* the behavioral pass counts interactions during the countdown and upgrades
  ``UNKNOWN`` to ``HUMAN`` as soon as any low-friction threshold is crossed.

Everything here is a pure function of its inputs so it can be exercised
without a browser.
"""
from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Mapping, Optional


class Verdict(str, Enum):
    BOT = "bot"
    HUMAN = "human"
    UNKNOWN = "unknown"


# Crawlers, scrapers and social link unfurlers
CRAWLER_SIGNATURES: tuple[str, ...] = (
    "bot",
    "crawl",
    "spider",
    "scrape",
    "facebook",
    "facebookexternalhit",
    "whatsapp",
    "telegram",
    "twitter",
    "linkedin",
    "pinterest",
    "instagram",
    "snap",
    "tiktok",
    "discord",
    "slack",
    "headlesschrome",
)

TRUST_THRESHOLD = 5

POINTER_MOVE_THRESHOLD = 10
KEY_PRESS_THRESHOLD = 2
CLICK_MIN_ELAPSED_MS = 100


@dataclass(frozen=True)
class EnvironmentProbe:
    """Capability signals reported by the visitor's runtime."""

    has_graphics: bool = False
    has_webrtc: bool = False
    has_media_devices: bool = False
    screen_valid: bool = False
    viewport_valid: bool = False
    has_plugins: bool = False
    pixel_ratio_valid: bool = False
    has_permissions: bool = False
    has_languages: bool = False
    webdriver: bool = False
    automation_markers: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "EnvironmentProbe":
        known = {f.name for f in fields(cls)}
        return cls(**{key: bool(value) for key, value in data.items() if key in known})

    @property
    def automated(self) -> bool:
        return self.webdriver or self.automation_markers

    @property
    def trust_count(self) -> int:
        signals = (
            self.has_graphics,
            self.has_webrtc,
            self.has_media_devices,
            self.screen_valid,
            self.viewport_valid,
            self.has_plugins,
            self.pixel_ratio_valid,
            self.has_permissions,
            self.has_languages,
            not self.webdriver,
            not self.automation_markers,
        )
        return sum(1 for signal in signals if signal)


def matches_crawler(agent_string: Optional[str]) -> Optional[str]:
    """Return the first crawler signature found in the agent string."""
    lowered = (agent_string or "").lower()
    for signature in CRAWLER_SIGNATURES:
        if signature in lowered:
            return signature
    return None


def classify_static(agent_string: Optional[str], probe: Optional[EnvironmentProbe] = None) -> Verdict:
    if matches_crawler(agent_string):
        return Verdict.BOT
    if probe is not None:
        if probe.automated or probe.trust_count < TRUST_THRESHOLD:
            return Verdict.BOT
    return Verdict.UNKNOWN


class InteractionKind(str, Enum):
    POINTER_MOVE = "pointer"
    CLICK = "click"
    TOUCH = "touch"
    KEY_PRESS = "key"


@dataclass
class InteractionCounters:
    pointer_moves: int = 0
    clicks: int = 0
    touches: int = 0
    key_presses: int = 0

    def bump(self, kind: InteractionKind) -> None:
        if kind is InteractionKind.POINTER_MOVE:
            self.pointer_moves += 1
        elif kind is InteractionKind.CLICK:
            self.clicks += 1
        elif kind is InteractionKind.TOUCH:
            self.touches += 1
        elif kind is InteractionKind.KEY_PRESS:
            self.key_presses += 1

    def shows_human(self, elapsed_ms: float) -> bool:
        # Any single threshold is enough; these are not summed into a score.
        return (
            self.pointer_moves > POINTER_MOVE_THRESHOLD
            or (self.clicks > 0 and elapsed_ms >= CLICK_MIN_ELAPSED_MS)
            or self.touches >= 1
            or self.key_presses > KEY_PRESS_THRESHOLD
        )


def classify_behavior(verdict: Verdict, counters: InteractionCounters, elapsed_ms: float) -> Verdict:
    """Upgrade an ``UNKNOWN`` verdict once the counters show a human. Never downgrades."""
    if verdict is Verdict.UNKNOWN and counters.shows_human(elapsed_ms):
        return Verdict.HUMAN
    return verdict


__all__ = [
    "CRAWLER_SIGNATURES",
    "TRUST_THRESHOLD",
    "EnvironmentProbe",
    "InteractionCounters",
    "InteractionKind",
    "Verdict",
    "classify_behavior",
    "classify_static",
    "matches_crawler",
]
