"""Per-link protection configuration.

The stored shape is ``{"level": 1|2, "timer": <ms>, "features": [...]}``.
:func:`load` accepts whatever the store hands back (``None``, a JSON string,
bytes or an already-decoded mapping) and never raises: anything it cannot
make sense of falls back to the defaults.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Mapping

from .errors import ConfigParseError

logger = logging.getLogger(__name__)

DEFAULT_LEVEL = 2
DEFAULT_TIMER_MS = 3000
LEVELS = (1, 2)


class FeatureFlag(str, Enum):
    ADAPTIVE_CONTENT = "adaptive-content"
    AI_DETECTION = "ai-detection"
    JS_OBFUSCATION = "js-obfuscation"


@dataclass(frozen=True)
class ProtectionConfig:
    level: int = DEFAULT_LEVEL
    timer_ms: int = DEFAULT_TIMER_MS
    features: FrozenSet[FeatureFlag] = field(default_factory=frozenset)

    @property
    def auto_proceed(self) -> bool:
        """Level 2 redirects on its own once the countdown is over."""
        return self.level == 2

    def has(self, flag: FeatureFlag) -> bool:
        return flag in self.features

    def to_wire(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "timer": self.timer_ms,
            "features": sorted(flag.value for flag in self.features),
        }

    def dumps(self) -> str:
        return json.dumps(self.to_wire())


DEFAULT_CONFIG = ProtectionConfig()


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a meaningful level or timer
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _level(value: Any) -> int:
    if _is_number(value) and value in LEVELS:
        return int(value)
    return DEFAULT_LEVEL


def _timer(value: Any) -> int:
    if not _is_number(value) or value != value or value < 0 or value == float("inf"):
        return DEFAULT_TIMER_MS
    return int(value)


def _features(value: Any) -> FrozenSet[FeatureFlag]:
    if not isinstance(value, (list, tuple, set, frozenset)):
        return frozenset()
    flags = set()
    for item in value:
        try:
            flags.add(FeatureFlag(item))
        except ValueError:
            logger.debug("Ignoring unknown shield feature %r", item)
    return frozenset(flags)


def _parse(raw: Any) -> Mapping[str, Any]:
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ConfigParseError("Config bytes are not utf-8") from exc
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise ConfigParseError(f"Config is not valid JSON: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise ConfigParseError(f"Config must be an object, got {type(raw).__name__}")
    return raw


def load(raw: Any) -> ProtectionConfig:
    """Normalize a stored protection config, falling back to safe defaults."""
    if raw is None or raw == "":
        return DEFAULT_CONFIG
    try:
        data = _parse(raw)
    except ConfigParseError as exc:
        logger.debug("Falling back to default shield config: %s", exc)
        return DEFAULT_CONFIG
    return ProtectionConfig(
        level=_level(data.get("level")),
        timer_ms=_timer(data.get("timer")),
        features=_features(data.get("features")),
    )


__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_LEVEL",
    "DEFAULT_TIMER_MS",
    "FeatureFlag",
    "ProtectionConfig",
    "load",
]
