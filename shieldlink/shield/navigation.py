"""Navigation techniques and the policy that picks one per session."""
from __future__ import annotations

import random
from enum import Enum
from typing import Optional, Protocol, Sequence


class NavigationStrategy(str, Enum):
    HREF = "href"  # location.href = url
    ASSIGN = "assign"  # location.assign(url)
    REPLACE = "replace"  # location.replace(url)
    ANCHOR = "anchor"  # synthetic <a> click


class Navigator(Protocol):
    """Performs the actual navigation for one session."""

    def execute(self, strategy: NavigationStrategy, url: str) -> None:
        ...


class StrategyPicker(Protocol):
    def pick(self) -> NavigationStrategy:
        ...


class FixedStrategyPicker:
    def __init__(self, strategy: NavigationStrategy = NavigationStrategy.HREF) -> None:
        self.strategy = strategy

    def pick(self) -> NavigationStrategy:
        return self.strategy


class RandomStrategyPicker:
    """Chooses uniformly among equivalent techniques."""

    def __init__(
        self,
        choices: Sequence[NavigationStrategy] = tuple(NavigationStrategy),
        rng: Optional[random.Random] = None,
    ) -> None:
        if not choices:
            raise ValueError("RandomStrategyPicker needs at least one strategy")
        self.choices = tuple(choices)
        self._rng = rng or random.Random()

    def pick(self) -> NavigationStrategy:
        return self._rng.choice(self.choices)


def picker_for(policy: str) -> StrategyPicker:
    """Build the Ultra-Link picker named by the deployment setting."""
    if policy == "direct":
        return FixedStrategyPicker()
    if policy == "random":
        return RandomStrategyPicker()
    raise ValueError(f"Unknown navigation policy {policy!r}")


__all__ = [
    "FixedStrategyPicker",
    "NavigationStrategy",
    "Navigator",
    "RandomStrategyPicker",
    "StrategyPicker",
    "picker_for",
]
