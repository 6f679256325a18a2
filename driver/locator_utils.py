"""Ordered selector fallbacks.

A ``SelectorChain`` holds candidate selectors tried left to right; the first
candidate that matches an element wins and later candidates are never
inspected.  Chains can be written inline with ``||`` separators, e.g.
``a[href*="billing"] || button:has-text("Billing")``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple, Union

from playwright.async_api import Locator

from .surface import Surface

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SelectorChain:
    candidates: Tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.candidates:
            raise ValueError("SelectorChain requires at least one candidate")
        if any(not c.strip() for c in self.candidates):
            raise ValueError("SelectorChain candidates must be non-empty")

    @classmethod
    def of(cls, *candidates: str) -> "SelectorChain":
        return cls(tuple(c.strip() for c in candidates))

    @classmethod
    def parse(cls, raw: str) -> "SelectorChain":
        return cls(tuple(c.strip() for c in raw.split("||") if c.strip()))

    def union(self) -> str:
        """Single selector matching any candidate, used only for waiting."""

        return ", ".join(self.candidates)

    def __iter__(self) -> Iterator[str]:
        return iter(self.candidates)

    def __len__(self) -> int:
        return len(self.candidates)

    def __str__(self) -> str:
        return " || ".join(self.candidates)


SelectorLike = Union[SelectorChain, str]


def as_chain(selectors: SelectorLike) -> SelectorChain:
    if isinstance(selectors, SelectorChain):
        return selectors
    return SelectorChain.parse(selectors)


async def first_match(surface: Surface, chain: SelectorChain) -> Optional[Tuple[str, Locator]]:
    """Return the first candidate with at least one attached element."""

    for candidate in chain:
        locator = surface.locator(candidate)
        if await locator.count():
            log.debug("Selector resolved via %s", candidate)
            return candidate, locator.first
    return None
