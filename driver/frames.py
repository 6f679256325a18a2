"""Locate the embedded payment-processor frame, if any."""

from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from .surface import Surface

log = logging.getLogger(__name__)

DEFAULT_URL_MARKERS = ("stripe", "payment")
DEFAULT_NAME_MARKERS = ("card",)


def _matches(frame: Surface, url_markers: Iterable[str], name_markers: Iterable[str]) -> bool:
    url = (frame.url or "").lower()
    name = (frame.name or "").lower()
    return any(m in url for m in url_markers) or any(m in name for m in name_markers)


def payment_frames(
    page: Surface,
    url_markers: Sequence[str] = DEFAULT_URL_MARKERS,
    name_markers: Sequence[str] = DEFAULT_NAME_MARKERS,
) -> List[Surface]:
    return [frame for frame in page.frames() if _matches(frame, url_markers, name_markers)]


def discover_payment_frame(
    page: Surface,
    url_markers: Sequence[str] = DEFAULT_URL_MARKERS,
    name_markers: Sequence[str] = DEFAULT_NAME_MARKERS,
) -> Surface:
    """Return the first matching child frame, falling back to ``page`` itself."""

    candidates = payment_frames(page, url_markers, name_markers)
    if candidates:
        selected = candidates[0]
        log.info(
            "Using embedded payment frame name=%r url=%s (%d candidate(s))",
            selected.name,
            selected.url,
            len(candidates),
        )
        return selected
    log.warning("No embedded payment frame matched %s / %s; using top-level page", url_markers, name_markers)
    return page
