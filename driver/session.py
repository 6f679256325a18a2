"""Chromium session owned by exactly one automation attempt."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from .config import RunConfig
from .surface import PageSurface

log = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
]
VIEWPORT = {"width": 1920, "height": 1080}


class BrowserSession:
    def __init__(self, playwright: Playwright, browser: Browser, context: BrowserContext) -> None:
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self._closed = False

    @classmethod
    async def launch(cls, config: RunConfig) -> "BrowserSession":
        pw = await async_playwright().start()
        browser: Optional[Browser] = None
        try:
            browser = await pw.chromium.launch(headless=config.headless, args=LAUNCH_ARGS)
            context = await browser.new_context(viewport=VIEWPORT, user_agent=config.user_agent)
        except BaseException:
            # Cancellation during launch must still release the driver process.
            if browser is not None:
                await browser.close()
            await pw.stop()
            raise
        log.info("Launched Chromium (headless=%s)", config.headless)
        return cls(pw, browser, context)

    @property
    def closed(self) -> bool:
        return self._closed

    async def new_page(self) -> PageSurface:
        page = await self._context.new_page()
        return PageSurface(page)

    def pages(self) -> List[PageSurface]:
        if self._closed:
            return []
        return [PageSurface(page) for page in self._context.pages]

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for label, closer in (
            ("context", self._context.close),
            ("browser", self._browser.close),
            ("playwright", self._playwright.stop),
        ):
            try:
                await closer()
            except Exception as exc:
                log.warning("Failed to close %s: %s", label, exc)

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
