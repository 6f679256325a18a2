"""Retry-wrapped browser primitives used by the card workflow."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

from playwright.async_api import Error as PlaywrightError, Locator, TimeoutError as PlaywrightTimeoutError

from automation.errors import AutomationError, ElementNotFound, NavigationTimeout, UnknownAutomationFailure

from .artifacts import ArtifactSink
from .locator_utils import SelectorLike, as_chain, first_match
from .retry import RetryPolicy
from .surface import Surface

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TYPING_DELAY_MS = 100


class DriverPrimitives:
    """Low-level operations on a page or frame, each shielded by ``RetryPolicy``."""

    def __init__(
        self,
        retry: RetryPolicy,
        artifacts: ArtifactSink,
        *,
        wait_timeout_ms: int = 30000,
        navigation_timeout_ms: int = 30000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.retry = retry
        self.artifacts = artifacts
        self.wait_timeout_ms = wait_timeout_ms
        self.navigation_timeout_ms = navigation_timeout_ms
        self._clock = clock

    async def await_element(
        self,
        surface: Surface,
        selectors: SelectorLike,
        timeout_ms: Optional[int] = None,
    ) -> Tuple[str, Locator]:
        chain = as_chain(selectors)
        timeout = timeout_ms if timeout_ms is not None else self.wait_timeout_ms

        async def _op() -> Tuple[str, Locator]:
            return await self._resolve(surface, chain, timeout)

        return await self.retry.run(_op, f"waitForSelector: {chain}")

    async def type_into(
        self,
        surface: Surface,
        selectors: SelectorLike,
        text: str,
        delay_ms: int = DEFAULT_TYPING_DELAY_MS,
    ) -> None:
        chain = as_chain(selectors)
        timeout = self.wait_timeout_ms

        async def _op() -> None:
            _, locator = await self._resolve(surface, chain, timeout)
            # Clear first so a retry after partial typing starts from an empty field.
            await locator.fill("", timeout=timeout)
            await locator.press_sequentially(text, delay=delay_ms, timeout=timeout + len(text) * delay_ms)

        await self.retry.run(self._guard(_op), f"typeWithDelay: {chain}")

    async def click_element(self, surface: Surface, selectors: SelectorLike) -> str:
        chain = as_chain(selectors)
        timeout = self.wait_timeout_ms

        async def _op() -> str:
            candidate, locator = await self._resolve(surface, chain, timeout)
            await locator.click(timeout=timeout)
            return candidate

        return await self.retry.run(self._guard(_op), f"click: {chain}")

    async def navigate(self, surface: Surface, url: str, *, wait_until: str = "networkidle") -> None:
        timeout = self.navigation_timeout_ms

        async def _op() -> None:
            try:
                await surface.goto(url, wait_until=wait_until, timeout=timeout)
            except PlaywrightTimeoutError as exc:
                raise NavigationTimeout(url, timeout) from exc

        await self.retry.run(self._guard(_op), f"goto: {url}")

    async def await_navigation(self, surface: Surface, from_url: str, timeout_ms: Optional[int] = None) -> str:
        timeout = timeout_ms if timeout_ms is not None else self.navigation_timeout_ms

        async def _op() -> str:
            try:
                await surface.wait_for_url_change(from_url, timeout=timeout)
            except PlaywrightTimeoutError as exc:
                raise NavigationTimeout(from_url, timeout) from exc
            return surface.url

        return await self.retry.run(self._guard(_op), f"waitForNavigation: {from_url}")

    async def capture_diagnostic(self, surface: Surface, label: str, max_retries: Optional[int] = None) -> Path:
        async def _op() -> Path:
            data = await surface.screenshot(full_page=True)
            name = f"{label}_{int(self._clock() * 1000)}"
            return self.artifacts.store(data, name)

        return await self.retry.run(self._guard(_op), f"screenshot: {label}", max_retries)

    async def _resolve(self, surface: Surface, selectors: SelectorLike, timeout: int) -> Tuple[str, Locator]:
        chain = as_chain(selectors)
        try:
            match = await first_match(surface, chain)
            if match is not None:
                return match
            await surface.wait_for_selector(chain.union(), state="attached", timeout=timeout)
            match = await first_match(surface, chain)
        except PlaywrightTimeoutError as exc:
            raise ElementNotFound(chain.candidates, timeout) from exc
        except PlaywrightError as exc:
            raise UnknownAutomationFailure(str(exc)) from exc
        if match is None:
            raise ElementNotFound(chain.candidates, timeout)
        return match

    @staticmethod
    def _guard(operation: Callable[[], Awaitable[T]]) -> Callable[[], Awaitable[T]]:
        async def _wrapped() -> T:
            try:
                return await operation()
            except AutomationError:
                raise
            except PlaywrightError as exc:
                raise UnknownAutomationFailure(str(exc)) from exc

        return _wrapped
