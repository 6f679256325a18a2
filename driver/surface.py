"""Page and frame handles behind one capability interface.

Driver primitives never care whether they type into the top-level page or into
an embedded payment frame.  Both are wrapped in a ``Surface`` exposing the
handful of operations the workflow needs; screenshots of a frame capture the
full owning page.
"""

from __future__ import annotations

from typing import List, Protocol

from playwright.async_api import Frame, Locator, Page


class Surface(Protocol):
    kind: str

    @property
    def url(self) -> str: ...

    @property
    def name(self) -> str: ...

    async def goto(self, url: str, *, wait_until: str, timeout: int) -> None: ...

    def locator(self, selector: str) -> Locator: ...

    async def wait_for_selector(self, selector: str, *, state: str, timeout: int) -> None: ...

    async def wait_for_url_change(self, from_url: str, *, timeout: int) -> None: ...

    async def screenshot(self, *, full_page: bool = True) -> bytes: ...

    def frames(self) -> List["Surface"]: ...


class PageSurface:
    kind = "page"

    def __init__(self, page: Page) -> None:
        self.page = page

    @property
    def url(self) -> str:
        return self.page.url

    @property
    def name(self) -> str:
        return self.page.main_frame.name

    async def goto(self, url: str, *, wait_until: str = "networkidle", timeout: int = 30000) -> None:
        await self.page.goto(url, wait_until=wait_until, timeout=timeout)

    def locator(self, selector: str) -> Locator:
        return self.page.locator(selector)

    async def wait_for_selector(self, selector: str, *, state: str = "attached", timeout: int = 30000) -> None:
        await self.page.wait_for_selector(selector, state=state, timeout=timeout)

    async def wait_for_url_change(self, from_url: str, *, timeout: int = 30000) -> None:
        await self.page.wait_for_url(lambda url: url != from_url, wait_until="networkidle", timeout=timeout)

    async def screenshot(self, *, full_page: bool = True) -> bytes:
        return await self.page.screenshot(full_page=full_page, type="png")

    def frames(self) -> List[Surface]:
        main = self.page.main_frame
        return [FrameSurface(frame) for frame in self.page.frames if frame is not main]

    def __repr__(self) -> str:
        return f"PageSurface(url={self.url!r})"


class FrameSurface:
    kind = "frame"

    def __init__(self, frame: Frame) -> None:
        self.frame = frame

    @property
    def url(self) -> str:
        return self.frame.url

    @property
    def name(self) -> str:
        return self.frame.name

    async def goto(self, url: str, *, wait_until: str = "networkidle", timeout: int = 30000) -> None:
        await self.frame.goto(url, wait_until=wait_until, timeout=timeout)

    def locator(self, selector: str) -> Locator:
        return self.frame.locator(selector)

    async def wait_for_selector(self, selector: str, *, state: str = "attached", timeout: int = 30000) -> None:
        await self.frame.wait_for_selector(selector, state=state, timeout=timeout)

    async def wait_for_url_change(self, from_url: str, *, timeout: int = 30000) -> None:
        await self.frame.wait_for_url(lambda url: url != from_url, wait_until="networkidle", timeout=timeout)

    async def screenshot(self, *, full_page: bool = True) -> bytes:
        return await self.frame.page.screenshot(full_page=full_page, type="png")

    def frames(self) -> List[Surface]:
        return [FrameSurface(child) for child in self.frame.child_frames]

    def __repr__(self) -> str:
        return f"FrameSurface(name={self.name!r}, url={self.url!r})"
