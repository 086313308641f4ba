"""Shared headless Chromium session used for diagram rendering."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from playwright.async_api import Browser, Page, Playwright, async_playwright

logger = logging.getLogger("mdpaste")

_LAUNCH_ARGS = ["--disable-dev-shm-usage", "--disable-gpu", "--no-sandbox"]


class BrowserSession:
    """Lazily started Playwright browser shared by the renderer and rasterizer."""

    def __init__(self, headless: bool = True) -> None:
        self.headless = headless
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._started: Optional["asyncio.Future[None]"] = None

    async def start(self) -> None:
        """Launch Chromium once; concurrent callers wait on the same launch."""
        if self._started is None:
            self._started = asyncio.ensure_future(self._launch())
        try:
            await self._started
        except Exception:
            self._started = None
            raise

    async def _launch(self) -> None:
        logger.debug("Launching headless Chromium")
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=_LAUNCH_ARGS,
            )
        except Exception:
            playwright, self._playwright = self._playwright, None
            await playwright.stop()
            raise

    async def new_page(self, **kwargs: Any) -> Page:
        await self.start()
        assert self._browser is not None
        return await self._browser.new_page(**kwargs)

    async def close(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        self._started = None
        try:
            if browser is not None:
                await browser.close()
        finally:
            if playwright is not None:
                await playwright.stop()

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
