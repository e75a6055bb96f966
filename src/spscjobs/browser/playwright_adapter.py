"""Playwright-backed implementation of BrowserAdapter."""

from __future__ import annotations

import logging
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from spscjobs.exceptions import NavigationError

logger = logging.getLogger(__name__)

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


class PlaywrightAdapter:
    """Async browser driver built on Playwright Chromium."""

    def __init__(self) -> None:
        self._pw: Any = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def page(self) -> Page:
        assert self._page is not None, "Browser not launched — call launch() first."
        return self._page

    # --- lifecycle ---

    async def launch(self, headless: bool = True, timeout_ms: int = 30_000) -> None:
        try:
            self._pw = await async_playwright().start()
            self._browser = await self._pw.chromium.launch(
                headless=headless,
                args=["--no-sandbox", "--disable-setuid-sandbox"],
            )
            self._context = await self._browser.new_context(
                user_agent=_USER_AGENT,
                viewport={"width": 1920, "height": 1080},
            )
            self._page = await self._context.new_page()
            self._page.set_default_timeout(timeout_ms)
            logger.info("Browser launched (headless=%s).", headless)
        except Exception as exc:
            await self.close()
            raise NavigationError(f"Failed to start Playwright Chromium: {exc}") from exc

    async def close(self) -> None:
        if self._context:
            await self._context.close()
        if self._browser:
            await self._browser.close()
        if self._pw:
            await self._pw.stop()
        self._pw = self._browser = self._context = self._page = None
        logger.info("Browser closed.")

    # --- navigation ---

    async def navigate(self, url: str, wait_until: str = "networkidle") -> None:
        try:
            await self.page.goto(url, wait_until=wait_until)
        except Exception as exc:
            raise NavigationError(f"SPSC website is down or unreachable: {exc}") from exc

    # --- querying ---

    async def query_all(self, selector: str) -> list[Any]:
        return await self.page.query_selector_all(selector)

    async def wait_for_selector(
        self, selector: str, *, state: str = "visible", timeout: float = 10_000
    ) -> Any | None:
        try:
            return await self.page.wait_for_selector(selector, state=state, timeout=timeout)
        except Exception:
            return None

    async def page_url(self) -> str:
        return self.page.url
