import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)

from core.types import Headers


class BrowserManager:
    """Shared Playwright browser handing out one isolated page per crawl worker.

    Each ``page_context`` call opens a fresh browser context (own cookies,
    own header set) and closes it when the worker leaves the block.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config or {}
        self.logger = logger or logging.getLogger(__name__)

        self.browser_type = self.config.get("browser_type", "chromium")
        self.headless = self.config.get("headless", True)
        self.navigation_timeout_ms = self.config.get("navigation_timeout_ms", 30_000)
        self.enable_stealth_mode = self.config.get("enable_stealth_mode", True)
        self.viewport = self.config.get("viewport", {"width": 1280, "height": 720})
        self.launch_options = dict(self.config.get("launch_options", {}))

        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self._start_lock = asyncio.Lock()
        self.open_contexts = 0

    @classmethod
    def from_settings(cls, settings) -> "BrowserManager":
        return cls(
            {
                "browser_type": settings.browser_type,
                "headless": settings.headless,
                "navigation_timeout_ms": settings.navigation_timeout_ms,
            }
        )

    async def start(self) -> None:
        if self.browser:
            return
        async with self._start_lock:
            if self.browser:
                return
            self.logger.debug("Starting async Playwright (%s)", self.browser_type)
            self.playwright = await async_playwright().start()
            launcher = getattr(self.playwright, self.browser_type)
            self.browser = await launcher.launch(**self._build_launch_options())

    async def stop(self) -> None:
        await self._safe_close_browser(self.browser)
        self.browser = None
        if self.playwright:
            await self.playwright.stop()
            self.playwright = None

    async def __aenter__(self) -> "BrowserManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    @asynccontextmanager
    async def page_context(
        self,
        headers: Optional[Headers] = None,
        proxy: Optional[str] = None,
    ) -> AsyncIterator[Page]:
        context = await self._create_browser_context(headers, proxy)
        self.open_contexts += 1
        try:
            page = await context.new_page()
            page.set_default_navigation_timeout(self.navigation_timeout_ms)
            try:
                yield page
            finally:
                await self._safe_close_page(page)
        finally:
            await self._safe_close_context(context)
            self.open_contexts -= 1

    async def _create_browser_context(
        self, headers: Optional[Headers], proxy: Optional[str]
    ) -> BrowserContext:
        await self.start()
        context = await self.browser.new_context(
            **self._build_context_options(headers=headers, proxy=proxy)
        )
        await self._apply_context_optimizations(context)
        return context

    async def _apply_context_optimizations(self, context: BrowserContext) -> None:
        if not self.enable_stealth_mode:
            return

        await context.add_init_script(
            """
            () => {
                Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
            }
        """
        )

    async def _safe_close_page(self, page: Page) -> None:
        try:
            await page.close()
        except Exception:
            self.logger.debug("Failed to close Playwright page", exc_info=True)

    async def _safe_close_context(self, context: BrowserContext) -> None:
        try:
            await context.close()
        except Exception:
            self.logger.debug("Failed to close Playwright context", exc_info=True)

    async def _safe_close_browser(self, browser: Optional[Browser]) -> None:
        if not browser:
            return
        try:
            await browser.close()
        except Exception:
            self.logger.debug("Failed to close Playwright browser", exc_info=True)

    def _build_launch_options(self) -> Dict[str, Any]:
        options = self.launch_options.copy()
        options.setdefault("headless", self.headless)
        return options

    def _build_context_options(
        self, headers: Optional[Headers], proxy: Optional[str]
    ) -> Dict[str, Any]:
        options: Dict[str, Any] = {}
        if headers:
            extra = dict(headers)
            user_agent = extra.pop("user-agent", None) or extra.pop("User-Agent", None)
            if user_agent:
                options["user_agent"] = user_agent
            if extra:
                options["extra_http_headers"] = extra

        if proxy:
            options["proxy"] = {"server": proxy}

        if self.viewport:
            options["viewport"] = dict(self.viewport)
        return options
