"""
Playwright browser session lifecycle.

A session owns one Playwright driver, browser, context and page, and
releases them in reverse order however the block exits.
"""

from contextlib import AsyncExitStack
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import structlog
from playwright.async_api import BrowserContext, Page, async_playwright

from healwright.config import Settings, settings

logger = structlog.get_logger()


class BrowserType(str, Enum):
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


@dataclass
class BrowserOptions:
    """How to launch the browser and shape its context."""

    browser_type: BrowserType = BrowserType.CHROMIUM
    headless: bool = True
    slow_mo: int = 0
    timeout: int = 30000
    navigation_timeout: int = 30000
    viewport_width: int = 1280
    viewport_height: int = 720
    locale: str = "en-US"
    user_agent: str | None = None
    video_dir: str | None = None
    trace_dir: str | None = None

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "BrowserOptions":
        config = config or settings
        return cls(
            browser_type=BrowserType(config.browser),
            headless=config.headless,
            slow_mo=config.slow_mo,
            timeout=config.default_timeout,
            navigation_timeout=config.navigation_timeout,
            viewport_width=config.viewport_width,
            viewport_height=config.viewport_height,
            video_dir=config.video_dir if config.record_video else None,
            trace_dir=config.trace_dir if config.record_trace else None,
        )

    def context_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "viewport": {"width": self.viewport_width, "height": self.viewport_height},
            "locale": self.locale,
        }
        if self.user_agent:
            kwargs["user_agent"] = self.user_agent
        if self.video_dir:
            kwargs["record_video_dir"] = self.video_dir
        return kwargs


class BrowserSession:
    """
    One isolated browser page for one test.

    Usage:
        async with BrowserSession() as session:
            await session.page.goto("https://example.com")
    """

    def __init__(self, options: BrowserOptions | None = None, name: str = "session"):
        self.options = options or BrowserOptions.from_settings()
        self.name = name
        self._stack: AsyncExitStack | None = None
        self._page: Page | None = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser not initialized. Use 'async with' context.")
        return self._page

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def start(self) -> None:
        """Start Playwright, launch the browser and open a page."""
        log = logger.bind(browser=self.options.browser_type.value, session=self.name)
        log.info("browser_starting", headless=self.options.headless)

        stack = AsyncExitStack()
        try:
            playwright = await stack.enter_async_context(async_playwright())
            launcher = getattr(playwright, self.options.browser_type.value)
            browser = await launcher.launch(
                headless=self.options.headless, slow_mo=self.options.slow_mo
            )
            stack.push_async_callback(browser.close)

            context = await browser.new_context(**self.options.context_kwargs())
            stack.push_async_callback(context.close)
            context.set_default_timeout(self.options.timeout)
            context.set_default_navigation_timeout(self.options.navigation_timeout)

            if self.options.trace_dir:
                await context.tracing.start(screenshots=True, snapshots=True)
                stack.push_async_callback(self._stop_tracing, context)

            page = await context.new_page()
        except BaseException:
            await stack.aclose()
            raise

        self._stack = stack
        self._page = page
        log.info("browser_started")

    async def _stop_tracing(self, context: BrowserContext) -> None:
        path = Path(self.options.trace_dir) / f"{self.name}.zip"
        path.parent.mkdir(parents=True, exist_ok=True)
        await context.tracing.stop(path=str(path))
        logger.info("trace_saved", path=str(path))

    async def close(self) -> None:
        """Release page, context, browser and driver in reverse order."""
        stack, self._stack = self._stack, None
        self._page = None
        if stack is not None:
            await stack.aclose()
            logger.info("browser_closed", session=self.name)
