"""
Page actions capability.

Concrete page objects hold a PageActions instance and call through it
instead of inheriting from a shared base page:

    class LoginPage:
        def __init__(self, actions: PageActions):
            self.actions = actions
            self.username = actions.page.locator("#user-name")

        async def login(self, user: str, password: str) -> None:
            await self.actions.fill(self.username, user, "username")
            ...
"""

import re
import time
from pathlib import Path

import structlog
from playwright.async_api import Locator, Page, expect

from healwright.config import settings
from healwright.core.locator import AutoHealConfig, ElementContext, resolve_element
from healwright.core.metrics import MetricsCollector
from healwright.core.performance import (
    AccessibilityResult,
    PerformanceMetrics,
    collect_performance_metrics,
    run_accessibility_check,
)

logger = structlog.get_logger()


class PageActions:
    """Navigation, interaction and assertion primitives for one page."""

    def __init__(
        self,
        page: Page,
        metrics: MetricsCollector | None = None,
        heal_config: AutoHealConfig | None = None,
        name: str = "page",
    ):
        self.page = page
        self.metrics = metrics
        self.heal_config = heal_config or AutoHealConfig.from_settings(settings)
        self.heal_count = 0
        self.log = logger.bind(page=name)

    async def navigate_to(self, url: str) -> None:
        self.log.info("navigating", url=url)
        await self.page.goto(
            url, wait_until="domcontentloaded", timeout=settings.navigation_timeout
        )

    async def wait_for_page_load(self) -> None:
        await self.page.wait_for_load_state("load")

    async def title(self) -> str:
        return await self.page.title()

    def current_url(self) -> str:
        return self.page.url

    async def heal(self, locator: Locator, description: str, **hints: str | None) -> Locator:
        """Resolve ``locator``, falling back to the heal hints if it is stale."""
        context = ElementContext(original_selector=description, **hints)
        resolved = await resolve_element(
            self.page, locator, context, config=self.heal_config, metrics=self.metrics
        )
        if resolved is not locator:
            self.heal_count += 1
        return resolved

    async def click(
        self,
        locator: Locator,
        description: str = "element",
        **heal_hints: str | None,
    ) -> None:
        """
        Click an element.

        When heal hints (role, text, placeholder, test_id) are given, a stale
        locator is healed first; otherwise a missing element fails the click.
        """
        self.log.info("clicking", element=description)
        if heal_hints:
            locator = await self.heal(locator, description, **heal_hints)
        await locator.click(timeout=settings.default_timeout)

    async def fill(
        self,
        locator: Locator,
        text: str,
        description: str = "input",
        **heal_hints: str | None,
    ) -> None:
        self.log.info("filling", element=description)
        if heal_hints:
            locator = await self.heal(locator, description, **heal_hints)
        await locator.fill(text, timeout=settings.default_timeout)

    async def select_option(
        self, locator: Locator, option: str, description: str = "dropdown"
    ) -> None:
        self.log.info("selecting", element=description, option=option)
        await locator.select_option(label=option)

    async def wait_for_visible(self, locator: Locator, timeout: int | None = None) -> None:
        await locator.wait_for(state="visible", timeout=timeout or settings.default_timeout)

    async def wait_for_hidden(self, locator: Locator, timeout: int | None = None) -> None:
        await locator.wait_for(state="hidden", timeout=timeout or settings.default_timeout)

    async def wait_for_url_contains(self, url_part: str) -> None:
        self.log.info("waiting_for_url", contains=url_part)
        await self.page.wait_for_url(
            re.compile(re.escape(url_part)), timeout=settings.navigation_timeout
        )

    async def assert_text_contains(
        self, locator: Locator, expected_text: str, description: str = "element"
    ) -> None:
        self.log.info("asserting_text", element=description, expected=expected_text)
        await expect(locator).to_contain_text(expected_text)

    async def assert_url(self, url_pattern: str | re.Pattern[str]) -> None:
        self.log.info("asserting_url", pattern=str(url_pattern))
        await expect(self.page).to_have_url(url_pattern)

    async def assert_visible(self, locator: Locator, description: str = "element") -> None:
        self.log.info("asserting_visible", element=description)
        await expect(locator).to_be_visible()

    async def take_screenshot(self, name: str) -> Path:
        path = Path(settings.screenshot_dir) / f"{name}-{int(time.time() * 1000)}.png"
        path.parent.mkdir(parents=True, exist_ok=True)
        self.log.info("taking_screenshot", path=str(path))
        await self.page.screenshot(path=str(path), full_page=True)
        return path

    async def collect_performance(self) -> PerformanceMetrics:
        metrics = await collect_performance_metrics(self.page)
        if self.metrics is not None:
            self.metrics.record_performance(metrics)
        return metrics

    async def check_accessibility(self) -> AccessibilityResult:
        result = await run_accessibility_check(self.page)
        if self.metrics is not None:
            self.metrics.record_accessibility(result)
        return result
