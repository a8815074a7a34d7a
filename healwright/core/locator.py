"""
Self-Healing Locator Resolution

When a primary locator stops matching (renamed id, changed class), the
resolver tries a fixed chain of fallback strategies built from semantic
hints about the element: role, visible text, placeholder and test id.

Strategy order, most specific first:
- By Role: least likely to produce a false positive
- By Text (exact)
- By Placeholder
- By Test ID
- By Text (partial): most permissive, last resort

A healed locator keeps the test running but is logged as a warning naming
the stale selector, so the test author knows what to update.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable

import structlog
from playwright.async_api import Error as PlaywrightError, Locator, Page

if TYPE_CHECKING:
    from healwright.config import Settings
    from healwright.core.metrics import MetricsCollector

logger = structlog.get_logger()

# Matches no element on any page.
NULL_SELECTOR = ":not(*)"


@dataclass(frozen=True)
class ElementContext:
    """
    Semantic hints describing an element whose primary locator failed.

    At least one hint should be set, otherwise every strategy degenerates
    to an empty query and healing fails straight away.
    """

    original_selector: str
    role: str | None = None
    text: str | None = None
    placeholder: str | None = None
    test_id: str | None = None

    @property
    def has_hints(self) -> bool:
        return any((self.role, self.text, self.placeholder, self.test_id))


@dataclass(frozen=True)
class AutoHealConfig:
    """Run-time tunables for healing."""

    enabled: bool = True
    timeout_ms: int = 5000
    log_warnings: bool = True
    strategy_timeout_ms: int = 2000

    @classmethod
    def from_settings(cls, settings: "Settings") -> "AutoHealConfig":
        return cls(
            enabled=settings.auto_heal_enabled,
            timeout_ms=settings.auto_heal_timeout,
            log_warnings=settings.auto_heal_log_warnings,
            strategy_timeout_ms=settings.auto_heal_strategy_timeout,
        )


DEFAULT_CONFIG = AutoHealConfig()


@dataclass(frozen=True)
class HealingStrategy:
    """A named rule deriving a fallback locator from an ElementContext."""

    name: str
    locate: Callable[[Page, ElementContext], Locator]


class LocatorError(Exception):
    """Base class for locator resolution failures."""

    def __init__(self, message: str, original_selector: str):
        super().__init__(message)
        self.original_selector = original_selector


class LocatorNotFoundError(LocatorError):
    """Primary locator failed and healing is disabled."""


class LocatorHealFailedError(LocatorError):
    """Primary locator failed and every healing strategy was exhausted."""

    def __init__(
        self,
        message: str,
        original_selector: str,
        strategies_tried: list[str] | None = None,
    ):
        super().__init__(message, original_selector)
        self.strategies_tried = strategies_tried or []


def _by_role(page: Page, ctx: ElementContext) -> Locator:
    if not ctx.role:
        return page.locator(NULL_SELECTOR)
    if ctx.text:
        return page.get_by_role(ctx.role, name=ctx.text)
    return page.get_by_role(ctx.role)


def _by_exact_text(page: Page, ctx: ElementContext) -> Locator:
    if not ctx.text:
        return page.locator(NULL_SELECTOR)
    return page.get_by_text(ctx.text, exact=True)


def _by_placeholder(page: Page, ctx: ElementContext) -> Locator:
    if not ctx.placeholder:
        return page.locator(NULL_SELECTOR)
    return page.get_by_placeholder(ctx.placeholder)


def _by_test_id(page: Page, ctx: ElementContext) -> Locator:
    if not ctx.test_id:
        return page.locator(NULL_SELECTOR)
    return page.get_by_test_id(ctx.test_id)


def _by_partial_text(page: Page, ctx: ElementContext) -> Locator:
    if not ctx.text:
        return page.locator(NULL_SELECTOR)
    return page.get_by_text(ctx.text, exact=False)


HEALING_STRATEGIES: tuple[HealingStrategy, ...] = (
    HealingStrategy("By Role", _by_role),
    HealingStrategy("By Text (exact)", _by_exact_text),
    HealingStrategy("By Placeholder", _by_placeholder),
    HealingStrategy("By Test ID", _by_test_id),
    HealingStrategy("By Text (partial)", _by_partial_text),
)


async def resolve_element(
    page: Page,
    primary: Locator,
    context: ElementContext,
    config: AutoHealConfig | None = None,
    metrics: "MetricsCollector | None" = None,
) -> Locator:
    """
    Resolve an element, healing the locator if the primary one fails.

    Args:
        page: Page (or frame) the fallback strategies query
        primary: Locator authored by the test
        context: Hints used to derive fallback locators
        config: Healing tunables, defaults apply if omitted
        metrics: Optional collector notified of every successful heal

    Returns:
        The primary locator if it became visible, otherwise the first
        match of the first strategy that found a visible element.

    Raises:
        LocatorNotFoundError: primary failed and healing is disabled
        LocatorHealFailedError: no strategy found a visible element
    """
    config = config or DEFAULT_CONFIG
    log = logger.bind(selector=context.original_selector)

    try:
        await primary.wait_for(state="visible", timeout=config.timeout_ms)
        return primary
    except PlaywrightError as e:
        if not config.enabled:
            raise LocatorNotFoundError(
                f'Element not found: "{context.original_selector}". '
                "Auto-heal is disabled.",
                context.original_selector,
            ) from e
        if config.log_warnings:
            log.warning("primary_locator_failed", timeout_ms=config.timeout_ms)

    strategies_tried: list[str] = []

    for strategy in HEALING_STRATEGIES:
        strategies_tried.append(strategy.name)
        candidate = strategy.locate(page, context).first

        try:
            await candidate.wait_for(
                state="visible", timeout=config.strategy_timeout_ms
            )
        except PlaywrightError:
            log.debug("heal_strategy_missed", strategy=strategy.name)
            continue

        if config.log_warnings:
            log.warning(
                "locator_healed",
                strategy=strategy.name,
                hint="update the stale locator",
            )
        if metrics is not None:
            metrics.record_auto_heal(context.original_selector, strategy.name)
        return candidate

    log.error("locator_heal_failed", strategies_tried=strategies_tried)
    raise LocatorHealFailedError(
        f'Auto-heal exhausted all strategies for: "{context.original_selector}". '
        "Element not found on the page.",
        context.original_selector,
        strategies_tried,
    )


def resilient_locator(
    page: Page,
    selector: str,
    config: AutoHealConfig | None = None,
    metrics: "MetricsCollector | None" = None,
    **hints: str | None,
) -> Callable[[], Awaitable[Locator]]:
    """
    Bind a CSS selector and heal hints into a reusable resolver.

    Usage:
        submit = resilient_locator(page, "#submit", role="button", text="Login")
        await (await submit()).click()
    """
    context = ElementContext(original_selector=selector, **hints)

    async def resolve() -> Locator:
        return await resolve_element(
            page, page.locator(selector), context, config=config, metrics=metrics
        )

    return resolve
