"""
Core automation components.
"""

from healwright.core.locator import (
    AutoHealConfig,
    ElementContext,
    HEALING_STRATEGIES,
    LocatorHealFailedError,
    LocatorNotFoundError,
    resilient_locator,
    resolve_element,
)
from healwright.core.metrics import MetricsCollector, TestRecord
from healwright.core.browser import BrowserOptions, BrowserSession

__all__ = [
    "AutoHealConfig",
    "ElementContext",
    "HEALING_STRATEGIES",
    "LocatorHealFailedError",
    "LocatorNotFoundError",
    "resilient_locator",
    "resolve_element",
    "MetricsCollector",
    "TestRecord",
    "BrowserOptions",
    "BrowserSession",
]
