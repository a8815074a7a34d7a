"""
Page performance and accessibility probes.

Both run JavaScript in the page through ``page.evaluate`` and return
pydantic models that the metrics collector aggregates into the run report.
"""

from datetime import datetime, timezone
from typing import Literal, get_args

import structlog
from playwright.async_api import Error as PlaywrightError, Page
from pydantic import BaseModel, Field, computed_field

logger = structlog.get_logger()


class PerformanceMetrics(BaseModel):
    """Navigation timing numbers for one page, in milliseconds."""

    url: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    dom_content_loaded: int = 0
    page_load_time: int = 0
    time_to_first_byte: int = 0
    total_resources: int = 0
    total_resource_size_kb: int = 0
    first_contentful_paint: int | None = None
    largest_contentful_paint: int | None = None


IssueCategory = Literal[
    "missingAltText",
    "missingAriaLabels",
    "emptyInteractiveElements",
    "headingIssues",
    "missingFormLabels",
]


class AccessibilityIssue(BaseModel):
    category: IssueCategory
    element: str
    description: str
    severity: Literal["critical", "serious", "moderate", "minor"]


class AccessibilityResult(BaseModel):
    url: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    issues: list[AccessibilityIssue] = Field(default_factory=list)

    @computed_field
    @property
    def total_issues(self) -> int:
        return len(self.issues)

    @computed_field
    @property
    def issues_by_category(self) -> dict[str, int]:
        counts = {category: 0 for category in get_args(IssueCategory)}
        for issue in self.issues:
            counts[issue.category] += 1
        return counts


_NAVIGATION_TIMING_JS = """
() => {
  const perf = window.performance;
  const nav = perf.getEntriesByType('navigation')[0];
  const resources = perf.getEntriesByType('resource');
  const size = resources.reduce((sum, r) => sum + (r.transferSize || 0), 0);
  const fcp = perf.getEntriesByType('paint')
    .find((e) => e.name === 'first-contentful-paint');
  return {
    domContentLoaded: nav ? nav.domContentLoadedEventEnd - nav.startTime : 0,
    pageLoadTime: nav ? nav.loadEventEnd - nav.startTime : 0,
    timeToFirstByte: nav ? nav.responseStart - nav.requestStart : 0,
    totalResources: resources.length,
    totalResourceSize: size,
    firstContentfulPaint: fcp ? fcp.startTime : null,
  };
}
"""

_LCP_JS = """
() => new Promise((resolve) => {
  if (!('PerformanceObserver' in window)) { resolve(null); return; }
  const observer = new PerformanceObserver((list) => {
    const entries = list.getEntries();
    const last = entries[entries.length - 1];
    resolve(last ? last.startTime : null);
    observer.disconnect();
  });
  observer.observe({ type: 'largest-contentful-paint', buffered: true });
  setTimeout(() => resolve(null), 3000);
})
"""

_ACCESSIBILITY_JS = """
() => {
  const found = [];
  const snippet = (el) => el.outerHTML.substring(0, 100);
  document.querySelectorAll('img').forEach((img) => {
    const alt = img.getAttribute('alt');
    if (alt === null || alt.trim() === '') {
      found.push({category: 'missingAltText', element: snippet(img),
        description: 'Image is missing alt text, making it invisible to screen readers.',
        severity: 'serious'});
    }
  });
  document.querySelectorAll('button, [role="button"]').forEach((btn) => {
    if (!btn.textContent.trim() && !btn.getAttribute('aria-label')
        && !btn.getAttribute('aria-labelledby')) {
      found.push({category: 'missingAriaLabels', element: snippet(btn),
        description: 'Button has no text or ARIA label.', severity: 'critical'});
    }
  });
  document.querySelectorAll('a').forEach((link) => {
    if (!link.textContent.trim() && !link.getAttribute('aria-label')) {
      found.push({category: 'emptyInteractiveElements', element: snippet(link),
        description: 'Link has no text or ARIA label.', severity: 'serious'});
    }
  });
  document.querySelectorAll('input, select, textarea').forEach((input) => {
    const type = input.getAttribute('type');
    if (type === 'hidden' || type === 'submit') return;
    const id = input.getAttribute('id');
    const labelled = (id && document.querySelector(`label[for="${id}"]`))
      || input.getAttribute('aria-label') || input.getAttribute('aria-labelledby')
      || input.getAttribute('placeholder');
    if (!labelled) {
      found.push({category: 'missingFormLabels', element: snippet(input),
        description: 'Form input has no associated label.', severity: 'serious'});
    }
  });
  let lastLevel = 0;
  document.querySelectorAll('h1, h2, h3, h4, h5, h6').forEach((h) => {
    const level = parseInt(h.tagName.charAt(1));
    if (lastLevel > 0 && level > lastLevel + 1) {
      const tag = h.tagName.toLowerCase();
      found.push({category: 'headingIssues',
        element: `<${tag}>${(h.textContent || '').substring(0, 50)}</${tag}>`,
        description: `Heading level skipped: jumped from h${lastLevel} to h${level}.`,
        severity: 'moderate'});
    }
    lastLevel = level;
  });
  return found;
}
"""


async def collect_performance_metrics(page: Page) -> PerformanceMetrics:
    """Collect navigation timing and paint metrics for the current page."""
    log = logger.bind(url=page.url)
    log.info("collecting_performance_metrics")

    timing = await page.evaluate(_NAVIGATION_TIMING_JS)

    lcp = None
    try:
        lcp = await page.evaluate(_LCP_JS)
    except PlaywrightError:
        log.debug("lcp_unavailable")

    fcp = timing.get("firstContentfulPaint")
    metrics = PerformanceMetrics(
        url=page.url,
        dom_content_loaded=round(timing["domContentLoaded"]),
        page_load_time=round(timing["pageLoadTime"]),
        time_to_first_byte=round(timing["timeToFirstByte"]),
        total_resources=timing["totalResources"],
        total_resource_size_kb=round(timing["totalResourceSize"] / 1024),
        first_contentful_paint=round(fcp) if fcp else None,
        largest_contentful_paint=round(lcp) if lcp else None,
    )

    log.info(
        "performance_collected",
        page_load_ms=metrics.page_load_time,
        ttfb_ms=metrics.time_to_first_byte,
        fcp_ms=metrics.first_contentful_paint,
        resources=metrics.total_resources,
    )
    return metrics


async def run_accessibility_check(page: Page) -> AccessibilityResult:
    """Run lightweight DOM accessibility checks on the current page."""
    log = logger.bind(url=page.url)
    log.info("running_accessibility_check")

    raw_issues = await page.evaluate(_ACCESSIBILITY_JS)
    result = AccessibilityResult(
        url=page.url,
        issues=[AccessibilityIssue(**issue) for issue in raw_issues],
    )

    if result.total_issues:
        log.warning(
            "accessibility_issues_found",
            total=result.total_issues,
            by_category=result.issues_by_category,
        )
    else:
        log.info("accessibility_check_clean")
    return result
