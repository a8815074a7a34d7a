"""
Run-scoped metrics collection.

One collector is created per test run by the orchestrator and handed to
whatever needs to record into it (API client, page actions, locator
resolver). Recording is safe from concurrent test executions.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

import structlog
from pydantic import BaseModel, Field

from healwright.core.performance import AccessibilityResult, PerformanceMetrics

logger = structlog.get_logger()

TestStatus = Literal["passed", "failed", "skipped"]


@dataclass
class TestRecord:
    """Outcome of one executed test."""

    __test__ = False

    name: str
    feature: str
    status: TestStatus
    duration_ms: float
    error_message: str | None = None
    tags: list[str] = field(default_factory=list)
    browser: str = "chromium"
    was_retried: bool = False
    auto_heal_count: int = 0


class StatusCounts(BaseModel):
    passed: int = 0
    failed: int = 0
    skipped: int = 0


class TimedTest(BaseModel):
    name: str
    duration_ms: float


class FailedTest(BaseModel):
    name: str
    feature: str
    error: str


class HealEvent(BaseModel):
    original_selector: str
    strategy: str
    timestamp: datetime


class MetricsSummary(BaseModel):
    """Aggregated view of a run, serialized to the metrics report."""

    run_start_time: datetime
    run_end_time: datetime
    total_duration_ms: float
    total_tests: int
    passed: int
    failed: int
    skipped: int
    pass_rate: float
    average_duration_ms: float
    slowest_test: TimedTest | None = None
    fastest_test: TimedTest | None = None
    flaky_tests: int = 0
    total_auto_heals: int = 0
    healed_locators: list[HealEvent] = Field(default_factory=list)
    avg_page_load_time: int | None = None
    avg_api_response_time: int | None = None
    performance_data: list[PerformanceMetrics] = Field(default_factory=list)
    accessibility_data: list[AccessibilityResult] = Field(default_factory=list)
    by_feature: dict[str, StatusCounts] = Field(default_factory=dict)
    by_browser: dict[str, StatusCounts] = Field(default_factory=dict)
    by_tag: dict[str, StatusCounts] = Field(default_factory=dict)
    failed_tests: list[FailedTest] = Field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetricsCollector:
    """
    Collects test results, page metrics and API timings for one run.

    Usage:
        metrics = MetricsCollector()
        client = ApiClient(transport, metrics=metrics)
        ...
        metrics.save_to_file("test-results/reports/metrics.json")
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._results: list[TestRecord] = []
        self._performance: list[PerformanceMetrics] = []
        self._accessibility: list[AccessibilityResult] = []
        self._api_response_times: list[float] = []
        self._heal_events: list[HealEvent] = []
        self._run_start = _utcnow()
        logger.info("metrics_collector_initialized")

    def record_test_result(self, result: TestRecord) -> None:
        with self._lock:
            self._results.append(result)
        logger.debug("test_result_recorded", test=result.name, status=result.status)

    def record_performance(self, metrics: PerformanceMetrics) -> None:
        with self._lock:
            self._performance.append(metrics)

    def record_accessibility(self, result: AccessibilityResult) -> None:
        with self._lock:
            self._accessibility.append(result)

    def record_api_response_time(self, duration_ms: float) -> None:
        with self._lock:
            self._api_response_times.append(duration_ms)

    def record_auto_heal(self, original_selector: str, strategy: str) -> None:
        with self._lock:
            self._heal_events.append(
                HealEvent(
                    original_selector=original_selector,
                    strategy=strategy,
                    timestamp=_utcnow(),
                )
            )

    @property
    def api_response_times(self) -> list[float]:
        with self._lock:
            return self._api_response_times.copy()

    @property
    def heal_events(self) -> list[HealEvent]:
        with self._lock:
            return self._heal_events.copy()

    def generate_summary(self) -> MetricsSummary:
        """Aggregate everything recorded so far."""
        with self._lock:
            results = self._results.copy()
            performance = self._performance.copy()
            accessibility = self._accessibility.copy()
            api_times = self._api_response_times.copy()
            heal_events = self._heal_events.copy()
            run_start = self._run_start

        run_end = _utcnow()
        total = len(results)
        passed = sum(1 for r in results if r.status == "passed")
        failed = sum(1 for r in results if r.status == "failed")
        skipped = sum(1 for r in results if r.status == "skipped")

        by_duration = sorted(results, key=lambda r: r.duration_ms, reverse=True)
        slowest = by_duration[0] if by_duration else None
        fastest = by_duration[-1] if by_duration else None

        total_auto_heals = sum(r.auto_heal_count for r in results)

        by_feature: dict[str, StatusCounts] = {}
        by_browser: dict[str, StatusCounts] = {}
        by_tag: dict[str, StatusCounts] = {}
        for r in results:
            for bucket, key in [(by_feature, r.feature), (by_browser, r.browser)]:
                counts = bucket.setdefault(key, StatusCounts())
                setattr(counts, r.status, getattr(counts, r.status) + 1)
            for tag in r.tags:
                counts = by_tag.setdefault(tag, StatusCounts())
                setattr(counts, r.status, getattr(counts, r.status) + 1)

        summary = MetricsSummary(
            run_start_time=run_start,
            run_end_time=run_end,
            total_duration_ms=(run_end - run_start).total_seconds() * 1000,
            total_tests=total,
            passed=passed,
            failed=failed,
            skipped=skipped,
            pass_rate=round(passed / total * 100, 2) if total else 0.0,
            average_duration_ms=round(sum(r.duration_ms for r in results) / total)
            if total
            else 0,
            slowest_test=TimedTest(name=slowest.name, duration_ms=slowest.duration_ms)
            if slowest
            else None,
            fastest_test=TimedTest(name=fastest.name, duration_ms=fastest.duration_ms)
            if fastest
            else None,
            flaky_tests=sum(1 for r in results if r.was_retried),
            total_auto_heals=total_auto_heals,
            healed_locators=heal_events,
            avg_page_load_time=round(
                sum(p.page_load_time for p in performance) / len(performance)
            )
            if performance
            else None,
            avg_api_response_time=round(sum(api_times) / len(api_times))
            if api_times
            else None,
            performance_data=performance,
            accessibility_data=accessibility,
            by_feature=by_feature,
            by_browser=by_browser,
            by_tag=by_tag,
            failed_tests=[
                FailedTest(
                    name=r.name,
                    feature=r.feature,
                    error=r.error_message or "Unknown error",
                )
                for r in results
                if r.status == "failed"
            ],
        )

        logger.info(
            "metrics_summary",
            passed=passed,
            total=total,
            pass_rate=summary.pass_rate,
        )
        return summary

    def save_to_file(self, output_path: str | Path) -> Path:
        """Write the summary as JSON, creating parent directories."""
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.generate_summary().model_dump_json(indent=2), encoding="utf-8")
        logger.info("metrics_saved", path=str(path))
        return path

    def reset(self) -> None:
        with self._lock:
            self._results = []
            self._performance = []
            self._accessibility = []
            self._api_response_times = []
            self._heal_events = []
            self._run_start = _utcnow()
        logger.info("metrics_collector_reset")
