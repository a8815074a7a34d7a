"""
Test Run Orchestration

Owns the lifecycle of run-wide collaborators and hands out per-test
resources with guaranteed release:
1. Configures logging and creates one MetricsCollector per run
2. Provides a fresh ApiClient / browser page per test execution
3. Writes the metrics summary once, when the run ends
"""

from contextlib import asynccontextmanager
from dataclasses import replace
from pathlib import Path
from typing import AsyncGenerator

import structlog

from healwright.api.client import ApiClient, HttpxTransport, Transport
from healwright.config import Settings, settings as default_settings
from healwright.core.browser import BrowserOptions, BrowserSession
from healwright.core.locator import AutoHealConfig
from healwright.core.metrics import MetricsCollector, MetricsSummary, TestRecord
from healwright.logging_config import configure_logging
from healwright.pages.actions import PageActions

logger = structlog.get_logger()

METRICS_FILENAME = "metrics.json"


class TestRun:
    """
    Scope of one test run.

    Usage:
        async with TestRun() as run:
            async with run.api_session() as client:
                response = await client.get("/posts/1")
            run.record(TestRecord(name="get post", feature="posts",
                                  status="passed", duration_ms=120))
    """

    __test__ = False

    def __init__(
        self,
        settings: Settings | None = None,
        report_dir: str | Path | None = None,
        configure_logs: bool = True,
    ):
        self.settings = settings or default_settings
        self.report_dir = Path(report_dir or self.settings.report_dir)
        self.configure_logs = configure_logs
        self.heal_config = AutoHealConfig.from_settings(self.settings)
        self._metrics: MetricsCollector | None = None
        self.summary: MetricsSummary | None = None

    @property
    def metrics(self) -> MetricsCollector:
        if self._metrics is None:
            raise RuntimeError("Test run not started. Use 'async with' context.")
        return self._metrics

    async def __aenter__(self) -> "TestRun":
        if self.configure_logs:
            configure_logging(self.settings.log_level, self.settings.log_format)
        self._metrics = MetricsCollector()
        logger.info("test_run_started", env=self.settings.env_name)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.summary = self.metrics.generate_summary()
        try:
            path = self.metrics.save_to_file(self.report_dir / METRICS_FILENAME)
        except OSError as e:
            logger.error("metrics_save_failed", report_dir=str(self.report_dir), error=str(e))
            # An exception from the run body takes precedence.
            if exc_val is None:
                raise
            return
        logger.info(
            "test_run_finished",
            total=self.summary.total_tests,
            failed=self.summary.failed,
            auto_heals=self.summary.total_auto_heals,
            report=str(path),
        )

    def record(self, result: TestRecord, actions: PageActions | None = None) -> None:
        """
        Store one test outcome.

        Pass the test's PageActions to credit the heals it made to the record.
        """
        if actions is not None and actions.heal_count:
            result = replace(
                result, auto_heal_count=result.auto_heal_count + actions.heal_count
            )
        self.metrics.record_test_result(result)

    @asynccontextmanager
    async def api_session(
        self,
        base_url: str | None = None,
        transport: Transport | None = None,
    ) -> AsyncGenerator[ApiClient, None]:
        """
        Yield an ApiClient private to one test.

        A transport passed in stays owned by the caller; one created here is
        closed when the block exits.
        """
        owned = transport is None
        if transport is None:
            transport = HttpxTransport()
        try:
            yield ApiClient(
                transport,
                base_url=base_url or self.settings.api_base_url,
                metrics=self.metrics,
                default_timeout_ms=self.settings.api_timeout,
                retry_backoff_ms=self.settings.api_retry_backoff,
            )
        finally:
            if owned:
                await transport.aclose()

    @asynccontextmanager
    async def browser_session(
        self,
        options: BrowserOptions | None = None,
        name: str = "page",
    ) -> AsyncGenerator[PageActions, None]:
        """Yield PageActions over a fresh browser page for one test."""
        options = options or BrowserOptions.from_settings(self.settings)
        async with BrowserSession(options, name=name) as session:
            yield PageActions(
                session.page,
                metrics=self.metrics,
                heal_config=self.heal_config,
                name=name,
            )
