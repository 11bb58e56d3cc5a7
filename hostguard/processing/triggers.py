"""Trigger loops that feed the pipeline: periodic metric check and alert-feed poll."""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import structlog

from hostguard.analyzers.thresholds import build_alert_summary
from hostguard.collectors.alert_feed import NewAlertDetector
from hostguard.config import ThresholdConfig
from hostguard.interfaces import AlertFeed, MetricsCollector
from hostguard.models.alert import AlertSummary, SystemMetrics
from hostguard.processing.pipeline import Pipeline, PipelineResult
from hostguard.state.cooldowns import CooldownStore
from hostguard.state.lock import RunLock


logger = structlog.get_logger()


class GuardedRunner:
    """
    Runs pipeline cycles under the run lock.

    A cycle that cannot get the lock within ``lock_timeout`` is
    skipped. Anything that writes shared state belongs in
    ``after_cycle``, which runs before the lock is released.
    """

    name = "runner"

    def __init__(self, pipeline: Pipeline, lock: RunLock, lock_timeout: float = 30.0):
        self._pipeline = pipeline
        self._lock = lock
        self._lock_timeout = lock_timeout

    def after_cycle(self):
        pass

    async def run_guarded(self, summary: AlertSummary, metrics: Optional[SystemMetrics], source: str) -> Optional[PipelineResult]:
        """Run the pipeline for *summary* while holding the run lock."""
        if not await self._lock.acquire_async(self._lock_timeout):
            logger.warning("Run lock busy, skipping cycle", trigger=self.name)
            return None
        try:
            result = await self._pipeline.process(summary, metrics, source)
            self.after_cycle()
            return result
        finally:
            self._lock.release()


class Trigger(GuardedRunner, ABC):
    """A timer-driven loop that runs one guarded pipeline cycle per tick."""

    name = "trigger"

    def __init__(
        self,
        pipeline: Pipeline,
        lock: RunLock,
        interval_seconds: float,
        lock_timeout: float = 30.0,
    ):
        super().__init__(pipeline, lock, lock_timeout)
        self._interval = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        return self._interval > 0

    @abstractmethod
    async def run_cycle(self) -> Optional[PipelineResult]:
        ...

    async def start(self):
        if not self.enabled:
            logger.info("Trigger disabled", trigger=self.name)
            return
        logger.info("Starting trigger", trigger=self.name, interval=self._interval)
        self._running = True
        self._task = asyncio.create_task(self._loop())

    async def stop(self):
        logger.info("Stopping trigger", trigger=self.name)
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self):
        while self._running:
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Trigger cycle failed", trigger=self.name, error=str(e), exc_info=True)
            await asyncio.sleep(self._interval)


class PeriodicCheck(Trigger):
    """Collects host metrics and container health, then evaluates thresholds."""

    name = "periodic"

    def __init__(
        self,
        pipeline: Pipeline,
        lock: RunLock,
        collector: MetricsCollector,
        thresholds: ThresholdConfig,
        cooldowns: Optional[CooldownStore] = None,
        interval_seconds: float = 300,
        lock_timeout: float = 10.0,
    ):
        super().__init__(pipeline, lock, interval_seconds, lock_timeout)
        self._collector = collector
        self._thresholds = thresholds
        self._cooldowns = cooldowns

    async def run_cycle(self) -> Optional[PipelineResult]:
        metrics = await self._collector.collect_metrics()
        containers = await self._collector.collect_container_health()
        summary = build_alert_summary(metrics, self._thresholds, containers)
        return await self.run_guarded(summary, metrics, self.name)

    def after_cycle(self):
        if self._cooldowns is not None:
            self._cooldowns.cleanup_expired()


class AlertFeedPoll(Trigger):
    """
    Polls the external alert feed.

    New alerts are processed as issues; a poll with nothing new runs
    an empty summary so resolved issues keep counting toward closure.
    """

    name = "alert_feed"

    def __init__(
        self,
        pipeline: Pipeline,
        lock: RunLock,
        feed: AlertFeed,
        source_name: str = "feed",
        hostname: str = "",
        interval_seconds: float = 60,
        lock_timeout: float = 30.0,
    ):
        super().__init__(pipeline, lock, interval_seconds, lock_timeout)
        self._feed = feed
        self._source = source_name
        self._hostname = hostname
        self._detector = NewAlertDetector()

    async def run_cycle(self) -> Optional[PipelineResult]:
        alerts = await self._feed.poll_alerts()
        new_alerts = self._detector.new_alerts(alerts)
        if new_alerts:
            logger.info("New external alerts", count=len(new_alerts), source=self._source)
        summary = build_alert_summary(alerts=new_alerts, hostname=self._hostname)
        return await self.run_guarded(summary, None, self._source)


class WebhookIngest(GuardedRunner):
    """Runs pushed summaries through the pipeline on demand; it has no loop of its own."""

    name = "webhook"

    async def submit(self, summary: AlertSummary) -> Optional[PipelineResult]:
        return await self.run_guarded(summary, None, self.name)
