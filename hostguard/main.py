"""hostguard - Main Entry Point."""

import asyncio
import logging
import socket
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import List, Optional

import structlog
import uvicorn
from fastapi import FastAPI, HTTPException

from hostguard import __version__
from hostguard.analyzers.ai import AIAnalyzer
from hostguard.analyzers.rules import RuleBasedAnalyzer
from hostguard.collectors.alert_feed import HttpAlertFeed
from hostguard.collectors.system import SystemCollector
from hostguard.config import Settings, get_settings
from hostguard.ingestion.webhook_server import router as webhook_router
from hostguard.integrations.audit import AuditLog
from hostguard.integrations.github_issues import GitHubIssueTracker
from hostguard.integrations.github_status import GitHubStatusReporter
from hostguard.integrations.notifier import NotificationHub
from hostguard.lifecycle.shutdown import ShutdownCoordinator, install_signal_handlers
from hostguard.models.issue import IssueStatus
from hostguard.processing.pipeline import Pipeline
from hostguard.processing.triggers import AlertFeedPoll, PeriodicCheck, Trigger, WebhookIngest
from hostguard.remediation.actions import build_default_registry
from hostguard.remediation.executor import RemediationExecutor
from hostguard.remediation.runner import CommandRunner
from hostguard.remediation.safety import SafetyValidator
from hostguard.state.cooldowns import CooldownStore
from hostguard.state.issues import IssueStore
from hostguard.state.lock import RunLock
from hostguard.utils.retry import RetryPolicy


LOCK_FILE = "hostguard.lock"


# Configure structured logging
def setup_logging(settings: Settings):
    """Configure structured logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )


logger = structlog.get_logger()

# Set by main() so signal handlers can stop the server
_server: Optional[uvicorn.Server] = None


@dataclass
class Runtime:
    """Everything one running agent owns, wired from one Settings object."""
    settings: Settings
    coordinator: ShutdownCoordinator
    executor: RemediationExecutor
    issues: IssueStore
    cooldowns: CooldownStore
    pipeline: Pipeline
    triggers: List[Trigger]
    webhook: WebhookIngest


def build_runtime(settings: Settings) -> Runtime:
    """Construct collaborators, stores, locks and trigger loops."""
    hostname = settings.hostname or socket.gethostname()
    retry_policy = RetryPolicy.from_config(settings.retry)
    state_dir = settings.state.path

    coordinator = ShutdownCoordinator(
        timeout_seconds=settings.shutdown.timeout_seconds,
        child_grace_seconds=settings.shutdown.child_grace_seconds,
    )
    safety = SafetyValidator()
    runner = CommandRunner(safety, coordinator)
    registry = build_default_registry(runner, settings.remediation.kill_grace_seconds)
    executor = RemediationExecutor(registry, safety, settings.remediation)

    issues = IssueStore(state_dir)
    cooldowns = CooldownStore(state_dir)

    if settings.ai_enabled:
        analyzer = AIAnalyzer(settings.ai, retry_policy)
        logger.info("AI analysis enabled", model=settings.ai.model)
    else:
        analyzer = RuleBasedAnalyzer()
        logger.info("AI analysis disabled, using rule-based analysis")

    tracker = None
    status_reporter = None
    if settings.github.enabled:
        tracker = GitHubIssueTracker(settings.github, retry_policy)
        status_reporter = GitHubStatusReporter(tracker, settings.status_report, settings.github, state_dir)
        logger.info("GitHub issue tracking enabled", repo=settings.github.repo)
    else:
        logger.warning("GitHub repo or token not configured, issue tracking disabled")

    notifier = NotificationHub.from_config(settings.notifications, retry_policy)
    if not notifier.channel_names:
        logger.warning("No notification channels configured")

    pipeline = Pipeline(
        settings,
        issues,
        cooldowns,
        executor,
        analyzer=analyzer,
        tracker=tracker,
        notifier=notifier,
        audit=AuditLog(settings.logging.audit_log_path),
        status_reporter=status_reporter,
    )

    # One lock handle per trigger, all on the same file
    lock_path = state_dir / LOCK_FILE

    def new_lock() -> RunLock:
        lock = RunLock(lock_path)
        coordinator.add_lock(lock)
        return lock

    triggers: List[Trigger] = [
        PeriodicCheck(
            pipeline,
            new_lock(),
            SystemCollector(hostname),
            settings.thresholds,
            cooldowns=cooldowns,
            interval_seconds=settings.schedule.periodic_check_seconds,
            lock_timeout=settings.schedule.periodic_lock_timeout_seconds,
        ),
    ]
    if settings.alert_feed.url:
        triggers.append(
            AlertFeedPoll(
                pipeline,
                new_lock(),
                HttpAlertFeed(settings.alert_feed, retry_policy),
                source_name=settings.alert_feed.source_name,
                hostname=hostname,
                interval_seconds=settings.schedule.alert_poll_seconds,
                lock_timeout=settings.state.lock_timeout_seconds,
            )
        )
    else:
        logger.info("Alert feed URL not configured, feed polling disabled")

    webhook = WebhookIngest(pipeline, new_lock(), lock_timeout=settings.state.lock_timeout_seconds)

    return Runtime(
        settings=settings,
        coordinator=coordinator,
        executor=executor,
        issues=issues,
        cooldowns=cooldowns,
        pipeline=pipeline,
        triggers=triggers,
        webhook=webhook,
    )


def _request_exit(signal_name: str):
    if _server is not None:
        _server.should_exit = True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    setup_logging(settings)

    logger.info(
        "Starting hostguard",
        version=__version__,
        host=settings.server.host,
        port=settings.server.port,
        dry_run=settings.pipeline.dry_run,
        state_dir=settings.state.state_dir,
    )

    runtime = build_runtime(settings)
    install_signal_handlers(runtime.coordinator, on_signal=_request_exit)

    for trigger in runtime.triggers:
        await trigger.start()
        runtime.coordinator.add_cleanup(f"stop {trigger.name}", trigger.stop)

    # Store in app state for access from routes
    app.state.runtime = runtime
    app.state.settings = settings

    logger.info("hostguard started successfully", triggers=[t.name for t in runtime.triggers if t.enabled])

    yield

    await runtime.coordinator.shutdown(reason="lifespan")
    logger.info("hostguard stopped")


# Create FastAPI application
app = FastAPI(
    title="hostguard",
    description="Unattended incident response for a single host",
    version=__version__,
    lifespan=lifespan,
)


# Include routers
app.include_router(webhook_router, prefix="/webhooks", tags=["Webhooks"])


def _runtime() -> Runtime:
    runtime = getattr(app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Runtime not initialized")
    return runtime


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    runtime = getattr(app.state, "runtime", None)
    return {
        "status": "stopping" if runtime and runtime.coordinator.shutting_down else "healthy",
        "version": __version__,
    }


@app.get("/issues")
async def list_issues():
    """List open tracked issues."""
    issues = _runtime().issues.list(IssueStatus.OPEN)
    return {
        "issues": [issue.to_dict() for issue in issues],
        "count": len(issues),
    }


@app.get("/actions")
async def list_actions():
    """List registered remediation actions and their risk levels."""
    return {"actions": [a.to_dict() for a in _runtime().executor.list_actions()]}


@app.get("/executions")
async def list_executions(limit: int = 50):
    """Most recent remediation results, newest first."""
    results = _runtime().executor.recent_results(limit)
    return {"executions": [r.to_dict() for r in results]}


def main():
    """Main entry point."""
    global _server

    # Load settings
    settings = get_settings()

    config = uvicorn.Config(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.logging.level.lower(),
    )
    _server = uvicorn.Server(config)
    asyncio.run(_server.serve())


if __name__ == "__main__":
    main()
