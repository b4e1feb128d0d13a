"""MonitoringService — the facade the route layer and runner call into."""

from __future__ import annotations

import time

import structlog

from src.alerts.dispatcher import NotificationDispatcher
from src.alerts.matcher import AlertRuleMatcher
from src.checks.executor import ProbeExecutor
from src.checks.scheduler import CheckScheduler
from src.core.config import Settings, get_settings
from src.core.periodic import PeriodicTask
from src.core.types import (
    AlertCondition,
    AlertPayload,
    CheckStatus,
    Incident,
    ProbeResult,
    RuleDispatchResult,
    SweepSummary,
    Target,
    TargetStats,
)
from src.incidents.state_machine import IncidentStateMachine
from src.observability.metrics import MetricsCollector
from src.reliability.cache import TTLCache, target_stats_key
from src.reliability.rate_limiter import FixedWindowRateLimiter
from src.storage.base import Repositories

logger = structlog.stdlib.get_logger()

# Upper bound on results read back when aggregating stats.
_STATS_SAMPLE_LIMIT = 10_000


class MonitoringService:
    """Owns the monitoring pipeline and its background loops.

    Construct through ``src.engine.factory.create_engine``; every collaborator
    is passed in explicitly so tests can swap any of them.

    Usage::

        service = create_engine(settings, repositories)
        summary = await service.run_sweep()

        await service.start()   # periodic sweeps + housekeeping
        ...
        await service.stop()
        await service.close()
    """

    def __init__(
        self,
        repositories: Repositories,
        executor: ProbeExecutor,
        scheduler: CheckScheduler,
        state_machine: IncidentStateMachine,
        matcher: AlertRuleMatcher,
        dispatcher: NotificationDispatcher,
        cache: TTLCache,
        rate_limiter: FixedWindowRateLimiter,
        metrics: MetricsCollector,
        settings: Settings | None = None,
    ) -> None:
        self._repos = repositories
        self._executor = executor
        self._scheduler = scheduler
        self._state_machine = state_machine
        self._matcher = matcher
        self._dispatcher = dispatcher
        self._cache = cache
        self._rate_limiter = rate_limiter
        self._metrics = metrics
        self._settings = settings or get_settings()

        self._state_machine.on_opened(self._on_incident_opened)

        self._sweep_task = PeriodicTask(
            "check_sweep",
            self.run_sweep,
            interval_secs=self._settings.scheduler.sweep_interval_secs,
            run_immediately=True,
        )
        self._housekeeping_tasks = [
            PeriodicTask(
                "cache_cleanup",
                self._cache.cleanup,
                interval_secs=self._settings.cache.cleanup_interval_secs,
            ),
            PeriodicTask(
                "rate_limit_sweep",
                self._rate_limiter.sweep,
                interval_secs=self._settings.rate_limit.sweep_interval_secs,
            ),
        ]
        self._running = False

    # ── Exposed collaborators ───────────────────────────────────

    @property
    def cache(self) -> TTLCache:
        return self._cache

    @property
    def rate_limiter(self) -> FixedWindowRateLimiter:
        return self._rate_limiter

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def repositories(self) -> Repositories:
        return self._repos

    @property
    def running(self) -> bool:
        return self._running

    # ── Operations ──────────────────────────────────────────────

    async def run_sweep(self) -> SweepSummary:
        """Check every active target once."""
        return await self._scheduler.run_sweep()

    async def check_one(self, target_id: str) -> ProbeResult:
        """Run the full pipeline for one target, on demand.

        Raises:
            TargetNotFoundError: No target with *target_id* exists.
        """
        target = await self._repos.monitors.get(target_id)
        result = await self._scheduler.check_target(target)
        self._cache.delete_prefix(f"target:stats:{target_id}:")
        return result

    async def dispatch_alert(
        self,
        target_id: str,
        condition: AlertCondition,
        message: str,
        incident_id: str | None = None,
    ) -> list[RuleDispatchResult]:
        """Send an alert to every matching rule of the target's owner.

        Raises:
            TargetNotFoundError: No target with *target_id* exists.
        """
        target = await self._repos.monitors.get(target_id)
        return await self._dispatch_for(target, condition, message, incident_id)

    async def target_stats(self, target_id: str, hours: int = 24) -> TargetStats:
        """Uptime and mean latency for *target_id* over the last *hours*."""
        key = target_stats_key(target_id, hours)
        cached = self._cache.get(key)
        if cached is not None:
            self._metrics.increment("cache_hits_total", tags={"cache": "target_stats"})
            return cached  # type: ignore[no-any-return]

        self._metrics.increment("cache_misses_total", tags={"cache": "target_stats"})
        stats = await self._compute_stats(target_id, hours)
        self._cache.set(key, stats, ttl_secs=self._settings.cache.stats_ttl_secs)
        return stats

    def metrics_snapshot(self) -> dict[str, object]:
        snapshot: dict[str, object] = dict(self._metrics.snapshot())
        snapshot["cache"] = self._cache.stats()
        return snapshot

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        """Start the sweep loop and the housekeeping loops."""
        if self._running:
            return
        self._running = True
        await self._executor.connect()
        await self._sweep_task.start()
        for task in self._housekeeping_tasks:
            await task.start()
        logger.info(
            "monitoring_service_started",
            sweep_interval_secs=self._settings.scheduler.sweep_interval_secs,
            max_concurrent=self._settings.scheduler.max_concurrent,
        )

    async def stop(self) -> None:
        """Stop background loops. In-flight sweeps are cancelled."""
        if not self._running:
            return
        self._running = False
        await self._sweep_task.stop()
        for task in self._housekeeping_tasks:
            await task.stop()
        logger.info("monitoring_service_stopped", sweeps=self._scheduler.sweeps)

    async def close(self) -> None:
        """Release probe and sender HTTP sessions."""
        await self.stop()
        await self._executor.close()
        await self._dispatcher.close()

    # ── Internal ────────────────────────────────────────────────

    async def _on_incident_opened(self, target: Target, incident: Incident) -> None:
        await self._dispatch_for(
            target,
            AlertCondition.DOWN,
            incident.description,
            incident.id,
        )

    async def _dispatch_for(
        self,
        target: Target,
        condition: AlertCondition,
        message: str,
        incident_id: str | None,
    ) -> list[RuleDispatchResult]:
        rules = await self._matcher.match(target, condition)
        payload = AlertPayload(
            owner_id=target.owner_id,
            target_id=target.id,
            incident_id=incident_id,
            title=f"Alert: {target.name}",
            message=message,
        )
        results = await self._dispatcher.dispatch(rules, payload)
        logger.info(
            "alert_dispatched",
            target_id=target.id,
            condition=condition,
            incident_id=incident_id,
            rules=len(results),
            delivered=sum(r.delivered for r in results),
        )
        return results

    async def _compute_stats(self, target_id: str, hours: int) -> TargetStats:
        since = time.time() - hours * 3600
        results = await self._repos.checks.recent(target_id, since, limit=_STATS_SAMPLE_LIMIT)
        open_incident = await self._repos.incidents.find_open(target_id)

        total = len(results)
        up = sum(1 for r in results if r.status == CheckStatus.UP)
        timings = [r.response_time_ms for r in results if r.response_time_ms is not None]

        return TargetStats(
            target_id=target_id,
            window_hours=hours,
            total_checks=total,
            up_checks=up,
            uptime_pct=round(up / total * 100, 2) if total else 100.0,
            avg_response_time_ms=round(sum(timings) / len(timings)) if timings else 0,
            open_incident=open_incident is not None,
        )
