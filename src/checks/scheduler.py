"""CheckScheduler — one bounded-concurrency sweep over every active target."""

from __future__ import annotations

import asyncio
import time
import uuid

import structlog

from src.checks.executor import ProbeExecutor
from src.core.config import SchedulerConfig, get_settings
from src.core.types import (
    CheckStatus,
    IncidentTransition,
    ProbeResult,
    SweepSummary,
    Target,
    TargetCheckSummary,
    TransitionType,
)
from src.incidents.state_machine import IncidentStateMachine
from src.observability.metrics import MetricsCollector
from src.storage.base import CheckRepository, MonitorRepository

logger = structlog.stdlib.get_logger()


class CheckScheduler:
    """Probes all active targets, persists results, and drives incidents.

    Per-target pipeline: probe → record metrics → persist → state machine.
    Each stage is isolated: an unexpected probe error becomes a ``down``
    result, storage and incident errors are logged, and no target's failure
    delays or aborts any other.

    Usage::

        scheduler = CheckScheduler(monitors, checks, executor, state_machine, metrics)
        summary = await scheduler.run_sweep()
    """

    def __init__(
        self,
        monitors: MonitorRepository,
        checks: CheckRepository,
        executor: ProbeExecutor,
        state_machine: IncidentStateMachine,
        metrics: MetricsCollector,
        config: SchedulerConfig | None = None,
    ) -> None:
        self._monitors = monitors
        self._checks = checks
        self._executor = executor
        self._state_machine = state_machine
        self._metrics = metrics
        self._config = config or get_settings().scheduler
        self._sweeps = 0

    @property
    def max_concurrent(self) -> int:
        return self._config.max_concurrent

    @property
    def sweeps(self) -> int:
        return self._sweeps

    async def run_sweep(self) -> SweepSummary:
        """Check every active target once and summarise the outcome."""
        with structlog.contextvars.bound_contextvars(sweep_id=uuid.uuid4().hex[:12]):
            return await self._run_sweep()

    async def _run_sweep(self) -> SweepSummary:
        started_at = time.time()
        try:
            targets = await self._monitors.list_active()
        except Exception:
            logger.exception("sweep_list_targets_error")
            self._metrics.increment("errors_total", tags={"component": "monitor_repository"})
            return SweepSummary(started_at=started_at, finished_at=time.time())

        self._metrics.set_gauge("active_targets", len(targets))
        semaphore = asyncio.Semaphore(max(1, self._config.max_concurrent))

        async def _bounded(target: Target) -> tuple[ProbeResult, IncidentTransition | None]:
            async with semaphore:
                return await self._process(target)

        with self._metrics.timer("sweep_duration_ms"):
            outcomes = await asyncio.gather(*(_bounded(t) for t in targets))

        summary = SweepSummary(started_at=started_at)
        for target, (result, transition) in zip(targets, outcomes):
            summary.results.append(TargetCheckSummary(
                target_id=target.id,
                target_name=target.name,
                status=result.status,
                response_time_ms=result.response_time_ms,
                error=result.error_message,
            ))
            if transition is None:
                continue
            if transition.transition == TransitionType.OPENED:
                summary.incidents_opened += 1
            elif transition.transition == TransitionType.RESOLVED:
                summary.incidents_resolved += 1

        summary.checked = len(summary.results)
        summary.finished_at = time.time()
        self._sweeps += 1

        counts = summary.status_counts()
        logger.info(
            "sweep_completed",
            checked=summary.checked,
            up=counts[CheckStatus.UP],
            down=counts[CheckStatus.DOWN],
            degraded=counts[CheckStatus.DEGRADED],
            incidents_opened=summary.incidents_opened,
            incidents_resolved=summary.incidents_resolved,
            duration_secs=round(summary.finished_at - started_at, 3),
        )
        return summary

    async def check_target(self, target: Target) -> ProbeResult:
        """Run the full per-target pipeline for a single target."""
        result, _ = await self._process(target)
        return result

    # ── Per-target pipeline ─────────────────────────────────────

    async def _process(self, target: Target) -> tuple[ProbeResult, IncidentTransition | None]:
        result = await self._probe(target)
        self._record_metrics(target, result)
        await self._persist(result)
        transition = await self._apply_incident(target, result)
        return result, transition

    async def _probe(self, target: Target) -> ProbeResult:
        try:
            return await self._executor.check(target)
        except Exception as exc:
            logger.exception("probe_error", target_id=target.id)
            self._metrics.increment("errors_total", tags={"component": "probe"})
            return ProbeResult(
                target_id=target.id,
                status=CheckStatus.DOWN,
                error_message=str(exc) or type(exc).__name__,
            )

    def _record_metrics(self, target: Target, result: ProbeResult) -> None:
        self._metrics.increment(
            "monitor_checks_total",
            tags={"status": result.status.value, "kind": target.kind.value},
        )
        if result.response_time_ms is not None:
            self._metrics.observe(
                "monitor_check_duration_ms",
                result.response_time_ms,
                tags={"target_id": target.id},
            )

    async def _persist(self, result: ProbeResult) -> None:
        try:
            await self._checks.append(result)
        except Exception:
            logger.exception("check_persist_error", target_id=result.target_id)
            self._metrics.increment("errors_total", tags={"component": "check_repository"})

    async def _apply_incident(
        self,
        target: Target,
        result: ProbeResult,
    ) -> IncidentTransition | None:
        try:
            return await self._state_machine.apply(target, result)
        except Exception:
            logger.exception("incident_transition_error", target_id=target.id)
            self._metrics.increment("errors_total", tags={"component": "incident_state_machine"})
            return None
