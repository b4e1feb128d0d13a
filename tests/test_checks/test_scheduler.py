"""Tests for CheckScheduler — sweeps, isolation, bounded concurrency, metrics."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

from src.checks.executor import ProbeExecutor
from src.checks.scheduler import CheckScheduler
from src.core.config import SchedulerConfig
from src.core.types import CheckStatus, ProbeResult, Target
from src.incidents.state_machine import IncidentStateMachine
from src.observability.metrics import MetricsCollector
from src.storage.memory import (
    InMemoryCheckRepository,
    InMemoryIncidentRepository,
    InMemoryMonitorRepository,
)


# ── Helpers ─────────────────────────────────────────────────────


def _target(tid: str, **kw: object) -> Target:
    defaults: dict[str, object] = {
        "id": tid,
        "owner_id": "u1",
        "name": f"Target {tid}",
        "url": f"https://{tid}.example.com/health",
    }
    defaults.update(kw)
    return Target(**defaults)  # type: ignore[arg-type]


def _result(target: Target, status: CheckStatus, **kw: object) -> ProbeResult:
    return ProbeResult(target_id=target.id, status=status, **kw)  # type: ignore[arg-type]


class Harness:
    def __init__(self, targets: list[Target], max_concurrent: int = 10) -> None:
        self.monitors = InMemoryMonitorRepository(targets)
        self.checks = InMemoryCheckRepository()
        self.incidents = InMemoryIncidentRepository()
        self.executor = MagicMock(spec=ProbeExecutor)
        self.executor.check = AsyncMock(
            side_effect=lambda t: _result(t, CheckStatus.UP, response_time_ms=50, status_code=200)
        )
        self.state_machine = IncidentStateMachine(self.incidents)
        self.metrics = MetricsCollector()
        self.scheduler = CheckScheduler(
            monitors=self.monitors,
            checks=self.checks,
            executor=self.executor,
            state_machine=self.state_machine,
            metrics=self.metrics,
            config=SchedulerConfig(max_concurrent=max_concurrent),
        )


# ── run_sweep ───────────────────────────────────────────────────


class TestRunSweep:
    async def test_checks_every_active_target(self) -> None:
        h = Harness([_target("a"), _target("b"), _target("c", active=False)])
        summary = await h.scheduler.run_sweep()
        assert summary.checked == 2
        assert {r.target_id for r in summary.results} == {"a", "b"}
        assert all(r.status == CheckStatus.UP for r in summary.results)
        assert summary.finished_at >= summary.started_at
        assert h.scheduler.sweeps == 1

    async def test_no_targets(self) -> None:
        h = Harness([])
        summary = await h.scheduler.run_sweep()
        assert summary.checked == 0
        assert summary.results == []
        h.executor.check.assert_not_called()

    async def test_results_persisted(self) -> None:
        h = Harness([_target("a")])
        await h.scheduler.run_sweep()
        await h.scheduler.run_sweep()
        assert len(h.checks.all("a")) == 2

    async def test_summary_keeps_target_order(self) -> None:
        targets = [_target(str(i)) for i in range(5)]
        h = Harness(targets)
        summary = await h.scheduler.run_sweep()
        assert [r.target_id for r in summary.results] == [t.id for t in targets]
        assert summary.results[0].target_name == "Target 0"

    async def test_opens_and_resolves_incidents(self) -> None:
        target = _target("a")
        h = Harness([target])
        h.executor.check.side_effect = lambda t: _result(
            t, CheckStatus.DOWN, error_message="Connection refused"
        )
        summary = await h.scheduler.run_sweep()
        assert summary.incidents_opened == 1
        assert summary.incidents_resolved == 0
        assert (await h.incidents.find_open("a")) is not None

        # Still down: no new incident
        summary = await h.scheduler.run_sweep()
        assert summary.incidents_opened == 0
        assert len(h.incidents.for_target("a")) == 1

        h.executor.check.side_effect = lambda t: _result(t, CheckStatus.UP)
        summary = await h.scheduler.run_sweep()
        assert summary.incidents_resolved == 1
        assert (await h.incidents.find_open("a")) is None


# ── Isolation ───────────────────────────────────────────────────


class TestIsolation:
    async def test_probe_exception_becomes_down(self) -> None:
        h = Harness([_target("ok"), _target("bad")])

        async def check(t: Target) -> ProbeResult:
            if t.id == "bad":
                raise RuntimeError("probe exploded")
            return _result(t, CheckStatus.UP)

        h.executor.check.side_effect = check
        summary = await h.scheduler.run_sweep()
        by_id = {r.target_id: r for r in summary.results}
        assert by_id["ok"].status == CheckStatus.UP
        assert by_id["bad"].status == CheckStatus.DOWN
        assert by_id["bad"].error == "probe exploded"
        assert summary.incidents_opened == 1
        assert h.metrics.counter("errors_total", {"component": "probe"}) == 1

    async def test_persist_failure_is_logged_not_raised(self) -> None:
        h = Harness([_target("a")])
        h.checks.append = AsyncMock(side_effect=RuntimeError("db down"))  # type: ignore[method-assign]
        summary = await h.scheduler.run_sweep()
        assert summary.checked == 1
        assert summary.results[0].status == CheckStatus.UP
        assert h.metrics.counter("errors_total", {"component": "check_repository"}) == 1

    async def test_state_machine_failure_is_logged(self) -> None:
        h = Harness([_target("a")])
        h.executor.check.side_effect = lambda t: _result(t, CheckStatus.DOWN)
        h.incidents.create = AsyncMock(side_effect=RuntimeError("db down"))  # type: ignore[method-assign]
        summary = await h.scheduler.run_sweep()
        assert summary.checked == 1
        assert summary.incidents_opened == 0
        assert h.metrics.counter("errors_total", {"component": "incident_state_machine"}) == 1

    async def test_list_failure_returns_empty_summary(self) -> None:
        h = Harness([_target("a")])
        h.monitors.list_active = AsyncMock(side_effect=RuntimeError("db down"))  # type: ignore[method-assign]
        summary = await h.scheduler.run_sweep()
        assert summary.checked == 0
        h.executor.check.assert_not_called()
        assert h.metrics.counter("errors_total", {"component": "monitor_repository"}) == 1


# ── Concurrency ─────────────────────────────────────────────────


class TestConcurrency:
    async def test_parallelism_is_bounded(self) -> None:
        h = Harness([_target(str(i)) for i in range(12)], max_concurrent=3)
        in_flight = 0
        peak = 0

        async def check(t: Target) -> ProbeResult:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return _result(t, CheckStatus.UP)

        h.executor.check.side_effect = check
        summary = await h.scheduler.run_sweep()
        assert summary.checked == 12
        assert peak == 3

    async def test_slow_target_does_not_block_others(self) -> None:
        h = Harness([_target("slow"), _target("fast")], max_concurrent=2)
        finished: list[str] = []

        async def check(t: Target) -> ProbeResult:
            await asyncio.sleep(0.05 if t.id == "slow" else 0)
            finished.append(t.id)
            return _result(t, CheckStatus.UP)

        h.executor.check.side_effect = check
        await h.scheduler.run_sweep()
        assert finished == ["fast", "slow"]


# ── Metrics ─────────────────────────────────────────────────────


class TestMetrics:
    async def test_check_counters_and_durations(self) -> None:
        h = Harness([_target("a"), _target("b")])
        await h.scheduler.run_sweep()
        assert h.metrics.counter(
            "monitor_checks_total", {"status": "up", "kind": "website"}
        ) == 2
        stats = h.metrics.histogram_stats("monitor_check_duration_ms", {"target_id": "a"})
        assert stats is not None
        assert stats["count"] == 1
        assert stats["avg"] == 50

    async def test_sweep_gauge_and_duration(self) -> None:
        h = Harness([_target("a"), _target("b"), _target("c")])
        await h.scheduler.run_sweep()
        assert h.metrics.gauge("active_targets") == 3
        stats = h.metrics.histogram_stats("sweep_duration_ms")
        assert stats is not None
        assert stats["count"] == 1

    async def test_no_duration_without_response_time(self) -> None:
        h = Harness([_target("a")])
        h.executor.check.side_effect = lambda t: _result(t, CheckStatus.DOWN)
        await h.scheduler.run_sweep()
        assert h.metrics.histogram_stats("monitor_check_duration_ms", {"target_id": "a"}) is None
        assert h.metrics.counter(
            "monitor_checks_total", {"status": "down", "kind": "website"}
        ) == 1


# ── check_target ────────────────────────────────────────────────


class TestCheckTarget:
    async def test_runs_full_pipeline(self) -> None:
        target = _target("a")
        h = Harness([target])
        h.executor.check.side_effect = lambda t: _result(t, CheckStatus.DOWN)
        result = await h.scheduler.check_target(target)
        assert result.status == CheckStatus.DOWN
        assert len(h.checks.all("a")) == 1
        assert (await h.incidents.find_open("a")) is not None
