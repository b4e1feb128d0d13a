"""In-memory repository implementations (tests and the standalone runner)."""

from __future__ import annotations

import asyncio
from collections import defaultdict

from src.core.types import (
    AlertCondition,
    AlertRule,
    Incident,
    IncidentStatus,
    NotificationRecord,
    ProbeResult,
    Target,
)
from src.storage.base import (
    AlertRuleRepository,
    CheckRepository,
    IncidentRepository,
    MonitorRepository,
    NotificationRepository,
    Repositories,
)
from src.storage.exceptions import (
    DuplicateOpenIncidentError,
    IncidentNotFoundError,
    TargetNotFoundError,
)


class InMemoryMonitorRepository(MonitorRepository):
    def __init__(self, targets: list[Target] | None = None) -> None:
        self._targets: dict[str, Target] = {t.id: t for t in targets or []}

    def add(self, target: Target) -> None:
        self._targets[target.id] = target

    async def list_active(self) -> list[Target]:
        return [t for t in self._targets.values() if t.active]

    async def get(self, target_id: str) -> Target:
        try:
            return self._targets[target_id]
        except KeyError:
            raise TargetNotFoundError(f"Target {target_id} not found") from None


class InMemoryCheckRepository(CheckRepository):
    def __init__(self, max_per_target: int = 10_000) -> None:
        self._results: dict[str, list[ProbeResult]] = defaultdict(list)
        self._max_per_target = max_per_target

    async def append(self, result: ProbeResult) -> None:
        history = self._results[result.target_id]
        history.append(result)
        if len(history) > self._max_per_target:
            del history[: len(history) - self._max_per_target]

    async def recent(
        self,
        target_id: str,
        since: float,
        limit: int = 100,
    ) -> list[ProbeResult]:
        matching = [r for r in self._results.get(target_id, []) if r.checked_at >= since]
        matching.sort(key=lambda r: r.checked_at, reverse=True)
        return matching[:limit]

    def all(self, target_id: str) -> list[ProbeResult]:
        return list(self._results.get(target_id, []))


class InMemoryIncidentRepository(IncidentRepository):
    """Enforces at most one open incident per target."""

    def __init__(self) -> None:
        self._incidents: dict[str, Incident] = {}
        self._open_by_target: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def find_open(self, target_id: str) -> Incident | None:
        incident_id = self._open_by_target.get(target_id)
        if incident_id is None:
            return None
        return self._incidents[incident_id]

    async def create(self, incident: Incident) -> Incident:
        async with self._lock:
            if incident.target_id in self._open_by_target:
                raise DuplicateOpenIncidentError(
                    f"Target {incident.target_id} already has an open incident"
                )
            self._incidents[incident.id] = incident
            if incident.status == IncidentStatus.OPEN:
                self._open_by_target[incident.target_id] = incident.id
            return incident

    async def resolve(self, incident_id: str, resolved_at: float) -> Incident:
        async with self._lock:
            current = self._incidents.get(incident_id)
            if current is None:
                raise IncidentNotFoundError(f"Incident {incident_id} not found")
            resolved = current.model_copy(update={
                "status": IncidentStatus.RESOLVED,
                "resolved_at": resolved_at,
            })
            self._incidents[incident_id] = resolved
            if self._open_by_target.get(current.target_id) == incident_id:
                del self._open_by_target[current.target_id]
            return resolved

    def for_target(self, target_id: str) -> list[Incident]:
        return [i for i in self._incidents.values() if i.target_id == target_id]


class InMemoryAlertRuleRepository(AlertRuleRepository):
    def __init__(self, rules: list[AlertRule] | None = None) -> None:
        self._rules: dict[str, AlertRule] = {r.id: r for r in rules or []}

    def add(self, rule: AlertRule) -> None:
        self._rules[rule.id] = rule

    async def find_matching(
        self,
        owner_id: str,
        target_id: str | None,
        condition: AlertCondition,
    ) -> list[AlertRule]:
        return [
            r for r in self._rules.values()
            if r.applies_to(owner_id, target_id, condition)
        ]


class InMemoryNotificationRepository(NotificationRepository):
    def __init__(self) -> None:
        self.records: list[NotificationRecord] = []

    async def append(self, record: NotificationRecord) -> None:
        self.records.append(record)


def in_memory_repositories(
    targets: list[Target] | None = None,
    rules: list[AlertRule] | None = None,
) -> Repositories:
    """Build a ``Repositories`` bundle backed entirely by memory."""
    return Repositories(
        monitors=InMemoryMonitorRepository(targets),
        checks=InMemoryCheckRepository(),
        incidents=InMemoryIncidentRepository(),
        rules=InMemoryAlertRuleRepository(rules),
        notifications=InMemoryNotificationRepository(),
    )
