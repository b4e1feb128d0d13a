"""Repository interfaces the monitoring engine depends on.

The engine never touches a storage schema directly; each collaborator is an
async ABC so a SQL, document, or in-memory backend can be swapped in.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass

from src.core.types import (
    AlertCondition,
    AlertRule,
    Incident,
    NotificationRecord,
    ProbeResult,
    Target,
)


class MonitorRepository(abc.ABC):
    """Read access to monitored targets."""

    @abc.abstractmethod
    async def list_active(self) -> list[Target]:
        """Return every target with ``active=True``."""

    @abc.abstractmethod
    async def get(self, target_id: str) -> Target:
        """Return one target. Raises ``TargetNotFoundError`` if missing."""


class CheckRepository(abc.ABC):
    """Append-only probe history."""

    @abc.abstractmethod
    async def append(self, result: ProbeResult) -> None: ...

    @abc.abstractmethod
    async def recent(
        self,
        target_id: str,
        since: float,
        limit: int = 100,
    ) -> list[ProbeResult]:
        """Results for *target_id* checked at or after *since*, newest first."""


class IncidentRepository(abc.ABC):
    @abc.abstractmethod
    async def find_open(self, target_id: str) -> Incident | None: ...

    @abc.abstractmethod
    async def create(self, incident: Incident) -> Incident:
        """Persist a new open incident.

        Implementations should raise ``DuplicateOpenIncidentError`` when the
        target already has one open.
        """

    @abc.abstractmethod
    async def resolve(self, incident_id: str, resolved_at: float) -> Incident:
        """Mark an incident resolved. Raises ``IncidentNotFoundError`` if missing."""


class AlertRuleRepository(abc.ABC):
    @abc.abstractmethod
    async def find_matching(
        self,
        owner_id: str,
        target_id: str | None,
        condition: AlertCondition,
    ) -> list[AlertRule]:
        """Active rules of *owner_id* for *condition* scoped to *target_id* or unscoped."""


class NotificationRepository(abc.ABC):
    @abc.abstractmethod
    async def append(self, record: NotificationRecord) -> None: ...


@dataclass
class Repositories:
    """Bundle of every collaborator the engine needs."""

    monitors: MonitorRepository
    checks: CheckRepository
    incidents: IncidentRepository
    rules: AlertRuleRepository
    notifications: NotificationRepository
