"""IncidentStateMachine — opens and resolves incidents from probe results."""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable

import structlog

from src.core.types import (
    CheckStatus,
    Incident,
    IncidentSeverity,
    IncidentStatus,
    IncidentTransition,
    ProbeResult,
    Target,
    TransitionType,
)
from src.storage.base import IncidentRepository
from src.storage.exceptions import DuplicateOpenIncidentError

logger = structlog.stdlib.get_logger()

IncidentOpenedCallback = Callable[[Target, Incident], Awaitable[None] | None]

DEFAULT_DESCRIPTION = "Monitor check failed"


def _new_incident_id() -> str:
    return f"inc_{uuid.uuid4().hex}"


class IncidentStateMachine:
    """Per-target incident lifecycle: none → open → resolved.

    - ``down`` opens an incident unless one is already open (idempotent).
    - ``up`` / ``degraded`` resolve the open incident, if any. ``degraded``
      never opens one.
    - Each new open incident is announced exactly once to the registered
      callbacks; resolves are silent.

    Transitions for one target are serialized by a per-target lock, so
    concurrent results for the same target cannot both open an incident.
    The repository's own uniqueness check is honoured as a second line.
    """

    def __init__(
        self,
        incidents: IncidentRepository,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._incidents = incidents
        self._clock = clock
        self._callbacks: list[IncidentOpenedCallback] = []
        self._locks: dict[str, asyncio.Lock] = {}
        self._global_lock = asyncio.Lock()

    def on_opened(self, callback: IncidentOpenedCallback) -> None:
        """Register a callback fired once per newly opened incident."""
        self._callbacks.append(callback)

    async def _get_lock(self, target_id: str) -> asyncio.Lock:
        async with self._global_lock:
            if target_id not in self._locks:
                self._locks[target_id] = asyncio.Lock()
            return self._locks[target_id]

    async def apply(self, target: Target, result: ProbeResult) -> IncidentTransition:
        """Drive the state machine for *target* with one probe result."""
        lock = await self._get_lock(target.id)
        async with lock:
            if result.status == CheckStatus.DOWN:
                transition = await self._handle_down(target, result)
            else:
                transition = await self._handle_recovered(target)

        if transition.transition == TransitionType.OPENED and transition.incident is not None:
            await self._emit_opened(target, transition.incident)
        return transition

    # ── Transitions ─────────────────────────────────────────────

    async def _handle_down(self, target: Target, result: ProbeResult) -> IncidentTransition:
        existing = await self._incidents.find_open(target.id)
        if existing is not None:
            return IncidentTransition(target_id=target.id, incident=existing)

        incident = Incident(
            id=_new_incident_id(),
            target_id=target.id,
            title=f"{target.name} is down",
            description=result.error_message or DEFAULT_DESCRIPTION,
            status=IncidentStatus.OPEN,
            severity=IncidentSeverity.HIGH,
            opened_at=result.checked_at,
        )
        try:
            created = await self._incidents.create(incident)
        except DuplicateOpenIncidentError:
            logger.info("incident_already_open", target_id=target.id)
            return IncidentTransition(
                target_id=target.id,
                incident=await self._incidents.find_open(target.id),
            )

        logger.warning(
            "incident_opened",
            target_id=target.id,
            incident_id=created.id,
            description=created.description,
        )
        return IncidentTransition(
            target_id=target.id,
            transition=TransitionType.OPENED,
            incident=created,
        )

    async def _handle_recovered(self, target: Target) -> IncidentTransition:
        existing = await self._incidents.find_open(target.id)
        if existing is None:
            return IncidentTransition(target_id=target.id)

        resolved_at = max(self._clock(), existing.opened_at)
        resolved = await self._incidents.resolve(existing.id, resolved_at)
        logger.info(
            "incident_resolved",
            target_id=target.id,
            incident_id=resolved.id,
            duration_secs=round(resolved_at - existing.opened_at, 3),
        )
        return IncidentTransition(
            target_id=target.id,
            transition=TransitionType.RESOLVED,
            incident=resolved,
        )

    async def _emit_opened(self, target: Target, incident: Incident) -> None:
        for cb in self._callbacks:
            try:
                result = cb(target, incident)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception(
                    "incident_callback_error",
                    target_id=target.id,
                    incident_id=incident.id,
                )
