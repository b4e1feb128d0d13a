"""Domain types for endpoint monitoring, incidents, and alert delivery."""

from __future__ import annotations

import time
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TargetKind(StrEnum):
    """What kind of endpoint a target represents."""

    WEBSITE = "website"
    API = "api"
    DATABASE = "database"
    WEBHOOK = "webhook"


class CheckStatus(StrEnum):
    """Classified health of a single probe."""

    UP = "up"
    DOWN = "down"
    DEGRADED = "degraded"


class IncidentStatus(StrEnum):
    OPEN = "open"
    RESOLVED = "resolved"


class IncidentSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertCondition(StrEnum):
    """Failure condition an alert rule fires on."""

    DOWN = "down"
    SLOW = "slow"
    STATUS_CODE = "status_code"


class ChannelKind(StrEnum):
    """Notification channel kind."""

    EMAIL = "email"
    SMS = "sms"
    WEBHOOK = "webhook"
    SLACK = "slack"


class DeliveryStatus(StrEnum):
    SENT = "sent"
    FAILED = "failed"


class TransitionType(StrEnum):
    """Outcome of applying a probe result to the incident state machine."""

    NONE = "none"
    OPENED = "opened"
    RESOLVED = "resolved"


# ── Targets & Probes ─────────────────────────────────────────────


class Target(BaseModel):
    """A monitored endpoint owned by a user."""

    id: str
    owner_id: str
    name: str
    kind: TargetKind = TargetKind.WEBSITE
    url: str
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | None = None
    expected_status_code: int = 200
    timeout_secs: float = 30.0
    interval_minutes: int = 5
    active: bool = True


class ProbeResult(BaseModel):
    """Outcome of one probe invocation. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    target_id: str
    status: CheckStatus
    response_time_ms: int | None = None
    status_code: int | None = None
    error_message: str | None = None
    checked_at: float = Field(default_factory=time.time)


# ── Incidents ────────────────────────────────────────────────────


class Incident(BaseModel):
    """An outage tracked for a single target."""

    id: str
    target_id: str
    title: str
    description: str = ""
    status: IncidentStatus = IncidentStatus.OPEN
    severity: IncidentSeverity = IncidentSeverity.HIGH
    opened_at: float
    resolved_at: float | None = None

    @property
    def is_open(self) -> bool:
        return self.status == IncidentStatus.OPEN


class IncidentTransition(BaseModel):
    """Result of driving the state machine with one probe result."""

    target_id: str
    transition: TransitionType = TransitionType.NONE
    incident: Incident | None = None


# ── Alert rules & notifications ──────────────────────────────────


class ChannelConfig(BaseModel):
    """One delivery channel on an alert rule, e.g. ``{"webhook_url": ...}``."""

    kind: ChannelKind
    config: dict[str, Any] = Field(default_factory=dict)


class AlertRule(BaseModel):
    """Notification rule owned by a user, optionally scoped to one target."""

    id: str
    owner_id: str
    name: str = ""
    target_id: str | None = None
    condition: AlertCondition = AlertCondition.DOWN
    active: bool = True
    channels: list[ChannelConfig] = Field(default_factory=list)

    def applies_to(
        self,
        owner_id: str,
        target_id: str | None,
        condition: AlertCondition,
    ) -> bool:
        """True if this rule should fire for *condition* on *target_id*."""
        if not self.active or self.owner_id != owner_id:
            return False
        if self.condition != condition:
            return False
        return self.target_id is None or self.target_id == target_id


class AlertPayload(BaseModel):
    """Channel-agnostic alert content handed to every sender."""

    owner_id: str
    target_id: str
    incident_id: str | None = None
    title: str
    message: str
    created_at: float = Field(default_factory=time.time)


class SendResult(BaseModel):
    """What a single channel sender reports back."""

    success: bool
    message_id: str | None = None
    error: str | None = None
    status_code: int | None = None


class ChannelResult(BaseModel):
    """Per-channel entry in a rule dispatch result."""

    channel: ChannelKind
    success: bool
    message_id: str | None = None
    error: str | None = None


class RuleDispatchResult(BaseModel):
    """Aggregate delivery outcome for one alert rule."""

    rule_id: str
    rule_name: str = ""
    results: list[ChannelResult] = Field(default_factory=list)
    error: str | None = None

    @property
    def delivered(self) -> int:
        return sum(1 for r in self.results if r.success)


class NotificationRecord(BaseModel):
    """Persisted trace of one channel delivery attempt."""

    model_config = ConfigDict(frozen=True)

    owner_id: str
    target_id: str
    incident_id: str | None = None
    channel: ChannelKind
    title: str
    message: str
    status: DeliveryStatus
    created_at: float = Field(default_factory=time.time)


# ── Sweep summaries & stats ──────────────────────────────────────


class TargetCheckSummary(BaseModel):
    """Per-target line of a sweep summary."""

    target_id: str
    target_name: str = ""
    status: CheckStatus
    response_time_ms: int | None = None
    error: str | None = None


class SweepSummary(BaseModel):
    """Aggregate outcome of one full check sweep."""

    checked: int = 0
    results: list[TargetCheckSummary] = Field(default_factory=list)
    incidents_opened: int = 0
    incidents_resolved: int = 0
    started_at: float = 0.0
    finished_at: float = 0.0

    def status_counts(self) -> dict[CheckStatus, int]:
        counts = {status: 0 for status in CheckStatus}
        for r in self.results:
            counts[r.status] += 1
        return counts


class TargetStats(BaseModel):
    """Uptime and latency aggregates for one target over a time window."""

    target_id: str
    window_hours: int = 24
    total_checks: int = 0
    up_checks: int = 0
    uptime_pct: float = 100.0
    avg_response_time_ms: int = 0
    open_incident: bool = False
