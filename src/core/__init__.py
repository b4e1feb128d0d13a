"""Core module — config, types, logging, background tasks."""

from src.core.config import Settings, get_settings, load_settings, reset_settings
from src.core.logging import setup_logging
from src.core.periodic import PeriodicTask
from src.core.types import (
    AlertCondition,
    AlertPayload,
    AlertRule,
    ChannelConfig,
    ChannelKind,
    CheckStatus,
    Incident,
    IncidentStatus,
    NotificationRecord,
    ProbeResult,
    RuleDispatchResult,
    SweepSummary,
    Target,
    TargetKind,
)

__all__ = [
    "AlertCondition",
    "AlertPayload",
    "AlertRule",
    "ChannelConfig",
    "ChannelKind",
    "CheckStatus",
    "Incident",
    "IncidentStatus",
    "NotificationRecord",
    "PeriodicTask",
    "ProbeResult",
    "RuleDispatchResult",
    "Settings",
    "SweepSummary",
    "Target",
    "TargetKind",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
