"""Convenience factory for wiring the monitoring stack."""

from __future__ import annotations

from src.alerts.channels import (
    ChannelSender,
    EmailSender,
    SlackSender,
    SmsSender,
    WebhookSender,
)
from src.alerts.dispatcher import NotificationDispatcher
from src.alerts.matcher import AlertRuleMatcher
from src.checks.executor import ProbeExecutor
from src.checks.scheduler import CheckScheduler
from src.core.config import AlertsConfig, Settings, get_settings
from src.core.types import ChannelKind
from src.engine.service import MonitoringService
from src.incidents.state_machine import IncidentStateMachine
from src.observability.metrics import MetricsCollector
from src.reliability.cache import TTLCache
from src.reliability.rate_limiter import FixedWindowRateLimiter
from src.storage.base import Repositories


def create_senders(config: AlertsConfig) -> dict[ChannelKind, ChannelSender]:
    """Build one sender per channel kind from the alerts config."""
    common = {"timeout_secs": config.timeout_secs, "user_agent": config.user_agent}
    return {
        ChannelKind.EMAIL: EmailSender(config.email, **common),
        ChannelKind.SMS: SmsSender(config.sms, **common),
        ChannelKind.WEBHOOK: WebhookSender(**common),
        ChannelKind.SLACK: SlackSender(**common),
    }


def create_engine(
    settings: Settings | None = None,
    repositories: Repositories | None = None,
    senders: dict[ChannelKind, ChannelSender] | None = None,
) -> MonitoringService:
    """Build a fully wired ``MonitoringService``.

    Args:
        settings: Settings to use. Defaults to the cached global settings.
        repositories: Storage backends. Required.
        senders: Override the channel senders (tests inject fakes here).

    Returns:
        The service; call ``start()`` to run background loops.
    """
    if repositories is None:
        raise ValueError("repositories are required")
    settings = settings or get_settings()

    metrics = MetricsCollector(max_histogram_samples=settings.metrics.max_histogram_samples)
    cache = TTLCache(
        max_size=settings.cache.max_size,
        default_ttl_secs=settings.cache.default_ttl_secs,
    )
    rate_limiter = FixedWindowRateLimiter(
        default_limit=settings.rate_limit.default_limit,
        default_window_ms=settings.rate_limit.window_ms,
    )

    executor = ProbeExecutor(settings.probe)
    state_machine = IncidentStateMachine(repositories.incidents)
    scheduler = CheckScheduler(
        monitors=repositories.monitors,
        checks=repositories.checks,
        executor=executor,
        state_machine=state_machine,
        metrics=metrics,
        config=settings.scheduler,
    )
    dispatcher = NotificationDispatcher(
        senders=senders if senders is not None else create_senders(settings.alerts),
        notifications=repositories.notifications,
        metrics=metrics,
    )

    return MonitoringService(
        repositories=repositories,
        executor=executor,
        scheduler=scheduler,
        state_machine=state_machine,
        matcher=AlertRuleMatcher(repositories.rules),
        dispatcher=dispatcher,
        cache=cache,
        rate_limiter=rate_limiter,
        metrics=metrics,
        settings=settings,
    )
