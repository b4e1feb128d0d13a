"""NotificationDispatcher — fans one alert out across every channel of a rule."""

from __future__ import annotations

import asyncio

import structlog

from src.alerts.channels import ChannelSender
from src.core.types import (
    AlertPayload,
    AlertRule,
    ChannelConfig,
    ChannelResult,
    DeliveryStatus,
    NotificationRecord,
    RuleDispatchResult,
)
from src.observability.metrics import MetricsCollector
from src.storage.base import NotificationRepository

# Dedicated structured logger for alert records.
alert_logger = structlog.get_logger("alert_log")

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """Delivers alerts through the senders registered per channel kind.

    - Every channel of a rule is attempted concurrently; a failure or
      exception on one channel never affects the others.
    - Results keep the rule's channel order.
    - One ``NotificationRecord`` is persisted per channel attempt; storage
      errors are logged and never change the returned result.
    - Across several rules the same isolation applies: a rule that fails as
      a whole is reported with ``error`` next to the successful ones.
    """

    def __init__(
        self,
        senders: dict[str, ChannelSender],
        notifications: NotificationRepository | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._senders = dict(senders)
        self._notifications = notifications
        self._metrics = metrics

    @property
    def senders(self) -> dict[str, ChannelSender]:
        return dict(self._senders)

    async def dispatch(
        self,
        rules: list[AlertRule],
        payload: AlertPayload,
    ) -> list[RuleDispatchResult]:
        """Dispatch *payload* for every rule, one result per rule in order."""
        self._log_alert(payload, rules)
        if not rules:
            return []
        return list(await asyncio.gather(
            *(self._dispatch_rule_isolated(rule, payload) for rule in rules)
        ))

    async def dispatch_rule(self, rule: AlertRule, payload: AlertPayload) -> RuleDispatchResult:
        """Attempt delivery on every channel configured on *rule*."""
        results = list(await asyncio.gather(
            *(self._send_one(channel, payload) for channel in rule.channels)
        ))
        for result in results:
            await self._record(payload, result)
        logger.info(
            "rule_dispatched",
            rule_id=rule.id,
            channels=len(results),
            delivered=sum(1 for r in results if r.success),
        )
        return RuleDispatchResult(rule_id=rule.id, rule_name=rule.name, results=results)

    # ── Internal ────────────────────────────────────────────────

    async def _dispatch_rule_isolated(
        self,
        rule: AlertRule,
        payload: AlertPayload,
    ) -> RuleDispatchResult:
        try:
            return await self.dispatch_rule(rule, payload)
        except Exception as exc:
            logger.exception("rule_dispatch_error", rule_id=rule.id)
            return RuleDispatchResult(
                rule_id=rule.id,
                rule_name=rule.name,
                error=str(exc) or type(exc).__name__,
            )

    async def _send_one(self, channel: ChannelConfig, payload: AlertPayload) -> ChannelResult:
        sender = self._senders.get(channel.kind)
        if sender is None:
            result = ChannelResult(
                channel=channel.kind,
                success=False,
                error="Unknown notification type",
            )
        else:
            try:
                sent = await sender.send(payload, channel.config)
                result = ChannelResult(
                    channel=channel.kind,
                    success=sent.success,
                    message_id=sent.message_id,
                    error=sent.error,
                )
            except Exception as exc:
                logger.exception(
                    "channel_dispatch_error",
                    channel=channel.kind.value,
                    target_id=payload.target_id,
                )
                result = ChannelResult(
                    channel=channel.kind,
                    success=False,
                    error=str(exc) or type(exc).__name__,
                )

        if self._metrics is not None:
            self._metrics.increment(
                "notifications_total",
                tags={
                    "channel": channel.kind.value,
                    "status": "sent" if result.success else "failed",
                },
            )
        return result

    async def _record(self, payload: AlertPayload, result: ChannelResult) -> None:
        if self._notifications is None:
            return
        record = NotificationRecord(
            owner_id=payload.owner_id,
            target_id=payload.target_id,
            incident_id=payload.incident_id,
            channel=result.channel,
            title=payload.title,
            message=payload.message,
            status=DeliveryStatus.SENT if result.success else DeliveryStatus.FAILED,
        )
        try:
            await self._notifications.append(record)
        except Exception:
            logger.exception(
                "notification_record_error",
                channel=result.channel.value,
                target_id=payload.target_id,
            )

    def _log_alert(self, payload: AlertPayload, rules: list[AlertRule]) -> None:
        alert_logger.info(
            "alert",
            title=payload.title,
            message=payload.message,
            target_id=payload.target_id,
            incident_id=payload.incident_id,
            rule_ids=[r.id for r in rules],
        )

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        for kind, sender in self._senders.items():
            try:
                await sender.close()
            except Exception:
                logger.exception("sender_close_error", channel=str(kind))
