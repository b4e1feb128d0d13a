"""Tests for NotificationDispatcher — fan-out, isolation, persistence, metrics."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

from src.alerts.channels import ChannelSender
from src.alerts.dispatcher import NotificationDispatcher
from src.alerts.exceptions import ChannelConfigError
from src.core.types import (
    AlertPayload,
    AlertRule,
    ChannelConfig,
    ChannelKind,
    DeliveryStatus,
    SendResult,
)
from src.observability.metrics import MetricsCollector
from src.storage.memory import InMemoryNotificationRepository


# ── Helpers ─────────────────────────────────────────────────────


class FakeSender(ChannelSender):
    def __init__(self, kind: ChannelKind, ok: bool = True, exc: Exception | None = None) -> None:
        self.kind = kind
        self._ok = ok
        self._exc = exc
        self.sent: list[tuple[AlertPayload, dict[str, Any]]] = []
        self.closed = False

    async def send(self, payload: AlertPayload, config: dict[str, Any]) -> SendResult:
        if self._exc is not None:
            raise self._exc
        self.sent.append((payload, config))
        return SendResult(
            success=self._ok,
            message_id=f"{self.kind.value}_1" if self._ok else None,
            error=None if self._ok else "HTTP 500",
        )

    async def close(self) -> None:
        self.closed = True


def _payload() -> AlertPayload:
    return AlertPayload(
        owner_id="u1",
        target_id="t1",
        incident_id="inc_1",
        title="Alert: API",
        message="Connection refused",
    )


def _rule(rid: str, *kinds: ChannelKind) -> AlertRule:
    return AlertRule(
        id=rid,
        owner_id="u1",
        name=f"rule {rid}",
        channels=[ChannelConfig(kind=k, config={"to": rid}) for k in kinds],
    )


def _dispatcher(
    senders: dict[str, ChannelSender],
) -> tuple[NotificationDispatcher, InMemoryNotificationRepository, MetricsCollector]:
    notifications = InMemoryNotificationRepository()
    metrics = MetricsCollector()
    return NotificationDispatcher(senders, notifications, metrics), notifications, metrics


# ── dispatch_rule ───────────────────────────────────────────────


class TestDispatchRule:
    async def test_all_channels_attempted_in_order(self) -> None:
        email = FakeSender(ChannelKind.EMAIL)
        webhook = FakeSender(ChannelKind.WEBHOOK)
        d, _, _ = _dispatcher({ChannelKind.EMAIL: email, ChannelKind.WEBHOOK: webhook})

        result = await d.dispatch_rule(_rule("r1", ChannelKind.WEBHOOK, ChannelKind.EMAIL), _payload())
        assert [r.channel for r in result.results] == [ChannelKind.WEBHOOK, ChannelKind.EMAIL]
        assert all(r.success for r in result.results)
        assert result.delivered == 2
        assert webhook.sent[0][1] == {"to": "r1"}

    async def test_failing_channel_isolated(self) -> None:
        broken = FakeSender(ChannelKind.SLACK, exc=RuntimeError("slack exploded"))
        webhook = FakeSender(ChannelKind.WEBHOOK)
        d, _, _ = _dispatcher({ChannelKind.SLACK: broken, ChannelKind.WEBHOOK: webhook})

        result = await d.dispatch_rule(_rule("r1", ChannelKind.SLACK, ChannelKind.WEBHOOK), _payload())
        slack, hook = result.results
        assert slack.success is False
        assert slack.error == "slack exploded"
        assert hook.success is True
        assert len(webhook.sent) == 1

    async def test_config_error_captured(self) -> None:
        broken = FakeSender(ChannelKind.WEBHOOK, exc=ChannelConfigError("webhook channel requires 'webhook_url'"))
        d, _, _ = _dispatcher({ChannelKind.WEBHOOK: broken})
        result = await d.dispatch_rule(_rule("r1", ChannelKind.WEBHOOK), _payload())
        assert result.results[0].success is False
        assert "webhook_url" in (result.results[0].error or "")

    async def test_unsuccessful_send_reported(self) -> None:
        d, _, _ = _dispatcher({ChannelKind.WEBHOOK: FakeSender(ChannelKind.WEBHOOK, ok=False)})
        result = await d.dispatch_rule(_rule("r1", ChannelKind.WEBHOOK), _payload())
        assert result.results[0].success is False
        assert result.results[0].error == "HTTP 500"
        assert result.delivered == 0

    async def test_unknown_channel_kind(self) -> None:
        d, _, _ = _dispatcher({ChannelKind.EMAIL: FakeSender(ChannelKind.EMAIL)})
        result = await d.dispatch_rule(_rule("r1", ChannelKind.SMS, ChannelKind.EMAIL), _payload())
        assert result.results[0].success is False
        assert result.results[0].error == "Unknown notification type"
        assert result.results[1].success is True

    async def test_rule_without_channels(self) -> None:
        d, notifications, _ = _dispatcher({})
        result = await d.dispatch_rule(_rule("r1"), _payload())
        assert result.results == []
        assert notifications.records == []


# ── Persistence & metrics ───────────────────────────────────────


class TestRecording:
    async def test_one_record_per_attempt(self) -> None:
        d, notifications, _ = _dispatcher({
            ChannelKind.EMAIL: FakeSender(ChannelKind.EMAIL),
            ChannelKind.WEBHOOK: FakeSender(ChannelKind.WEBHOOK, ok=False),
        })
        await d.dispatch_rule(_rule("r1", ChannelKind.EMAIL, ChannelKind.WEBHOOK), _payload())
        statuses = {r.channel: r.status for r in notifications.records}
        assert statuses == {
            ChannelKind.EMAIL: DeliveryStatus.SENT,
            ChannelKind.WEBHOOK: DeliveryStatus.FAILED,
        }
        record = notifications.records[0]
        assert record.owner_id == "u1"
        assert record.incident_id == "inc_1"
        assert record.title == "Alert: API"

    async def test_persistence_failure_does_not_change_result(self) -> None:
        d, notifications, _ = _dispatcher({ChannelKind.EMAIL: FakeSender(ChannelKind.EMAIL)})
        notifications.append = AsyncMock(side_effect=RuntimeError("db down"))  # type: ignore[method-assign]
        result = await d.dispatch_rule(_rule("r1", ChannelKind.EMAIL), _payload())
        assert result.results[0].success is True

    async def test_without_repository(self) -> None:
        d = NotificationDispatcher({ChannelKind.EMAIL: FakeSender(ChannelKind.EMAIL)})
        result = await d.dispatch_rule(_rule("r1", ChannelKind.EMAIL), _payload())
        assert result.delivered == 1

    async def test_metrics(self) -> None:
        d, _, metrics = _dispatcher({
            ChannelKind.EMAIL: FakeSender(ChannelKind.EMAIL),
            ChannelKind.WEBHOOK: FakeSender(ChannelKind.WEBHOOK, ok=False),
        })
        await d.dispatch_rule(_rule("r1", ChannelKind.EMAIL, ChannelKind.WEBHOOK), _payload())
        assert metrics.counter("notifications_total", {"channel": "email", "status": "sent"}) == 1
        assert metrics.counter("notifications_total", {"channel": "webhook", "status": "failed"}) == 1


# ── dispatch ────────────────────────────────────────────────────


class TestDispatch:
    async def test_no_rules(self) -> None:
        d, notifications, _ = _dispatcher({ChannelKind.EMAIL: FakeSender(ChannelKind.EMAIL)})
        assert await d.dispatch([], _payload()) == []
        assert notifications.records == []

    async def test_one_result_per_rule(self) -> None:
        email = FakeSender(ChannelKind.EMAIL)
        d, _, _ = _dispatcher({ChannelKind.EMAIL: email})
        results = await d.dispatch(
            [_rule("r1", ChannelKind.EMAIL), _rule("r2", ChannelKind.EMAIL)],
            _payload(),
        )
        assert [r.rule_id for r in results] == ["r1", "r2"]
        assert len(email.sent) == 2

    async def test_failing_rule_isolated(self) -> None:
        d, _, _ = _dispatcher({ChannelKind.EMAIL: FakeSender(ChannelKind.EMAIL)})
        original = d.dispatch_rule

        async def flaky(rule: AlertRule, payload: AlertPayload):  # type: ignore[no-untyped-def]
            if rule.id == "bad":
                raise RuntimeError("rule exploded")
            return await original(rule, payload)

        d.dispatch_rule = flaky  # type: ignore[method-assign]
        results = await d.dispatch(
            [_rule("bad", ChannelKind.EMAIL), _rule("good", ChannelKind.EMAIL)],
            _payload(),
        )
        assert results[0].error == "rule exploded"
        assert results[0].results == []
        assert results[1].error is None
        assert results[1].delivered == 1


# ── Lifecycle ───────────────────────────────────────────────────


class TestClose:
    async def test_closes_all_senders(self) -> None:
        email = FakeSender(ChannelKind.EMAIL)
        webhook = FakeSender(ChannelKind.WEBHOOK)
        d, _, _ = _dispatcher({ChannelKind.EMAIL: email, ChannelKind.WEBHOOK: webhook})
        await d.close()
        assert email.closed and webhook.closed

    async def test_close_error_does_not_stop_others(self) -> None:
        bad = FakeSender(ChannelKind.EMAIL)
        bad.close = AsyncMock(side_effect=RuntimeError("boom"))  # type: ignore[method-assign]
        good = FakeSender(ChannelKind.WEBHOOK)
        d, _, _ = _dispatcher({ChannelKind.EMAIL: bad, ChannelKind.WEBHOOK: good})
        await d.close()
        assert good.closed
