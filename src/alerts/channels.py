"""Channel senders — email, SMS, webhook, and Slack delivery."""

from __future__ import annotations

import abc
import time
from typing import Any

import aiohttp
import structlog

from src.alerts.exceptions import ChannelConfigError
from src.alerts.formatters import format_email, format_slack, format_sms, format_webhook
from src.core.config import EmailProviderConfig, SmsProviderConfig
from src.core.types import AlertPayload, ChannelKind, SendResult

logger = structlog.get_logger(__name__)


def _message_id(kind: ChannelKind) -> str:
    return f"{kind.value}_{int(time.time() * 1000)}"


def _require(config: dict[str, Any], key: str, kind: ChannelKind) -> str:
    value = config.get(key)
    if not value or not isinstance(value, str):
        raise ChannelConfigError(f"{kind.value} channel requires '{key}'")
    return value


class ChannelSender(abc.ABC):
    """Base class for alert delivery channels.

    ``send`` reports delivery problems through the returned ``SendResult``;
    it raises only for misconfiguration (``ChannelConfigError``), which the
    dispatcher captures like any other per-channel failure.
    """

    kind: ChannelKind

    @abc.abstractmethod
    async def send(self, payload: AlertPayload, config: dict[str, Any]) -> SendResult:
        """Deliver *payload* using the rule's channel-specific *config*."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class _HttpSender(ChannelSender):
    """Shared aiohttp session handling for senders that POST JSON."""

    def __init__(self, timeout_secs: float = 10.0, user_agent: str = "Pulsewatch/1.0") -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout_secs)
        self._user_agent = user_agent
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _post_json(
        self,
        url: str,
        body: dict[str, object],
        headers: dict[str, str] | None = None,
    ) -> SendResult:
        request_headers = {"Content-Type": "application/json", "User-Agent": self._user_agent}
        request_headers.update(headers or {})
        try:
            session = self._get_session()
            async with session.post(url, json=body, headers=request_headers) as resp:
                ok = 200 <= resp.status < 300
                if not ok:
                    text = await resp.text()
                    logger.warning(
                        "channel_send_failed",
                        channel=self.kind.value,
                        status=resp.status,
                        body=text[:200],
                    )
                return SendResult(
                    success=ok,
                    message_id=_message_id(self.kind),
                    status_code=resp.status,
                    error=None if ok else f"HTTP {resp.status}",
                )
        except Exception as exc:
            logger.exception("channel_send_error", channel=self.kind.value)
            return SendResult(
                success=False,
                message_id=_message_id(self.kind),
                error=str(exc) or type(exc).__name__,
            )

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class WebhookSender(_HttpSender):
    """POSTs a JSON alert to ``config["webhook_url"]``."""

    kind = ChannelKind.WEBHOOK

    async def send(self, payload: AlertPayload, config: dict[str, Any]) -> SendResult:
        url = _require(config, "webhook_url", self.kind)
        return await self._post_json(url, format_webhook(payload))


class SlackSender(_HttpSender):
    """Posts a colour-coded attachment to a Slack incoming webhook."""

    kind = ChannelKind.SLACK

    async def send(self, payload: AlertPayload, config: dict[str, Any]) -> SendResult:
        url = _require(config, "slack_webhook_url", self.kind)
        return await self._post_json(url, format_slack(payload))


class EmailSender(_HttpSender):
    """Sends through an HTTP email relay; log-only when no relay is configured."""

    kind = ChannelKind.EMAIL

    def __init__(
        self,
        provider: EmailProviderConfig | None = None,
        timeout_secs: float = 10.0,
        user_agent: str = "Pulsewatch/1.0",
    ) -> None:
        super().__init__(timeout_secs=timeout_secs, user_agent=user_agent)
        self._provider = provider or EmailProviderConfig()

    async def send(self, payload: AlertPayload, config: dict[str, Any]) -> SendResult:
        to = _require(config, "email", self.kind)
        body = format_email(payload, to=to, sender=self._provider.sender)
        if not self._provider.api_url:
            logger.info("email_logged", to=to, subject=payload.title)
            return SendResult(success=True, message_id=_message_id(self.kind))
        headers: dict[str, str] = {}
        api_key = self._provider.api_key.get_secret_value()
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return await self._post_json(self._provider.api_url, body, headers)


class SmsSender(_HttpSender):
    """Sends through an HTTP SMS gateway; log-only when no gateway is configured."""

    kind = ChannelKind.SMS

    def __init__(
        self,
        provider: SmsProviderConfig | None = None,
        timeout_secs: float = 10.0,
        user_agent: str = "Pulsewatch/1.0",
    ) -> None:
        super().__init__(timeout_secs=timeout_secs, user_agent=user_agent)
        self._provider = provider or SmsProviderConfig()

    async def send(self, payload: AlertPayload, config: dict[str, Any]) -> SendResult:
        to = _require(config, "phone_number", self.kind)
        body = format_sms(payload, to=to, sender=self._provider.sender)
        if not self._provider.api_url:
            logger.info("sms_logged", to=to, body=body["body"])
            return SendResult(success=True, message_id=_message_id(self.kind))
        headers: dict[str, str] = {}
        api_key = self._provider.api_key.get_secret_value()
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return await self._post_json(self._provider.api_url, body, headers)
