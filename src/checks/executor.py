"""ProbeExecutor — one HTTP health check against one target, classified."""

from __future__ import annotations

import asyncio
import json
import socket
import time
from types import TracebackType

import httpx
import structlog

from src.core.config import ProbeConfig, get_settings
from src.core.types import CheckStatus, ProbeResult, Target, TargetKind

logger = structlog.stdlib.get_logger()

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

# Lowercased fragments of resolver errors across platforms.
_DNS_ERROR_HINTS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated",
    "name resolution",
)

PAUSED_MESSAGE = "Monitor is paused"
SLOW_MESSAGE = "Slow response time detected"


def _format_secs(secs: float) -> str:
    return f"{secs:g}s"


def _exception_chain(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def _describe_connect_error(exc: Exception) -> str:
    """Map a transport failure to a short, stable message."""
    chain = _exception_chain(exc)
    if any(isinstance(e, socket.gaierror) for e in chain):
        return "DNS resolution failed"
    if any(isinstance(e, ConnectionRefusedError) for e in chain):
        return "Connection refused"

    text = " ".join(str(e) for e in chain).lower()
    if any(hint in text for hint in _DNS_ERROR_HINTS):
        return "DNS resolution failed"
    if "connection refused" in text:
        return "Connection refused"
    detail = str(exc) or type(exc).__name__
    return f"Connection error: {detail[:200]}"


def classify_response(
    target: Target,
    status_code: int,
    response_time_ms: int,
    slow_threshold_ms: int = 5000,
) -> tuple[CheckStatus, str | None]:
    """Classify a completed HTTP exchange.

    A status mismatch is ``down`` for 5xx and ``degraded`` otherwise; a
    matching status slower than *slow_threshold_ms* is ``degraded``.
    """
    if status_code != target.expected_status_code:
        status = CheckStatus.DOWN if status_code >= 500 else CheckStatus.DEGRADED
        return status, f"Expected status {target.expected_status_code}, got {status_code}"
    if response_time_ms > slow_threshold_ms:
        return CheckStatus.DEGRADED, SLOW_MESSAGE
    return CheckStatus.UP, None


def webhook_probe(target: Target) -> Target:
    """Rewrite a webhook target into a POST carrying a JSON test payload."""
    headers = {k: v for k, v in target.headers.items() if k.lower() != "content-type"}
    headers["Content-Type"] = "application/json"
    body = json.dumps({"test": True, "timestamp": int(time.time() * 1000)})
    return target.model_copy(update={"method": "POST", "body": body, "headers": headers})


class ProbeExecutor:
    """Runs health checks. ``check`` never raises: every failure is a result.

    Database targets use the generic HTTP probe against their health URL;
    webhook targets are probed with a POSTed test payload.

    Usage::

        async with ProbeExecutor() as executor:
            result = await executor.check(target)
    """

    def __init__(
        self,
        config: ProbeConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or get_settings().probe
        self._http: httpx.AsyncClient | None = client
        self._owns_client = client is None

    @property
    def connected(self) -> bool:
        return self._http is not None and not self._http.is_closed

    async def connect(self) -> None:
        """Create the shared httpx async client."""
        if self.connected:
            return
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.default_timeout_secs),
            follow_redirects=False,
        )
        self._owns_client = True

    async def close(self) -> None:
        if self._http is not None and self._owns_client:
            await self._http.aclose()
        self._http = None

    async def check(self, target: Target) -> ProbeResult:
        """Probe *target* once and classify the outcome."""
        if not target.active:
            return ProbeResult(
                target_id=target.id,
                status=CheckStatus.DOWN,
                error_message=PAUSED_MESSAGE,
            )

        if target.kind == TargetKind.WEBHOOK:
            target = webhook_probe(target)

        if not self.connected:
            await self.connect()
        assert self._http is not None

        method = target.method.upper()
        headers = self._build_headers(target, method)
        content = target.body if target.body and method in _BODY_METHODS else None
        timeout = target.timeout_secs

        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self._http.request(
                    method,
                    target.url,
                    headers=headers,
                    content=content,
                    timeout=httpx.Timeout(timeout),
                ),
                timeout=timeout,
            )
        except (TimeoutError, httpx.TimeoutException):
            return self._failure(target, start, f"Request timeout after {_format_secs(timeout)}")
        except (httpx.ConnectError, OSError) as exc:
            return self._failure(target, start, _describe_connect_error(exc))
        except httpx.HTTPError as exc:
            return self._failure(target, start, str(exc) or type(exc).__name__)
        except Exception as exc:
            logger.exception("probe_unexpected_error", target_id=target.id, url=target.url)
            return self._failure(target, start, str(exc) or type(exc).__name__)

        elapsed_ms = _elapsed_ms(start)
        status, message = classify_response(
            target,
            response.status_code,
            elapsed_ms,
            self._config.slow_threshold_ms,
        )
        logger.debug(
            "probe_completed",
            target_id=target.id,
            status=status,
            status_code=response.status_code,
            response_time_ms=elapsed_ms,
        )
        return ProbeResult(
            target_id=target.id,
            status=status,
            response_time_ms=elapsed_ms,
            status_code=response.status_code,
            error_message=message,
        )

    # ── Internal ────────────────────────────────────────────────

    def _build_headers(self, target: Target, method: str) -> dict[str, str]:
        headers = {"User-Agent": self._config.user_agent}
        headers.update(target.headers)
        if target.body and method in _BODY_METHODS:
            if not any(k.lower() == "content-type" for k in headers):
                headers["Content-Type"] = "application/json"
        return headers

    def _failure(self, target: Target, start: float, message: str) -> ProbeResult:
        logger.info("probe_failed", target_id=target.id, url=target.url, error=message)
        return ProbeResult(
            target_id=target.id,
            status=CheckStatus.DOWN,
            response_time_ms=_elapsed_ms(start),
            error_message=message,
        )

    async def __aenter__(self) -> ProbeExecutor:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))
