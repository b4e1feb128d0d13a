"""Pure functions that render an AlertPayload into channel-specific bodies."""

from __future__ import annotations

import datetime

from src.core.types import AlertPayload

# Slack attachment colours keyed by what the title reports.
_SLACK_DANGER = "danger"
_SLACK_WARNING = "warning"
_SLACK_GOOD = "good"


def _iso(ts: float) -> str:
    return datetime.datetime.fromtimestamp(ts, datetime.UTC).isoformat()


def format_webhook(payload: AlertPayload) -> dict[str, object]:
    """JSON body POSTed to a generic webhook."""
    return {
        "title": payload.title,
        "message": payload.message,
        "target_id": payload.target_id,
        "incident_id": payload.incident_id,
        "timestamp": _iso(payload.created_at),
    }


def slack_color(title: str) -> str:
    lowered = title.lower()
    if "down" in lowered:
        return _SLACK_DANGER
    if "degraded" in lowered:
        return _SLACK_WARNING
    return _SLACK_GOOD


def format_slack(payload: AlertPayload) -> dict[str, object]:
    """Slack incoming-webhook body with a single colour-coded attachment."""
    return {
        "attachments": [
            {
                "color": slack_color(f"{payload.title} {payload.message}"),
                "title": payload.title,
                "text": payload.message,
                "fields": [
                    {"title": "Target ID", "value": payload.target_id or "N/A", "short": True},
                    {"title": "Time", "value": _iso(payload.created_at), "short": True},
                ],
            }
        ]
    }


def format_email(payload: AlertPayload, to: str, sender: str) -> dict[str, object]:
    lines = [payload.message, "", f"Target: {payload.target_id}"]
    if payload.incident_id:
        lines.append(f"Incident: {payload.incident_id}")
    lines.append(f"Time: {_iso(payload.created_at)}")
    return {
        "from": sender,
        "to": to,
        "subject": payload.title,
        "text": "\n".join(lines),
    }


def format_sms(payload: AlertPayload, to: str, sender: str = "") -> dict[str, object]:
    body: dict[str, object] = {"to": to, "body": f"{payload.title}: {payload.message}"}
    if sender:
        body["from"] = sender
    return body
