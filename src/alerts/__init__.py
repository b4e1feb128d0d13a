"""Alert rule matching and multi-channel notification delivery."""

from src.alerts.channels import (
    ChannelSender,
    EmailSender,
    SlackSender,
    SmsSender,
    WebhookSender,
)
from src.alerts.dispatcher import NotificationDispatcher
from src.alerts.exceptions import AlertError, ChannelConfigError
from src.alerts.formatters import format_email, format_slack, format_sms, format_webhook
from src.alerts.matcher import AlertRuleMatcher

__all__ = [
    "AlertError",
    "AlertRuleMatcher",
    "ChannelConfigError",
    "ChannelSender",
    "EmailSender",
    "NotificationDispatcher",
    "SlackSender",
    "SmsSender",
    "WebhookSender",
    "format_email",
    "format_slack",
    "format_sms",
    "format_webhook",
]
