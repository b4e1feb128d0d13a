"""Exception hierarchy for alert routing and delivery."""

from __future__ import annotations


class AlertError(Exception):
    """Base exception for all alerting errors."""


class ChannelConfigError(AlertError):
    """A channel on an alert rule is missing required configuration."""
