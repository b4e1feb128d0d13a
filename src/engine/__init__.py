"""Monitoring service facade and wiring."""

from src.engine.factory import create_engine, create_senders
from src.engine.service import MonitoringService

__all__ = ["MonitoringService", "create_engine", "create_senders"]
