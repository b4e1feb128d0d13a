"""Health probes and the check sweep."""

from src.checks.executor import ProbeExecutor, classify_response
from src.checks.scheduler import CheckScheduler

__all__ = ["CheckScheduler", "ProbeExecutor", "classify_response"]
