"""Repository interfaces and in-memory backends."""

from src.storage.base import (
    AlertRuleRepository,
    CheckRepository,
    IncidentRepository,
    MonitorRepository,
    NotificationRepository,
    Repositories,
)
from src.storage.exceptions import (
    DuplicateOpenIncidentError,
    IncidentNotFoundError,
    RepositoryError,
    TargetNotFoundError,
)
from src.storage.memory import in_memory_repositories

__all__ = [
    "AlertRuleRepository",
    "CheckRepository",
    "DuplicateOpenIncidentError",
    "IncidentNotFoundError",
    "IncidentRepository",
    "MonitorRepository",
    "NotificationRepository",
    "Repositories",
    "RepositoryError",
    "TargetNotFoundError",
    "in_memory_repositories",
]
