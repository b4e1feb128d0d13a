"""Exception hierarchy for repository access."""

from __future__ import annotations


class RepositoryError(Exception):
    """Base exception for all persistence errors."""


class TargetNotFoundError(RepositoryError):
    """No target exists with the requested id."""


class IncidentNotFoundError(RepositoryError):
    """No incident exists with the requested id."""


class DuplicateOpenIncidentError(RepositoryError):
    """The target already has an open incident."""
