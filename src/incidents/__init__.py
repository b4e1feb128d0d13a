"""Incident lifecycle."""

from src.incidents.state_machine import IncidentStateMachine

__all__ = ["IncidentStateMachine"]
