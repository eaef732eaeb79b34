"""Activation set ownership and reconciliation."""

from .session import (
    ActivationDiff,
    ActivationEntry,
    ActivationSessionManager,
    ActivationSet,
    CycleToken,
    SessionPhase,
)

__all__ = [
    "ActivationDiff",
    "ActivationEntry",
    "ActivationSessionManager",
    "ActivationSet",
    "CycleToken",
    "SessionPhase",
]
