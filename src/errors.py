"""Exceptions raised across the harvest run."""
from __future__ import annotations


class HarvestError(Exception):
    """Base class for every error the harvester raises on purpose."""


class HarvestAbort(HarvestError):
    """A systemic failure. The run stops and nothing from it is persisted."""


class ChallengeFailure(HarvestAbort):
    """The anti-automation challenge could not be solved or timed out."""


class ClassifierFailure(HarvestAbort):
    """The text classifier call itself failed (not an ambiguous answer)."""

    def __init__(self, message: str, record_id: str = "") -> None:
        super().__init__(message)
        self.record_id = record_id


class SolverError(HarvestError):
    """The challenge-solving service rejected the task or never returned a token."""

    def __init__(self, message: str, code: str = "") -> None:
        super().__init__(message)
        self.code = code
