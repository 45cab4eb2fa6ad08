"""Domain errors — pipeline exception hierarchy."""

from __future__ import annotations


class PipelineError(Exception):
    """Base error for all pipeline operations.

    Use ``raise PipelineError("msg") from cause`` for exception chaining.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(PipelineError):
    """Invalid configuration, unreadable config file, or bad settings."""


class ValidationError(PipelineError):
    """Invalid run state transition or malformed input."""


class CorrelatedError(PipelineError):
    """Error tied to a (run id, phase) stage request.

    Either part may be None for ad-hoc calls made outside a run.
    """

    def __init__(self, message: str, run_id: str | None = None, phase: str | None = None) -> None:
        super().__init__(message)
        self.run_id = run_id
        self.phase = phase

    @property
    def context(self) -> str:
        """Human-readable ``<run>-<phase>`` suffix, empty when uncorrelated."""
        if not self.run_id:
            return ""
        return f"{self.run_id}-{self.phase}" if self.phase else self.run_id


class EngineUnavailableError(CorrelatedError):
    """Media engine could not be loaded with any resource profile."""


class DuplicateKeyError(CorrelatedError):
    """Two stage requests outstanding under the same correlation key."""


class StageError(CorrelatedError):
    """Engine reported an error for a dispatched operation."""


class OrphanEventError(CorrelatedError):
    """Engine completion for a key with no registered waiter.

    Built for logging only; the registry never raises it.
    """


class CaptureError(CorrelatedError):
    """Capture collaborator could not produce a segment."""


class PersistenceError(PipelineError):
    """Result journal append failed. Never invalidates the in-memory result."""


class EngineProtocolError(PipelineError):
    """Malformed or unknown engine wire message."""
