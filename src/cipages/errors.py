"""
Pipeline Exceptions

Every failure of a pipeline leg is raised as a subclass of PipelineError.
None of them are recoverable: the leg that raised is marked failed.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class PipelineError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message
        details: Additional error details
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigError(PipelineError):
    """Malformed or incomplete pipeline document."""


class CommandError(PipelineError):
    """A build or pre-deploy command exited with a non-zero status."""

    def __init__(self, phase: str, result: Any, results: Optional[List[Any]] = None, **kwargs):
        message = f"{phase} command failed with exit status {result.returncode}: {result.command}"
        super().__init__(message, **kwargs)
        self.phase = phase
        self.result = result
        self.results = list(results) if results is not None else [result]
        self.details.setdefault("phase", phase)
        self.details.setdefault("command", result.command)
        self.details.setdefault("returncode", result.returncode)


class StagingError(PipelineError):
    """Expected build output is missing, so there is nothing to publish."""


class AuthError(PipelineError):
    """The deploy credential is not present in the run environment."""


class PublishError(PipelineError):
    """The hosting provider rejected the upload."""
