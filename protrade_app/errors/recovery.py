"""
Recovery strategy classifications for error handling.

Collaborator errors (market data, AI providers, notification sinks) are
recoverable: the caller substitutes neutral or synthetic data and carries on.
"""

from typing import Optional


class RecoverableError(Exception):
    """Errors that can be recovered from automatically."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message)
        self.recoverable = True


class CollaboratorError(RecoverableError):
    """An external collaborator call raised or returned unusable data."""

    def __init__(self, message: str, collaborator: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.collaborator = collaborator


class CollaboratorTimeoutError(CollaboratorError):
    """An external collaborator call exceeded its deadline."""

    def __init__(self, message: str, timeout_seconds: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.timeout_seconds = timeout_seconds
