"""Custom exceptions used across TBFlow."""

from __future__ import annotations

from typing import Any


class TBFlowError(Exception):
    """Base error for the application."""


class ConfigError(TBFlowError):
    """Configuration related error."""


class CredentialsError(TBFlowError):
    """Credentials acquisition or unsealing failure."""


class ServiceError(TBFlowError):
    """Failure reported by a remote collaborator, with the HTTP context when known."""

    def __init__(self, message: str, *, status_code: int | None = None, payload: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


class FetchError(ServiceError):
    """Raised when the trial balance report cannot be fetched."""


class ArchiveError(ServiceError):
    """Raised when an artifact cannot be archived."""
