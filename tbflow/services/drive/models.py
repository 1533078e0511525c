"""Domain models and exceptions for the archive stores."""

from __future__ import annotations

from dataclasses import dataclass

from tbflow.core.errors import ArchiveError


class DriveError(ArchiveError):
    """Base error raised for Google Drive failures."""


class DriveAuthError(DriveError):
    """Raised when authentication with Google Drive fails."""


class DriveRequestError(DriveError):
    """Raised for non-retryable HTTP or protocol errors from Google Drive."""


@dataclass(slots=True)
class ArchivedFile:
    """Stored artifact as reported by the archive."""

    id: str
    name: str
    mime_type: str | None = None
    web_view_link: str | None = None

    def as_dict(self) -> dict[str, str | None]:
        return {
            "id": self.id,
            "name": self.name,
            "mimeType": self.mime_type,
            "webViewLink": self.web_view_link,
        }


__all__ = ["DriveError", "DriveAuthError", "DriveRequestError", "ArchivedFile"]
