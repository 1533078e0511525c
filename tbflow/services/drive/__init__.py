"""Archive stores: Google Drive and local directory."""

from .client import ArchiveStore, GoogleDriveArchive, LocalArchive
from .config import GoogleDriveConfig, resolve_config
from .models import ArchivedFile, DriveAuthError, DriveError, DriveRequestError

__all__ = [
    "ArchiveStore",
    "GoogleDriveArchive",
    "LocalArchive",
    "GoogleDriveConfig",
    "resolve_config",
    "ArchivedFile",
    "DriveError",
    "DriveAuthError",
    "DriveRequestError",
]
