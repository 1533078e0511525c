"""Archive stores for raw reports and normalized workbooks."""

from __future__ import annotations

import json
import logging
import random
import time
import uuid
from pathlib import Path
from typing import Any, Mapping, Protocol

import requests
from requests.exceptions import RequestException, Timeout

from tbflow.core.logger import get_logger
from tbflow.core.profiles import ensure_work_dirs
from tbflow.services.oauth import RefreshTokenAuth

from .config import GoogleDriveConfig, resolve_config
from .models import ArchivedFile, DriveAuthError, DriveRequestError

LOGGER = get_logger()

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
UPLOAD_FIELDS = "id,name,mimeType,webViewLink"


class ArchiveStore(Protocol):
    """Storage contract used by the export pipeline."""

    def upload(
        self,
        name: str,
        mime_type: str,
        content: bytes,
        parent_id: str | None = None,
    ) -> ArchivedFile:
        """Store ``content`` under ``name`` and return the stored item."""


def build_multipart_body(metadata: Mapping[str, Any], mime_type: str, content: bytes) -> tuple[bytes, str]:
    """Encode a Drive ``multipart/related`` upload body; returns (body, boundary)."""

    boundary = f"tbflow-{uuid.uuid4().hex}"
    head = (
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{json.dumps(dict(metadata))}\r\n"
        f"--{boundary}\r\n"
        f"Content-Type: {mime_type}\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    return head + content + tail, boundary


class GoogleDriveArchive:
    """Upload files into a Google Drive folder (shared drives supported)."""

    def __init__(
        self,
        config: GoogleDriveConfig,
        *,
        session: requests.Session | None = None,
        auth: RefreshTokenAuth | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._session = session or requests.Session()
        self._logger = logger or LOGGER
        self._auth = auth or RefreshTokenAuth(
            config.token_url,
            config.client_id,
            config.client_secret,
            lambda: config.refresh_token,
            session=self._session,
            timeout=config.timeout_sec,
            retries=config.retries,
            error_cls=DriveAuthError,
            label="drive.auth",
        )

    @classmethod
    def from_profile(cls, **kwargs: Any) -> "GoogleDriveArchive":
        return cls(resolve_config(), **kwargs)

    def close(self) -> None:
        self._session.close()

    def upload(
        self,
        name: str,
        mime_type: str,
        content: bytes,
        parent_id: str | None = None,
    ) -> ArchivedFile:
        parent = parent_id or self._config.parent_id
        metadata = {"name": name, "parents": [parent]}
        body, boundary = build_multipart_body(metadata, mime_type, content)
        params = {
            "uploadType": "multipart",
            "supportsAllDrives": "true",
            "fields": UPLOAD_FIELDS,
        }
        attempts = max(1, self._config.retries.max_attempts)
        refreshed = False
        attempt = 0
        while True:
            attempt += 1
            headers = {
                "Authorization": f"Bearer {self._auth.get_token()}",
                "Content-Type": f"multipart/related; boundary={boundary}",
            }
            try:
                response = self._session.request(
                    "POST",
                    self._config.upload_url,
                    params=params,
                    headers=headers,
                    data=body,
                    timeout=self._config.timeout_sec,
                )
            except (Timeout, RequestException) as exc:
                self._logger.warning(
                    "drive.http request_error name=%s attempt=%d error=%s",
                    name,
                    attempt,
                    type(exc).__name__,
                    exc_info=exc,
                )
                if attempt >= attempts:
                    raise DriveRequestError("Drive upload failed", payload={"name": name}) from exc
                self._sleep(attempt)
                continue

            status = response.status_code
            if 200 <= status < 300:
                return self._parse_file(response, name, mime_type)
            payload = _safe_json(response)
            if status == 401 and not refreshed:
                self._auth.invalidate()
                refreshed = True
                self._logger.info("drive.http unauthorized name=%s -- refreshing token", name)
                continue
            if status == 401:
                raise DriveAuthError("Unauthorized", status_code=status, payload=payload)
            if status in RETRYABLE_STATUS and attempt < attempts:
                self._logger.warning(
                    "drive.http retryable_status name=%s status=%d attempt=%d", name, status, attempt
                )
                self._sleep(attempt)
                continue
            raise DriveRequestError(f"Unexpected status {status}", status_code=status, payload=payload)

    # Internal helpers -------------------------------------------------

    def _parse_file(self, response: requests.Response, name: str, mime_type: str) -> ArchivedFile:
        data = _safe_json(response)
        file_id = data.get("id")
        if not file_id:
            raise DriveRequestError("Drive upload response missing id", payload=dict(data))
        archived = ArchivedFile(
            id=str(file_id),
            name=str(data.get("name") or name),
            mime_type=data.get("mimeType") or mime_type,
            web_view_link=data.get("webViewLink"),
        )
        self._logger.info("drive.upload done name=%s id=%s", archived.name, archived.id)
        return archived

    def _sleep(self, attempt: int) -> None:
        delay = self._config.retries.delay_for(attempt)
        time.sleep(delay + random.uniform(0, delay / 2))


class LocalArchive:
    """Archive into a local directory; links are ``file://`` URIs."""

    def __init__(self, directory: str | Path | None = None, *, logger: logging.Logger | None = None) -> None:
        self._directory = Path(directory) if directory else ensure_work_dirs()["out"]
        self._logger = logger or LOGGER

    @property
    def directory(self) -> Path:
        return self._directory

    def upload(
        self,
        name: str,
        mime_type: str,
        content: bytes,
        parent_id: str | None = None,
    ) -> ArchivedFile:
        target_dir = self._directory / parent_id if parent_id else self._directory
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / name
        target.write_bytes(content)
        self._logger.info("local.archive written path=%s bytes=%d", target, len(content))
        resolved = target.resolve()
        return ArchivedFile(
            id=str(resolved),
            name=name,
            mime_type=mime_type,
            web_view_link=resolved.as_uri(),
        )

    def close(self) -> None:  # pragma: no cover - nothing to release
        pass


def _safe_json(response: requests.Response) -> Mapping[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {"body": (response.text or "")[:200]}
    return payload if isinstance(payload, dict) else {"body": payload}


__all__ = ["ArchiveStore", "GoogleDriveArchive", "LocalArchive", "build_multipart_body"]
