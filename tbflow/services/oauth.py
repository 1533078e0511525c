"""OAuth2 refresh-token client shared by the Zoho and Google Drive integrations."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Type

import requests
from requests import Response
from requests.exceptions import RequestException, Timeout

from tbflow.core.errors import ServiceError
from tbflow.core.logger import get_logger

LOGGER = get_logger()

REFRESH_MARGIN_SEC = 60.0
DEFAULT_EXPIRES_IN = 3600.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_MS = 200
DEFAULT_MAX_BACKOFF_MS = 2000


@dataclass(slots=True)
class RetryConfig:
    """Retry parameters for HTTP requests."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_ms: int = DEFAULT_BACKOFF_MS
    max_backoff_ms: int = DEFAULT_MAX_BACKOFF_MS

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "RetryConfig":
        if not data:
            return cls()
        return cls(
            max_attempts=int(data.get("max_attempts", DEFAULT_MAX_ATTEMPTS)),
            backoff_ms=int(data.get("backoff_ms", DEFAULT_BACKOFF_MS)),
            max_backoff_ms=int(data.get("max_backoff_ms", DEFAULT_MAX_BACKOFF_MS)),
        )

    def delay_for(self, attempt: int) -> float:
        base = max(0.05, self.backoff_ms / 1000.0)
        maximum = max(base, self.max_backoff_ms / 1000.0)
        return min(maximum, base * (2 ** (attempt - 1)))


@dataclass(slots=True)
class TokenState:
    """Cached access token details."""

    value: str
    expires_at: float


class RefreshTokenAuth:
    """Exchange a refresh token for access tokens and cache them with thread safety.

    ``refresh_token`` is a callable so the (sealed) token is only read and
    unsealed when a new access token is actually needed.
    """

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        refresh_token: Callable[[], str],
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        retries: RetryConfig | None = None,
        error_cls: Type[ServiceError] = ServiceError,
        label: str = "oauth",
    ) -> None:
        self._token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._session = session or requests.Session()
        self._timeout = timeout
        self._retries = retries or RetryConfig()
        self._error_cls = error_cls
        self._label = label
        self._lock = threading.RLock()
        self._token_state: TokenState | None = None

    @property
    def session(self) -> requests.Session:
        """Expose the session used for token retrieval."""

        return self._session

    def get_token(self, *, force_refresh: bool = False) -> str:
        """Return a cached access token, refreshing when necessary."""

        with self._lock:
            if (
                not force_refresh
                and self._token_state
                and self._token_state.expires_at - time.monotonic() > REFRESH_MARGIN_SEC
            ):
                return self._token_state.value
            return self._refresh_locked()

    def invalidate(self) -> None:
        """Invalidate the cached token forcing a refresh on next access."""

        with self._lock:
            self._token_state = None

    # Internal helpers -------------------------------------------------

    def _refresh_locked(self) -> str:
        form = {
            "grant_type": "refresh_token",
            "refresh_token": self._refresh_token(),
            "client_id": self._client_id,
            "client_secret": self._client_secret,
        }
        attempts = max(1, self._retries.max_attempts)
        last_error: ServiceError | None = None
        for attempt in range(1, attempts + 1):
            try:
                response = self._session.post(self._token_url, data=form, timeout=self._timeout)
            except Timeout as exc:  # pragma: no cover - network failure path
                LOGGER.warning("%s token_request_timeout attempt=%d", self._label, attempt, exc_info=exc)
                last_error = self._error_cls("Timeout while requesting access token")
            except RequestException as exc:  # pragma: no cover - network failure path
                LOGGER.warning(
                    "%s token_request_error attempt=%d error=%s",
                    self._label,
                    attempt,
                    type(exc).__name__,
                    exc_info=exc,
                )
                last_error = self._error_cls("Failed to request access token")
            else:
                if 400 <= response.status_code < 500 and response.status_code != 429:
                    # Rejected grant: retrying with the same refresh token cannot succeed.
                    raise self._error_cls(
                        f"Token endpoint returned HTTP {response.status_code}",
                        status_code=response.status_code,
                        payload=_safe_json(response),
                    )
                try:
                    token_state = self._parse_response(response)
                except ServiceError as exc:
                    last_error = exc
                else:
                    self._token_state = token_state
                    LOGGER.info(
                        "%s token_refreshed expires_in=%.0fs attempt=%d",
                        self._label,
                        token_state.expires_at - time.monotonic(),
                        attempt,
                    )
                    return token_state.value

            if attempt < attempts:
                time.sleep(self._retries.delay_for(attempt))

        if last_error is None:  # pragma: no cover
            raise self._error_cls("Unable to obtain access token")
        raise last_error

    def _parse_response(self, response: Response) -> TokenState:
        if response.status_code != 200:
            raise self._error_cls(
                f"Token endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        payload = _safe_json(response)
        if payload.get("error"):
            # Zoho reports a bad grant as HTTP 200 with an ``error`` field.
            raise self._error_cls(f"Token error: {payload.get('error')}", payload=payload)
        token_value = payload.get("access_token")
        if not token_value:
            raise self._error_cls("Token response missing access_token", payload=payload)
        expires_in = float(payload.get("expires_in", DEFAULT_EXPIRES_IN))
        expires_at = time.monotonic() + max(REFRESH_MARGIN_SEC, expires_in)
        return TokenState(value=str(token_value), expires_at=expires_at)


def _safe_json(response: Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        text = response.text
        if len(text) > 200:
            text = text[:200] + "..."
        return {"body": text}
    return payload if isinstance(payload, dict) else {"body": payload}


__all__ = ["RefreshTokenAuth", "RetryConfig", "TokenState"]
