"""Refresh-token lookup for Zoho connections."""

from __future__ import annotations

from typing import Mapping, Optional, Protocol

from tbflow.core.errors import CredentialsError
from tbflow.core.profiles import unseal

from .config import ZohoRegionConfig, normalize_region


class ConnectionStore(Protocol):
    """Source of sealed refresh tokens, one connection per region."""

    def get_sealed_refresh_token(self, region: str) -> Optional[str]:
        """Return the sealed refresh token for ``region`` or ``None`` when not connected."""


class Unsealer(Protocol):
    def unseal(self, sealed: str) -> str:
        """Return the plain refresh token."""


class PassthroughUnsealer:
    """Default unsealer: tokens are stored as-is."""

    def unseal(self, sealed: str) -> str:
        return unseal(sealed)


class ProfileConnectionStore:
    """Connection store backed by resolved region configs (profiles.yaml + environment)."""

    def __init__(self, configs: Mapping[str, ZohoRegionConfig]) -> None:
        self._configs = {normalize_region(k): v for k, v in configs.items()}

    def get_sealed_refresh_token(self, region: str) -> Optional[str]:
        config = self._configs.get(normalize_region(region))
        if config is None:
            return None
        return config.refresh_token


class StaticConnectionStore:
    """In-memory store, mainly for tests and one-off scripts."""

    def __init__(self, tokens: Mapping[str, str]) -> None:
        self._tokens = {normalize_region(k): v for k, v in tokens.items()}

    def get_sealed_refresh_token(self, region: str) -> Optional[str]:
        return self._tokens.get(normalize_region(region))


def refresh_token_loader(
    store: ConnectionStore,
    region: str,
    unsealer: Unsealer | None = None,
):
    """Build the lazy refresh-token callable handed to the OAuth client."""

    unsealer = unsealer or PassthroughUnsealer()

    def _load() -> str:
        sealed = store.get_sealed_refresh_token(region)
        if not sealed:
            raise CredentialsError(f"No Zoho connection found for {region}")
        try:
            plain = unsealer.unseal(sealed)
        except Exception as exc:  # noqa: BLE001 - unsealers raise backend-specific errors
            raise CredentialsError(f"Could not unseal Zoho refresh token for {region}") from exc
        if not plain:
            raise CredentialsError(f"Empty Zoho refresh token for {region}")
        return plain

    return _load


__all__ = [
    "ConnectionStore",
    "Unsealer",
    "PassthroughUnsealer",
    "ProfileConnectionStore",
    "StaticConnectionStore",
    "refresh_token_loader",
]
