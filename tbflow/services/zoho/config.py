"""Configuration loader for the Zoho Books client."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from tbflow.core.errors import ConfigError
from tbflow.core.profiles import expand_env, load_config_section, read_env
from tbflow.services.oauth import RetryConfig

DEFAULT_TIMEOUT = 60.0

# Region -> (API base, Accounts base). UK organizations live in the EU data centre.
DATA_CENTRES: dict[str, tuple[str, str]] = {
    "IN": ("https://www.zohoapis.in", "https://accounts.zoho.in"),
    "US": ("https://www.zohoapis.com", "https://accounts.zoho.com"),
    "EU": ("https://www.zohoapis.eu", "https://accounts.zoho.eu"),
    "UK": ("https://www.zohoapis.eu", "https://accounts.zoho.eu"),
}
REGIONS: tuple[str, ...] = tuple(DATA_CENTRES)

CLIENT_ID_ENV = "ZOHO_{region}_CLIENT_ID"
CLIENT_SECRET_ENV = "ZOHO_{region}_CLIENT_SECRET"
REFRESH_TOKEN_ENV = "ZOHO_{region}_REFRESH_TOKEN"


def normalize_region(region: str) -> str:
    value = (region or "").strip().upper()
    if value not in DATA_CENTRES:
        raise ConfigError(f"Bad region: {value or region!r} (expected one of {', '.join(REGIONS)})")
    return value


@dataclass(slots=True)
class ZohoRegionConfig:
    """Resolved configuration for one Zoho data-centre region."""

    region: str
    client_id: str
    client_secret: str
    api_base: str
    accounts_base: str
    refresh_token: str | None = None
    timeout_sec: float = DEFAULT_TIMEOUT
    retries: RetryConfig = field(default_factory=RetryConfig)

    @property
    def token_url(self) -> str:
        return f"{self.accounts_base.rstrip('/')}/oauth/v2/token"

    @classmethod
    def from_mapping(
        cls,
        region: str,
        data: Mapping[str, Any],
        *,
        defaults: Mapping[str, Any] | None = None,
    ) -> "ZohoRegionConfig":
        """Create a configuration instance from a region mapping.

        Client credentials fall back to ``ZOHO_<REGION>_CLIENT_ID`` and
        ``ZOHO_<REGION>_CLIENT_SECRET``; environment values win over the file.
        """

        region = normalize_region(region)
        defaults = defaults or {}
        api_default, accounts_default = DATA_CENTRES[region]

        def _value(key: str, env: str | None = None) -> Any:
            if env:
                from_env = read_env(env.format(region=region))
                if from_env:
                    return from_env
            raw = data.get(key, defaults.get(key))
            return expand_env(raw) if raw is not None else None

        def _require(key: str, env: str) -> str:
            value = _value(key, env)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ConfigError(
                    f"Missing Zoho {region} {key}: set {env.format(region=region)} or zoho.regions.{region}.{key}"
                )
            return str(value).strip()

        retries_raw = data.get("retries", defaults.get("retries"))
        return cls(
            region=region,
            client_id=_require("client_id", CLIENT_ID_ENV),
            client_secret=_require("client_secret", CLIENT_SECRET_ENV),
            api_base=str(_value("api_base") or api_default),
            accounts_base=str(_value("accounts_base") or accounts_default),
            refresh_token=_value("refresh_token", REFRESH_TOKEN_ENV),
            timeout_sec=float(data.get("timeout_sec", defaults.get("timeout_sec", DEFAULT_TIMEOUT))),
            retries=RetryConfig.from_mapping(retries_raw if isinstance(retries_raw, Mapping) else None),
        )


def resolve_config(region: str, *, config_path: str | Path | None = None) -> ZohoRegionConfig:
    """Resolve the configuration for ``region`` from profiles.yaml plus environment overrides.

    Raises:
        ConfigError: If the region is unknown or its client credentials are missing.
    """

    region = normalize_region(region)
    section = load_config_section("zoho", config_path)
    regions = section.get("regions") or {}
    if not isinstance(regions, Mapping):
        raise ConfigError("profiles.yaml 'zoho.regions' must be a mapping")
    raw = regions.get(region) or {}
    if not isinstance(raw, Mapping):
        raise ConfigError(f"profiles.yaml 'zoho.regions.{region}' must be a mapping")
    return ZohoRegionConfig.from_mapping(region, raw, defaults=section)


__all__ = [
    "DATA_CENTRES",
    "REGIONS",
    "CLIENT_ID_ENV",
    "CLIENT_SECRET_ENV",
    "REFRESH_TOKEN_ENV",
    "ZohoRegionConfig",
    "normalize_region",
    "resolve_config",
]
