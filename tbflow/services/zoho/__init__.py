"""Zoho Books service integration."""

from .client import ZohoBooksClient
from .config import REGIONS, ZohoRegionConfig, resolve_config
from .models import FetchOutcome, ProbeResult, ZohoAuthError, ZohoError, ZohoRequestError

__all__ = [
    "ZohoBooksClient",
    "ZohoRegionConfig",
    "REGIONS",
    "resolve_config",
    "FetchOutcome",
    "ProbeResult",
    "ZohoError",
    "ZohoAuthError",
    "ZohoRequestError",
]
