"""Zoho Books API client for trial balance retrieval."""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Iterable, Mapping, Sequence

import requests
from requests import Response
from requests.exceptions import RequestException, Timeout

from tbflow.core.logger import get_logger
from tbflow.services.oauth import RefreshTokenAuth
from tbflow_io.schema import RawPayload

from .config import ZohoRegionConfig, resolve_config
from .credentials import ConnectionStore, ProfileConnectionStore, Unsealer, refresh_token_loader
from .models import FetchOutcome, ProbeResult, ReportVariant, ZohoAuthError, ZohoRequestError

LOGGER = get_logger()

AUTHORIZATION_HEADER = "Authorization"
TOKEN_PREFIX = "Zoho-oauthtoken"
USER_AGENT = "TBFlow-Zoho/1.0"
RETRYABLE_STATUS = {429, 500, 502, 503, 504}
REPORT_PATH = "/books/v3/reports/trialbalance"
ORGANIZATIONS_PATH = "/books/v3/organizations"
SNIPPET_CHARS = 1200

# Excel first, JSON last.
FETCH_VARIANTS: tuple[ReportVariant, ...] = (
    ReportVariant("xlsx", (("export_type", "xlsx"),)),
    ReportVariant("xls", (("export_format", "xls"),)),
    ReportVariant("json"),
)

# Parameter spellings seen across Zoho Books report endpoints.
PROBE_VARIANTS: tuple[ReportVariant, ...] = (
    ReportVariant("date_from/date_to + export_type", (("export_type", "xlsx"),)),
    ReportVariant(
        "from_date/to_date + filter_by + export_format",
        (("filter_by", "DateRange.Custom"), ("export_format", "xls")),
    ),
    ReportVariant("from_date/to_date json"),
)


def _date_keys(variant: ReportVariant) -> tuple[str, str]:
    if variant.name.startswith("date_from"):
        return "date_from", "date_to"
    return "from_date", "to_date"


def report_params(
    org_id: str,
    from_date: str,
    to_date: str,
    variant: ReportVariant,
) -> list[tuple[str, str]]:
    """Query parameters for one report request, in the order Zoho documents them."""

    from_key, to_key = _date_keys(variant)
    params = [("organization_id", org_id)]
    params.extend(p for p in variant.params if p[0] == "filter_by")
    params.extend([(from_key, from_date), (to_key, to_date)])
    params.extend(p for p in variant.params if p[0] != "filter_by")
    return params


class ZohoBooksClient:
    """Fetch trial balance reports for one region, refreshing OAuth tokens as needed."""

    def __init__(
        self,
        config: ZohoRegionConfig,
        *,
        store: ConnectionStore | None = None,
        unsealer: Unsealer | None = None,
        session: requests.Session | None = None,
        auth: RefreshTokenAuth | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", USER_AGENT)
        self._logger = logger or LOGGER
        store = store or ProfileConnectionStore({config.region: config})
        self._auth = auth or RefreshTokenAuth(
            config.token_url,
            config.client_id,
            config.client_secret,
            refresh_token_loader(store, config.region, unsealer),
            session=self._session,
            timeout=config.timeout_sec,
            retries=config.retries,
            error_cls=ZohoAuthError,
            label="zoho.auth",
        )

    @classmethod
    def from_region(cls, region: str, **kwargs: Any) -> "ZohoBooksClient":
        return cls(resolve_config(region), **kwargs)

    @property
    def region(self) -> str:
        return self._config.region

    def close(self) -> None:
        self._session.close()

    def fetch_trial_balance(self, org_id: str, from_date: str, to_date: str) -> FetchOutcome:
        """Fetch the report, trying each export variant until one succeeds.

        Raises:
            ZohoAuthError: When no access token can be obtained.
            ZohoRequestError: When every variant is rejected; ``payload`` carries the
                last response body (first 1200 characters) and the variants tried.
        """

        tried: list[str] = []
        last_status: int | None = None
        last_body = ""
        for variant in FETCH_VARIANTS:
            tried.append(variant.name)
            response = self._send(REPORT_PATH, report_params(org_id, from_date, to_date, variant))
            if 200 <= response.status_code < 300:
                payload = RawPayload(
                    content=response.content,
                    content_type=response.headers.get("Content-Type"),
                    content_disposition=response.headers.get("Content-Disposition"),
                )
                self._logger.info(
                    "zoho.report fetched region=%s org=%s variant=%s bytes=%d",
                    self.region,
                    org_id,
                    variant.name,
                    len(payload.content),
                )
                return FetchOutcome(
                    payload=payload,
                    variant=variant.name,
                    status_code=response.status_code,
                    tried=tried,
                )
            last_status = response.status_code
            last_body = response.text or ""
            self._logger.warning(
                "zoho.report variant_rejected region=%s variant=%s status=%d",
                self.region,
                variant.name,
                response.status_code,
            )
        raise ZohoRequestError(
            "Zoho TB request failed",
            status_code=last_status,
            payload={"detail": last_body[:SNIPPET_CHARS], "tried": tried},
        )

    def probe_trial_balance(
        self,
        org_id: str,
        from_date: str,
        to_date: str,
        variants: Sequence[ReportVariant] = PROBE_VARIANTS,
    ) -> list[ProbeResult]:
        """Try parameter variants and report status plus a body snippet, stopping at the first success."""

        results: list[ProbeResult] = []
        for variant in variants:
            response = self._send(REPORT_PATH, report_params(org_id, from_date, to_date, variant))
            ok = 200 <= response.status_code < 300
            results.append(
                ProbeResult(
                    variant=variant.name,
                    status_code=response.status_code,
                    ok=ok,
                    snippet=(response.text or "")[:SNIPPET_CHARS],
                    content_type=response.headers.get("Content-Type"),
                )
            )
            if ok:
                break
        return results

    def list_organizations(self) -> list[dict[str, Any]]:
        """Return the organizations visible to the connected user."""

        response = self._send(ORGANIZATIONS_PATH, [])
        body = _safe_json(response)
        if not 200 <= response.status_code < 300:
            raise ZohoRequestError(
                f"Zoho organizations request failed with HTTP {response.status_code}",
                status_code=response.status_code,
                payload=body,
            )
        organizations = body.get("organizations")
        if isinstance(organizations, list):
            return organizations
        return []

    # Internal helpers -------------------------------------------------

    def _send(self, path: str, params: Iterable[tuple[str, str]]) -> Response:
        url = f"{self._config.api_base.rstrip('/')}{path}"
        params = list(params)
        attempts = max(1, self._config.retries.max_attempts)
        refreshed = False
        attempt = 0
        while True:
            attempt += 1
            token = self._auth.get_token()
            headers = {AUTHORIZATION_HEADER: f"{TOKEN_PREFIX} {token}"}
            try:
                response = self._session.request(
                    "GET",
                    url,
                    params=params,
                    headers=headers,
                    timeout=self._config.timeout_sec,
                )
            except (Timeout, RequestException) as exc:
                self._logger.warning(
                    "zoho.http request_error url=%s attempt=%d error=%s",
                    url,
                    attempt,
                    type(exc).__name__,
                    exc_info=exc,
                )
                if attempt >= attempts:
                    raise ZohoRequestError("Request to Zoho failed", payload={"url": url}) from exc
                self._sleep(attempt)
                continue

            status = response.status_code
            if status == 401 and not refreshed:
                self._auth.invalidate()
                refreshed = True
                self._logger.info("zoho.http unauthorized url=%s -- refreshing token", url)
                continue
            if status in RETRYABLE_STATUS and attempt < attempts:
                self._logger.warning(
                    "zoho.http retryable_status url=%s status=%d attempt=%d", url, status, attempt
                )
                self._sleep(attempt)
                continue
            return response

    def _sleep(self, attempt: int) -> None:
        delay = self._config.retries.delay_for(attempt)
        time.sleep(delay + random.uniform(0, delay / 2))


def _safe_json(response: Response) -> Mapping[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {"body": (response.text or "")[:200]}
    return payload if isinstance(payload, dict) else {"body": payload}


__all__ = [
    "ZohoBooksClient",
    "FETCH_VARIANTS",
    "PROBE_VARIANTS",
    "REPORT_PATH",
    "report_params",
]
