from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import pytest

from tbflow.core.errors import ConfigError, CredentialsError
from tbflow.services.oauth import RefreshTokenAuth, RetryConfig
from tbflow.services.zoho.client import ZohoBooksClient, report_params, FETCH_VARIANTS
from tbflow.services.zoho.config import ZohoRegionConfig, resolve_config
from tbflow.services.zoho.credentials import StaticConnectionStore
from tbflow.services.zoho.models import ZohoAuthError, ZohoRequestError


@dataclass
class MockResponse:
    status_code: int = 200
    json_data: Any = None
    body: bytes | None = None
    headers: dict[str, str] | None = None

    def __post_init__(self) -> None:
        if self.headers is None:
            self.headers = {}

    def json(self) -> Any:
        if self.json_data is None:
            raise ValueError("JSON body not set")
        return self.json_data

    @property
    def content(self) -> bytes:
        if self.body is not None:
            return self.body
        if self.json_data is not None:
            return json.dumps(self.json_data).encode("utf-8")
        return b""

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


class FakeSession:
    def __init__(self, responses: list[MockResponse]) -> None:
        self._responses = responses
        self.headers: dict[str, str] = {}
        self.calls: list[tuple[str, str]] = []
        self.call_kwargs: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> MockResponse:
        if not self._responses:
            raise AssertionError("No more responses queued")
        self.calls.append((method, url))
        self.call_kwargs.append(kwargs)
        return self._responses.pop(0)

    def get(self, url: str, **kwargs: Any) -> MockResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> MockResponse:
        return self.request("POST", url, **kwargs)

    def close(self) -> None:  # pragma: no cover - nothing to close in tests
        pass


def _config(region: str = "IN") -> ZohoRegionConfig:
    return ZohoRegionConfig(
        region=region,
        client_id="cid",
        client_secret="secret",
        api_base="https://www.zohoapis.in",
        accounts_base="https://accounts.zoho.in",
        timeout_sec=1.0,
        retries=RetryConfig(max_attempts=2, backoff_ms=1, max_backoff_ms=1),
    )


def _build_client(responses: list[MockResponse]) -> tuple[ZohoBooksClient, FakeSession]:
    session = FakeSession(responses)
    client = ZohoBooksClient(
        _config(),
        store=StaticConnectionStore({"IN": "refresh-1"}),
        session=session,
    )
    return client, session


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("tbflow.services.zoho.client.time.sleep", lambda *_: None)
    monkeypatch.setattr("tbflow.services.oauth.time.sleep", lambda *_: None)


def test_fetch_returns_first_successful_variant() -> None:
    client, session = _build_client(
        [
            MockResponse(json_data={"access_token": "tok", "expires_in": 3600}),
            MockResponse(
                body=b"PK\x03\x04xlsx",
                headers={
                    "Content-Type": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
                    "Content-Disposition": 'attachment; filename="trial_balance.xlsx"',
                },
            ),
        ]
    )
    outcome = client.fetch_trial_balance("60001", "2024-03-01", "2024-03-31")

    assert outcome.variant == "xlsx"
    assert outcome.payload.content == b"PK\x03\x04xlsx"
    assert outcome.payload.content_disposition == 'attachment; filename="trial_balance.xlsx"'

    token_call = session.call_kwargs[0]
    assert session.calls[0] == ("POST", "https://accounts.zoho.in/oauth/v2/token")
    assert token_call["data"]["grant_type"] == "refresh_token"
    assert token_call["data"]["refresh_token"] == "refresh-1"

    report_call = session.call_kwargs[1]
    assert session.calls[1] == ("GET", "https://www.zohoapis.in/books/v3/reports/trialbalance")
    assert report_call["headers"]["Authorization"] == "Zoho-oauthtoken tok"
    assert report_call["params"] == [
        ("organization_id", "60001"),
        ("from_date", "2024-03-01"),
        ("to_date", "2024-03-31"),
        ("export_type", "xlsx"),
    ]


def test_fetch_falls_back_to_json_variant() -> None:
    client, session = _build_client(
        [
            MockResponse(json_data={"access_token": "tok", "expires_in": 3600}),
            MockResponse(status_code=400, json_data={"code": 2, "message": "bad export"}),
            MockResponse(status_code=400, json_data={"code": 2, "message": "bad export"}),
            MockResponse(json_data={"code": 0, "trialbalance": []}, headers={"Content-Type": "application/json"}),
        ]
    )
    outcome = client.fetch_trial_balance("60001", "2024-03-01", "2024-03-31")
    assert outcome.variant == "json"
    assert outcome.tried == ["xlsx", "xls", "json"]
    assert ("export_format", "xls") in session.call_kwargs[2]["params"]
    assert all(key not in ("export_type", "export_format") for key, _ in session.call_kwargs[3]["params"])


def test_fetch_raises_with_last_body_when_all_variants_fail() -> None:
    long_body = ("x" * 2000).encode("utf-8")
    client, _ = _build_client(
        [
            MockResponse(json_data={"access_token": "tok", "expires_in": 3600}),
            MockResponse(status_code=400, body=b"first"),
            MockResponse(status_code=400, body=b"second"),
            MockResponse(status_code=404, body=long_body),
        ]
    )
    with pytest.raises(ZohoRequestError) as excinfo:
        client.fetch_trial_balance("60001", "2024-03-01", "2024-03-31")
    assert excinfo.value.status_code == 404
    assert excinfo.value.payload["tried"] == ["xlsx", "xls", "json"]
    assert len(excinfo.value.payload["detail"]) == 1200


def test_unauthorized_refreshes_token_once() -> None:
    client, session = _build_client(
        [
            MockResponse(json_data={"access_token": "tok1", "expires_in": 3600}),
            MockResponse(status_code=401, json_data={"code": 57, "message": "expired"}),
            MockResponse(json_data={"access_token": "tok2", "expires_in": 3600}),
            MockResponse(body=b"{}", headers={"Content-Type": "application/json"}),
        ]
    )
    outcome = client.fetch_trial_balance("60001", "2024-03-01", "2024-03-31")
    assert outcome.variant == "xlsx"
    assert [c[0] for c in session.calls] == ["POST", "GET", "POST", "GET"]
    assert session.call_kwargs[3]["headers"]["Authorization"] == "Zoho-oauthtoken tok2"


def test_server_errors_are_retried() -> None:
    client, session = _build_client(
        [
            MockResponse(json_data={"access_token": "tok", "expires_in": 3600}),
            MockResponse(status_code=503, body=b"busy"),
            MockResponse(body=b"PK\x03\x04"),
        ]
    )
    outcome = client.fetch_trial_balance("60001", "2024-03-01", "2024-03-31")
    assert outcome.variant == "xlsx"
    assert len(session.calls) == 3


def test_token_error_in_ok_response_is_auth_error() -> None:
    client, _ = _build_client([MockResponse(json_data={"error": "invalid_code"})] * 2)
    with pytest.raises(ZohoAuthError):
        client.fetch_trial_balance("60001", "2024-03-01", "2024-03-31")


def test_rejected_grant_is_not_retried() -> None:
    client, session = _build_client([MockResponse(status_code=400, json_data={"error": "invalid_client"})])
    with pytest.raises(ZohoAuthError) as excinfo:
        client.list_organizations()
    assert excinfo.value.status_code == 400
    assert len(session.calls) == 1


def test_missing_connection_is_credentials_error() -> None:
    client = ZohoBooksClient(_config(), store=StaticConnectionStore({}), session=FakeSession([]))
    with pytest.raises(CredentialsError):
        client.list_organizations()


def test_probe_stops_at_first_success() -> None:
    client, session = _build_client(
        [
            MockResponse(json_data={"access_token": "tok", "expires_in": 3600}),
            MockResponse(status_code=400, json_data={"code": 4, "message": "Invalid value passed for date_from"}),
            MockResponse(body=b"PK\x03\x04", headers={"Content-Type": "application/vnd.ms-excel"}),
        ]
    )
    results = client.probe_trial_balance("60001", "2024-03-01", "2024-03-31")
    assert [r.ok for r in results] == [False, True]
    assert "date_from" in results[0].snippet
    assert ("date_from", "2024-03-01") in session.call_kwargs[1]["params"]
    assert ("filter_by", "DateRange.Custom") in session.call_kwargs[2]["params"]


def test_list_organizations() -> None:
    client, session = _build_client(
        [
            MockResponse(json_data={"access_token": "tok", "expires_in": 3600}),
            MockResponse(json_data={"code": 0, "organizations": [{"organization_id": "60001", "name": "Demo"}]}),
        ]
    )
    assert client.list_organizations() == [{"organization_id": "60001", "name": "Demo"}]
    assert session.calls[1] == ("GET", "https://www.zohoapis.in/books/v3/organizations")


def test_auth_caches_token(monkeypatch: pytest.MonkeyPatch) -> None:
    session = FakeSession(
        [
            MockResponse(json_data={"access_token": "tok1", "expires_in": 120}),
            MockResponse(json_data={"access_token": "tok2", "expires_in": 120}),
        ]
    )
    auth = RefreshTokenAuth("https://accounts.example/token", "id", "secret", lambda: "r", session=session)
    clock = {"now": 0.0}
    monkeypatch.setattr("tbflow.services.oauth.time.monotonic", lambda: clock["now"])

    assert auth.get_token() == "tok1"
    clock["now"] = 30.0
    assert auth.get_token() == "tok1"
    clock["now"] = 70.0
    assert auth.get_token() == "tok2"


def test_report_params_order() -> None:
    params = report_params("1", "2024-01-01", "2024-01-31", FETCH_VARIANTS[1])
    assert params == [
        ("organization_id", "1"),
        ("from_date", "2024-01-01"),
        ("to_date", "2024-01-31"),
        ("export_format", "xls"),
    ]


def test_resolve_config_reads_env_and_data_centre(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("ZOHO_UK_CLIENT_ID", "uk-id")
    monkeypatch.setenv("ZOHO_UK_CLIENT_SECRET", "uk-secret")
    monkeypatch.setenv("ZOHO_UK_REFRESH_TOKEN", "uk-refresh")
    config = resolve_config("uk", config_path=tmp_path / "missing.yaml")
    assert config.region == "UK"
    assert config.api_base == "https://www.zohoapis.eu"
    assert config.token_url == "https://accounts.zoho.eu/oauth/v2/token"
    assert config.refresh_token == "uk-refresh"


def test_resolve_config_expands_file_values(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    path = tmp_path / "profiles.yaml"
    path.write_text(
        "zoho:\n"
        "  timeout_sec: 5\n"
        "  regions:\n"
        "    US:\n"
        "      client_id: ${MY_ZOHO_ID}\n"
        "      client_secret: plain-secret\n",
        encoding="utf-8",
    )
    monkeypatch.delenv("ZOHO_US_CLIENT_ID", raising=False)
    monkeypatch.delenv("ZOHO_US_CLIENT_SECRET", raising=False)
    monkeypatch.setenv("MY_ZOHO_ID", "from-env")
    config = resolve_config("US", config_path=path)
    assert config.client_id == "from-env"
    assert config.client_secret == "plain-secret"
    assert config.timeout_sec == 5.0
    assert config.api_base == "https://www.zohoapis.com"


def test_unknown_region_and_missing_credentials(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    with pytest.raises(ConfigError):
        resolve_config("JP", config_path=tmp_path / "missing.yaml")
    monkeypatch.delenv("ZOHO_EU_CLIENT_ID", raising=False)
    with pytest.raises(ConfigError):
        resolve_config("EU", config_path=tmp_path / "missing.yaml")
