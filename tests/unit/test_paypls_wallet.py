"""Unit tests for PayPls configuration, API client and unit conversions."""

import sys
from pathlib import Path

import pytest
import requests

REPO_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(REPO_ROOT))

import paypls_wallet  # noqa: E402
from paypls_wallet import (  # noqa: E402
    ApiError,
    PayPlsClient,
    PayPlsConfig,
    StartupConfigError,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = "" if payload is None else "{}"
        self.text = text
        self.content = text.encode()

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


def _capture_request(monkeypatch, response):
    calls = []

    def fake_request(method, url, **kwargs):
        calls.append({"method": method, "url": url, **kwargs})
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(paypls_wallet.requests, "request", fake_request)
    return calls


def _client(**overrides):
    cfg = PayPlsConfig(api_token="tok_test", api_url="https://test.paypls.io", **overrides)
    return PayPlsClient(cfg)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_from_env_requires_token():
    with pytest.raises(StartupConfigError) as exc_info:
        PayPlsConfig.from_env({})
    message = str(exc_info.value)
    assert "PAYPLS_TOKEN" in message
    assert "https://paypls.io" in message


def test_from_env_blank_token_is_missing():
    with pytest.raises(StartupConfigError):
        PayPlsConfig.from_env({"PAYPLS_TOKEN": "   "})


def test_from_env_defaults():
    cfg = PayPlsConfig.from_env({"PAYPLS_TOKEN": "tok_abc"})
    assert cfg.api_token == "tok_abc"
    assert cfg.api_url == "https://api.paypls.io"
    assert cfg.timeout_seconds == 30.0
    assert cfg.log_level == "INFO"


def test_from_env_strips_trailing_slash():
    cfg = PayPlsConfig.from_env(
        {"PAYPLS_TOKEN": "tok_abc", "PAYPLS_API_URL": "https://test.paypls.io/"}
    )
    assert cfg.api_url == "https://test.paypls.io"


def test_from_env_invalid_timeout():
    with pytest.raises(StartupConfigError, match="PAYPLS_TIMEOUT"):
        PayPlsConfig.from_env({"PAYPLS_TOKEN": "tok", "PAYPLS_TIMEOUT": "soon"})
    with pytest.raises(StartupConfigError, match="greater than zero"):
        PayPlsConfig.from_env({"PAYPLS_TOKEN": "tok", "PAYPLS_TIMEOUT": "0"})


def test_from_env_log_level():
    cfg = PayPlsConfig.from_env({"PAYPLS_TOKEN": "tok", "PAYPLS_LOG_LEVEL": "debug"})
    assert cfg.log_level == "DEBUG"
    with pytest.raises(StartupConfigError, match="PAYPLS_LOG_LEVEL"):
        PayPlsConfig.from_env({"PAYPLS_TOKEN": "tok", "PAYPLS_LOG_LEVEL": "chatty"})


def test_config_repr_hides_token():
    cfg = PayPlsConfig(api_token="tok_secret")
    assert "tok_secret" not in repr(cfg)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def test_get_sends_auth_headers_and_drops_empty_params(monkeypatch):
    calls = _capture_request(monkeypatch, FakeResponse(payload={"balance_sats": 1}))

    result = _client().get("/agent/balance", {"bucket_id": "b1", "token": None})

    assert result == {"balance_sats": 1}
    call = calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://test.paypls.io/agent/balance"
    assert call["params"] == {"bucket_id": "b1"}
    assert call["json"] is None
    assert call["headers"]["Authorization"] == "Bearer tok_test"
    assert call["headers"]["Content-Type"] == "application/json"
    assert call["headers"]["User-Agent"] == "paypls-mcp/0.2.0"
    assert call["timeout"] == 30.0


def test_get_without_params_sends_none(monkeypatch):
    calls = _capture_request(monkeypatch, FakeResponse(payload={}))
    _client().get("/agent/balance", {"bucket_id": None, "token": None})
    assert calls[0]["params"] is None


def test_post_sends_json_body(monkeypatch):
    calls = _capture_request(monkeypatch, FakeResponse(payload={"status": "completed"}))
    body = {"address": "tb1qexample", "amount_sats": 1000, "justification": "pay"}

    result = _client(timeout_seconds=5.0).post("/agent/send", body)

    assert result == {"status": "completed"}
    assert calls[0]["method"] == "POST"
    assert calls[0]["json"] == body
    assert calls[0]["timeout"] == 5.0


def test_non_success_status_raises_api_error(monkeypatch):
    _capture_request(
        monkeypatch, FakeResponse(status_code=400, text='{"error":"Insufficient balance"}')
    )

    with pytest.raises(ApiError) as exc_info:
        _client().post("/agent/send", {})

    err = exc_info.value
    assert err.status_code == 400
    assert err.body == '{"error":"Insufficient balance"}'
    assert str(err) == 'API error (400): {"error":"Insufficient balance"}'


def test_transport_failure_raises_api_error(monkeypatch):
    _capture_request(monkeypatch, requests.ConnectionError("connection refused"))

    with pytest.raises(ApiError) as exc_info:
        _client().get("/agent/balance")

    assert exc_info.value.status_code is None
    assert "Request to /agent/balance failed" in str(exc_info.value)
    assert "connection refused" in str(exc_info.value)


def test_empty_body_returns_empty_dict(monkeypatch):
    _capture_request(monkeypatch, FakeResponse(status_code=204))
    assert _client().post("/agent/receive", {}) == {}


def test_invalid_json_raises_api_error(monkeypatch):
    _capture_request(monkeypatch, FakeResponse(status_code=200, text="<html>oops</html>"))
    with pytest.raises(ApiError, match="Invalid JSON response from /agent/balance"):
        _client().get("/agent/balance")


# ---------------------------------------------------------------------------
# Unit conversions
# ---------------------------------------------------------------------------


def test_sats_to_btc_eight_places():
    assert paypls_wallet.sats_to_btc(10_000_000) == "0.10000000"
    assert paypls_wallet.sats_to_btc(1) == "0.00000001"
    assert paypls_wallet.sats_to_btc(250_000_000) == "2.50000000"


def test_small_and_zero_amounts_stay_fixed_point():
    assert paypls_wallet.sats_to_btc(0) == "0.00000000"
    assert paypls_wallet.sats_to_btc(99) == "0.00000099"
    assert paypls_wallet.to_display_units(50, "BTC") == "0.00000050"
    assert paypls_wallet.to_display_units("0", "USDC") == "0.000000"
    assert paypls_wallet.micro_to_usd(0) == "$0.00"


def test_unrepresentable_amount_raises_value_error():
    with pytest.raises(ValueError, match="cannot be shown"):
        paypls_wallet.micro_to_usd(1e40)
    with pytest.raises(ValueError, match="cannot be shown"):
        paypls_wallet.sats_to_btc(float("inf"))


def test_micro_to_usd_two_places():
    assert paypls_wallet.micro_to_usd(5_000_000) == "$5.00"
    assert paypls_wallet.micro_to_usd(1_234_567) == "$1.23"
    assert paypls_wallet.micro_to_usd(2_500_000.0) == "$2.50"


def test_to_display_units_by_token():
    assert paypls_wallet.to_display_units("150000", "BTC") == "0.00150000"
    assert paypls_wallet.to_display_units(1_500_000, "usdc") == "1.500000"
    with pytest.raises(ValueError, match="Unsupported token"):
        paypls_wallet.to_display_units(1, "DOGE")


def test_is_stablecoin():
    assert paypls_wallet.is_stablecoin("USDC")
    assert paypls_wallet.is_stablecoin("eurc")
    assert not paypls_wallet.is_stablecoin("BTC")
    assert not paypls_wallet.is_stablecoin(None)
