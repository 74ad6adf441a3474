"""
PayPls wallet API access for the MCP server.

Implements:
- Configuration loaded once from the environment (PayPlsConfig)
- Error taxonomy shared by the validator, client and dispatcher
- Authenticated HTTP client for the PayPls agent API
- Smallest-unit to display-unit conversions
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Literal, Mapping

import requests

__version__ = "0.2.0"

DEFAULT_API_URL = "https://api.paypls.io"
DEFAULT_TIMEOUT_SECONDS = 30.0
USER_AGENT = f"paypls-mcp/{__version__}"

SATS_PER_BTC = Decimal(100_000_000)
MICRO_PER_UNIT = Decimal(1_000_000)

# Decimal places of each token's smallest unit.
TOKEN_DECIMALS = {"BTC": 8, "USDC": 6, "EURC": 6}
STABLECOINS = frozenset({"USDC", "EURC"})

HttpMethod = Literal["GET", "POST"]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class PayPlsError(Exception):
    """Base class for errors raised by the PayPls MCP server."""

    pass


class StartupConfigError(PayPlsError):
    """Required configuration is missing or invalid. Fatal at startup."""

    pass


class ValidationError(PayPlsError):
    """Tool arguments violate the tool's input contract."""

    pass


class UnknownToolError(PayPlsError):
    """A call named a tool that is not registered."""

    pass


class ApiError(PayPlsError):
    """
    The PayPls API could not be reached or answered with a non-success status.

    status_code is None when the request never produced an HTTP response.
    """

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PayPlsConfig:
    """
    Process-wide configuration for the PayPls MCP server.

    Values are sourced from environment variables or a .env file:
    - PAYPLS_TOKEN: bearer token for the agent API (required).
    - PAYPLS_API_URL: API base URL (defaults to https://api.paypls.io).
    - PAYPLS_TIMEOUT: per-request timeout in seconds (defaults to 30).
    - PAYPLS_LOG_LEVEL: stderr logging level (defaults to INFO).
    """

    api_token: str = field(repr=False)
    api_url: str = DEFAULT_API_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> PayPlsConfig:
        if env is None:
            env = os.environ

        api_token = (env.get("PAYPLS_TOKEN") or "").strip()
        if not api_token:
            raise StartupConfigError(
                "PAYPLS_TOKEN environment variable is required. "
                "Get your token at https://paypls.io or https://test.paypls.io"
            )

        api_url = (env.get("PAYPLS_API_URL") or "").strip() or DEFAULT_API_URL
        api_url = api_url.rstrip("/")

        timeout_raw = (env.get("PAYPLS_TIMEOUT") or "").strip()
        timeout_seconds = DEFAULT_TIMEOUT_SECONDS
        if timeout_raw:
            try:
                timeout_seconds = float(timeout_raw)
            except ValueError as exc:
                raise StartupConfigError(
                    f"Invalid PAYPLS_TIMEOUT={timeout_raw!r}. Must be a number of seconds."
                ) from exc
            if timeout_seconds <= 0:
                raise StartupConfigError(
                    f"Invalid PAYPLS_TIMEOUT={timeout_raw!r}. Must be greater than zero."
                )

        log_level = (env.get("PAYPLS_LOG_LEVEL") or "INFO").strip().upper()
        if log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise StartupConfigError(
                f"Invalid PAYPLS_LOG_LEVEL={log_level!r}. "
                "Expected one of DEBUG, INFO, WARNING, ERROR, CRITICAL."
            )

        return cls(
            api_token=api_token,
            api_url=api_url,
            timeout_seconds=timeout_seconds,
            log_level=log_level,
        )


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


class PayPlsClient:
    """
    Minimal authenticated client for the PayPls agent API.

    One outbound request per call; no retries and no caching. Callers that
    need deduplication pass an idempotency_key in the request body.
    """

    def __init__(self, cfg: PayPlsConfig) -> None:
        self._cfg = cfg

    @property
    def base_url(self) -> str:
        return self._cfg.api_url

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._cfg.api_token}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    def request(
        self,
        path: str,
        method: HttpMethod = "GET",
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        url = f"{self._cfg.api_url}{path}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        logger.debug("PayPls API %s %s", method, path)
        try:
            resp = requests.request(
                method,
                url,
                headers=self._headers(),
                params=params or None,
                json=body,
                timeout=self._cfg.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise ApiError(f"Request to {path} failed: {exc}") from exc

        if not resp.ok:
            error_text = resp.text
            raise ApiError(
                f"API error ({resp.status_code}): {error_text}",
                status_code=resp.status_code,
                body=error_text,
            )

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise ApiError(
                f"Invalid JSON response from {path}",
                status_code=resp.status_code,
                body=resp.text,
            ) from exc

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self.request(path, "GET", params=params)

    def post(self, path: str, body: dict[str, Any]) -> Any:
        return self.request(path, "POST", body=body)


# ---------------------------------------------------------------------------
# Unit conversions
# ---------------------------------------------------------------------------


def _to_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValueError(f"Invalid amount {value!r}. Must be a number.") from exc


def _fixed(value: Decimal, places: int) -> str:
    # Fixed-point text; str() would give "0E-8" for small values.
    try:
        quantized = value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Amount {value} cannot be shown with {places} decimal places.") from exc
    return format(quantized, "f")


def sats_to_btc(amount_sats: Any) -> str:
    """Format satoshis as a BTC string with 8 decimal places."""
    return _fixed(_to_decimal(amount_sats) / SATS_PER_BTC, 8)


def micro_to_usd(amount_micro: Any) -> str:
    """Format stablecoin micro-units as a dollar string, e.g. 5000000 -> "$5.00"."""
    return "$" + _fixed(_to_decimal(amount_micro) / MICRO_PER_UNIT, 2)


def to_display_units(amount: Any, token: str) -> str:
    """Convert a smallest-unit amount to the token's major unit at full precision."""
    decimals = TOKEN_DECIMALS.get(token.upper())
    if decimals is None:
        raise ValueError(f"Unsupported token {token!r}.")
    return _fixed(_to_decimal(amount) / (Decimal(10) ** decimals), decimals)


def is_stablecoin(token: str | None) -> bool:
    return bool(token) and token.upper() in STABLECOINS
