"""
Response shaping for PayPls API payloads.

Every normalizer returns a copy of the backend payload with convenience
fields added. Backend fields are never removed, renamed or overwritten, and
optional backend fields may be absent (the API has shipped more than one
balance shape). A derived field that cannot be computed is left out rather
than failing the call, since a send has already gone out by then.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from paypls_wallet import is_stablecoin, micro_to_usd, sats_to_btc, to_display_units

PENDING_APPROVAL = "pending_approval"

BTC_HINT = "BTC price varies - check current rate for accurate USD value"
BTC_RECEIVE_INSTRUCTIONS = "Send Bitcoin to this address. Requires confirmations before available."
SEND_BTC_NEXT_STEPS = (
    "Transaction requires human approval. Poll wallet_tx_status to check status, "
    "or wait for approval notification."
)
SEND_USDC_NEXT_STEPS = "Transaction requires human approval. Poll wallet_tx_status to check status."
TX_PENDING_NEXT_STEPS = (
    "Still waiting for human approval. Poll wallet_tx_status again later; "
    "do not resend the payment."
)

logger = logging.getLogger(__name__)


def _display(convert: Callable[..., str], *args: Any) -> str | None:
    """Run a display conversion, leaving the field out when it cannot be computed."""
    try:
        return convert(*args)
    except ValueError as exc:
        logger.warning("Skipping display value for %r: %s", args[0], exc)
        return None


def _augment(payload: Any, extras: dict[str, Any]) -> dict[str, Any]:
    result = dict(payload) if isinstance(payload, dict) else {"result": payload}
    for key, value in extras.items():
        if value is not None and key not in result:
            result[key] = value
    return result


def _stablecoin_hint(token: str) -> str:
    return f"{token} is a stablecoin - 1 {token} ≈ $1 USD"


def _pending_steps(payload: Any, message: str) -> str | None:
    if isinstance(payload, dict) and payload.get("status") == PENDING_APPROVAL:
        return message
    return None


# ---------------------------------------------------------------------------
# Balances
# ---------------------------------------------------------------------------


def _resolve_token(payload: dict[str, Any], requested: str | None = None) -> str:
    for candidate in (payload.get("token"), payload.get("currency"), requested):
        if isinstance(candidate, str) and candidate:
            return candidate.upper()
    return "BTC"


def _balance_extras(payload: dict[str, Any], requested_token: str | None = None) -> dict[str, Any]:
    token = _resolve_token(payload, requested_token)
    extras: dict[str, Any] = {
        "hint": _stablecoin_hint(token) if is_stablecoin(token) else BTC_HINT,
    }

    # Older revision: per-unit fields.
    if payload.get("balance_sats") is not None:
        extras["balance_btc"] = _display(sats_to_btc, payload["balance_sats"])
    if payload.get("pending_sats") is not None:
        extras["pending_btc"] = _display(sats_to_btc, payload["pending_sats"])
    if payload.get("balance_micro") is not None:
        extras["balance_usd"] = _display(micro_to_usd, payload["balance_micro"])

    # Current revision: token-agnostic smallest-unit field.
    smallest = payload.get("balance_smallest_unit")
    if smallest is not None and token in ("BTC", "USDC", "EURC"):
        extras["balance_formatted"] = _display(to_display_units, smallest, token)

    return extras


def normalize_balance(payload: Any, tool_input: Any = None) -> dict[str, Any]:
    requested = getattr(tool_input, "token", None)
    if not isinstance(payload, dict):
        return _augment(payload, {})
    return _augment(payload, _balance_extras(payload, requested))


def normalize_buckets(payload: Any) -> dict[str, Any]:
    """Shape a bucket listing, accepting either a bare list or {"buckets": [...]}."""
    if isinstance(payload, list):
        buckets = payload
        result: dict[str, Any] = {"buckets": buckets}
    elif isinstance(payload, dict):
        buckets = payload.get("buckets") or []
        result = dict(payload)
    else:
        return _augment(payload, {})

    result["buckets"] = [
        _augment(bucket, _balance_extras(bucket)) if isinstance(bucket, dict) else bucket
        for bucket in buckets
    ]
    return _augment(result, {"count": len(buckets)})


# ---------------------------------------------------------------------------
# Sends
# ---------------------------------------------------------------------------


def normalize_send_btc(payload: Any, tool_input: Any) -> dict[str, Any]:
    return _augment(
        payload,
        {
            "token": "BTC",
            "amount_sats": tool_input.amount_sats,
            "amount_btc": _display(sats_to_btc, tool_input.amount_sats),
            "next_steps": _pending_steps(payload, SEND_BTC_NEXT_STEPS),
        },
    )


def normalize_send_usdc(payload: Any, tool_input: Any) -> dict[str, Any]:
    return _augment(
        payload,
        {
            "token": "USDC",
            "amount_micro": tool_input.amount_usdc,
            "amount_usd": _display(micro_to_usd, tool_input.amount_usdc),
            "next_steps": _pending_steps(payload, SEND_USDC_NEXT_STEPS),
        },
    )


# ---------------------------------------------------------------------------
# Receive / status
# ---------------------------------------------------------------------------


def normalize_receive(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        return _augment(payload, {})
    currency = payload.get("currency")
    if currency == "BTC":
        instructions = BTC_RECEIVE_INSTRUCTIONS
    elif currency:
        chain = payload.get("chain") or "its network"
        instructions = f"Send {currency} on {chain} to this address. Network fees apply."
    else:
        instructions = None
    return _augment(payload, {"instructions": instructions})


def normalize_tx_status(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        return _augment(payload, {})
    extras: dict[str, Any] = {
        "next_steps": _pending_steps(payload, TX_PENDING_NEXT_STEPS),
    }
    if payload.get("amount_sats") is not None:
        extras["amount_btc"] = _display(sats_to_btc, payload["amount_sats"])
    return _augment(payload, extras)
