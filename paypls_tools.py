"""
Tool registry and input validation for the PayPls MCP server.

Each tool has a JSON-schema descriptor served to the host on discovery and a
pydantic model that enforces the same contract before any API call is made.
"""

from __future__ import annotations

import math
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, Union

from mcp.types import Tool
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from paypls_wallet import UnknownToolError, ValidationError

TOKENS = ["BTC", "USDC", "EURC"]

BTC_ADDRESS_MIN_LENGTH = 26
BTC_ADDRESS_MAX_LENGTH = 62
EVM_ADDRESS_PATTERN = r"^0x[a-fA-F0-9]{40}$"
UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
JUSTIFICATION_MAX_LENGTH = 500
# 21 million BTC in satoshis.
MAX_AMOUNT_SATS = 2_100_000_000_000_000
NOT_BLANK_PATTERN = r"\S"


# ---------------------------------------------------------------------------
# Input models
# ---------------------------------------------------------------------------


class _ToolInput(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore", frozen=True)


class WalletBalanceInput(_ToolInput):
    bucket_id: Optional[str] = None
    token: Optional[Literal["BTC", "USDC", "EURC"]] = None


class WalletListBucketsInput(_ToolInput):
    pass


# Shown to the human approver, so blank text is rejected.
Justification = Annotated[
    str,
    Field(min_length=1, max_length=JUSTIFICATION_MAX_LENGTH, pattern=NOT_BLANK_PATTERN),
]


class WalletSendBtcInput(_ToolInput):
    bucket_id: Optional[str] = None
    address: str = Field(min_length=BTC_ADDRESS_MIN_LENGTH, max_length=BTC_ADDRESS_MAX_LENGTH)
    amount_sats: int = Field(gt=0, le=MAX_AMOUNT_SATS)
    justification: Justification
    idempotency_key: Optional[str] = None


class WalletSendUsdcInput(_ToolInput):
    bucket_id: Optional[str] = None
    address: str = Field(pattern=EVM_ADDRESS_PATTERN)
    amount_usdc: Union[int, float]
    justification: Justification
    idempotency_key: Optional[str] = None

    @field_validator("amount_usdc")
    @classmethod
    def check_amount_positive(cls, value: Union[int, float]) -> Union[int, float]:
        if isinstance(value, float) and not math.isfinite(value):
            raise PydanticCustomError("finite_number", "Input should be a finite number")
        if not value > 0:
            raise PydanticCustomError(
                "greater_than",
                "Input should be greater than 0",
            )
        return value


class WalletReceiveInput(_ToolInput):
    bucket_id: Optional[str] = None


class WalletTxStatusInput(_ToolInput):
    transaction_id: str = Field(pattern=UUID_PATTERN)


TOOL_INPUT_MODELS: Dict[str, Type[_ToolInput]] = {
    "wallet_balance": WalletBalanceInput,
    "wallet_list_buckets": WalletListBucketsInput,
    "wallet_send_btc": WalletSendBtcInput,
    "wallet_send_usdc": WalletSendUsdcInput,
    "wallet_receive": WalletReceiveInput,
    "wallet_tx_status": WalletTxStatusInput,
}


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _describe_error(error: Dict[str, Any]) -> str:
    loc = error.get("loc") or ()
    field_name = str(loc[0]) if loc else "arguments"
    if error.get("type") == "missing":
        return f"Missing required field '{field_name}'."
    return f"Invalid {field_name}: {error.get('msg', 'invalid value')}."


def validate_tool_input(name: str, arguments: Any) -> _ToolInput:
    """
    Validate raw tool arguments against the named tool's input contract.

    Raises UnknownToolError for unregistered names and ValidationError
    describing the first violated constraint otherwise.
    """
    model = TOOL_INPUT_MODELS.get(name)
    if model is None:
        raise UnknownToolError(f"Unknown tool: {name}")

    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise ValidationError("Invalid arguments. Expected an object.")

    try:
        return model.model_validate(arguments)
    except PydanticValidationError as exc:
        errors = exc.errors()
        message = _describe_error(errors[0]) if errors else "Invalid arguments."
        raise ValidationError(message) from exc


# ---------------------------------------------------------------------------
# Tool descriptors
# ---------------------------------------------------------------------------

_BUCKET_SEND_DESCRIPTION = "The bucket to send from. Defaults to primary bucket if not specified."
_JUSTIFICATION_SCHEMA: Dict[str, Any] = {
    "type": "string",
    "minLength": 1,
    "maxLength": JUSTIFICATION_MAX_LENGTH,
    "pattern": NOT_BLANK_PATTERN,
    "description": (
        "Clear explanation of why this payment is needed. "
        "This is shown to the human for approval."
    ),
}

TOOL_DEFINITIONS: List[Tool] = [
    Tool(
        name="wallet_balance",
        description=(
            "Get the balance of your wallet. Returns balance in the native unit "
            "(sats for BTC, micro-units for USDC/EURC) plus formatted display values."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "bucket_id": {
                    "type": "string",
                    "description": "The bucket ID to check. Defaults to primary bucket if not specified.",
                },
                "token": {
                    "type": "string",
                    "enum": TOKENS,
                    "description": "Which token balance to check. If not specified, uses the primary bucket.",
                },
            },
        },
    ),
    Tool(
        name="wallet_list_buckets",
        description=(
            "List the buckets (sub-wallets) available to this agent with their balances. "
            "Use a bucket_id from this list to target a specific bucket in other wallet tools."
        ),
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="wallet_send_btc",
        description=(
            "Send Bitcoin to an address. May require human approval depending on amount "
            "and bucket settings. Always provide a clear justification."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "bucket_id": {"type": "string", "description": _BUCKET_SEND_DESCRIPTION},
                "address": {
                    "type": "string",
                    "minLength": BTC_ADDRESS_MIN_LENGTH,
                    "maxLength": BTC_ADDRESS_MAX_LENGTH,
                    "description": "The Bitcoin address to send to (bc1... for mainnet, tb1... for testnet).",
                },
                "amount_sats": {
                    "type": "integer",
                    "exclusiveMinimum": 0,
                    "maximum": MAX_AMOUNT_SATS,
                    "description": (
                        "Amount to send in satoshis (1 BTC = 100,000,000 sats). "
                        "For example: 10000 sats ≈ $10 at $100k BTC."
                    ),
                },
                "justification": _JUSTIFICATION_SCHEMA,
                "idempotency_key": {
                    "type": "string",
                    "description": (
                        "Optional unique key to prevent duplicate transactions. If provided and "
                        "a transaction with this key exists (within 24h), returns the existing transaction."
                    ),
                },
            },
            "required": ["address", "amount_sats", "justification"],
        },
    ),
    Tool(
        name="wallet_send_usdc",
        description=(
            "Send USDC (stablecoin) to an EVM address. May require human approval depending "
            "on amount. USDC is ideal for stable-value payments."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "bucket_id": {"type": "string", "description": _BUCKET_SEND_DESCRIPTION},
                "address": {
                    "type": "string",
                    "pattern": EVM_ADDRESS_PATTERN,
                    "description": "The EVM wallet address to send to (0x... format).",
                },
                "amount_usdc": {
                    "type": "number",
                    "exclusiveMinimum": 0,
                    "description": (
                        "Amount to send in micro-USDC (1 USDC = 1,000,000 micro-USDC). "
                        "For example: 5000000 = $5.00 USDC."
                    ),
                },
                "justification": _JUSTIFICATION_SCHEMA,
                "idempotency_key": {
                    "type": "string",
                    "description": "Optional unique key to prevent duplicate transactions.",
                },
            },
            "required": ["address", "amount_usdc", "justification"],
        },
    ),
    Tool(
        name="wallet_receive",
        description=(
            "Get an address to receive funds into your wallet. "
            "Returns a deposit address for the specified bucket."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "bucket_id": {
                    "type": "string",
                    "description": "The bucket to receive into. Defaults to primary bucket if not specified.",
                },
            },
        },
    ),
    Tool(
        name="wallet_tx_status",
        description=(
            "Check the status of a transaction by its ID. Use this to poll for approval "
            "status after a send that requires human approval."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "transaction_id": {
                    "type": "string",
                    "pattern": UUID_PATTERN,
                    "description": "The transaction ID returned from wallet_send_btc or wallet_send_usdc.",
                },
            },
            "required": ["transaction_id"],
        },
    ),
]


def list_tool_definitions() -> List[Tool]:
    return list(TOOL_DEFINITIONS)
