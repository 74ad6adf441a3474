#!/usr/bin/env python3
"""
MCP server for PayPls agent wallet operations.

Exposes the PayPls agent API (BTC and USDC payments) as six MCP tools:
wallet_balance, wallet_list_buckets, wallet_send_btc, wallet_send_usdc,
wallet_receive and wallet_tx_status.

Wraps paypls_wallet.py (API client), paypls_tools.py (registry and
validation) and paypls_normalize.py (response shaping).
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List

from dotenv import load_dotenv
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import CallToolResult, TextContent, Tool

from paypls_normalize import (
    normalize_balance,
    normalize_buckets,
    normalize_receive,
    normalize_send_btc,
    normalize_send_usdc,
    normalize_tx_status,
)
from paypls_tools import (
    TOOL_INPUT_MODELS,
    WalletBalanceInput,
    WalletListBucketsInput,
    WalletReceiveInput,
    WalletSendBtcInput,
    WalletSendUsdcInput,
    WalletTxStatusInput,
    list_tool_definitions,
    validate_tool_input,
)
from paypls_wallet import (
    PayPlsClient,
    PayPlsConfig,
    PayPlsError,
    StartupConfigError,
    __version__,
)

SERVER_DIR = Path(__file__).resolve().parent

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _ok_result(data: Any) -> CallToolResult:
    text = json.dumps(data, indent=2, default=str, ensure_ascii=False)
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=False)


def _error_result(message: str) -> CallToolResult:
    text = json.dumps({"error": True, "message": message})
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=True)


def _send_body(tool_input: WalletSendBtcInput | WalletSendUsdcInput) -> Dict[str, Any]:
    # Absent optional fields are left for the backend to default.
    return tool_input.model_dump(exclude_none=True)


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class WalletToolDispatcher:
    """
    Routes tool calls through validation, the PayPls API and response shaping.

    call_tool never raises: every failure becomes an error envelope
    {"error": true, "message": ...} flagged with isError.
    """

    def __init__(self, client: PayPlsClient) -> None:
        self._client = client
        self._handlers: Dict[str, Callable[[Any], Awaitable[Any]]] = {
            "wallet_balance": self._handle_balance,
            "wallet_list_buckets": self._handle_list_buckets,
            "wallet_send_btc": self._handle_send_btc,
            "wallet_send_usdc": self._handle_send_usdc,
            "wallet_receive": self._handle_receive,
            "wallet_tx_status": self._handle_tx_status,
        }
        # TOOL_INPUT_MODELS is the registry of tool names; every entry needs a handler.
        if set(self._handlers) != set(TOOL_INPUT_MODELS):
            mismatched = sorted(set(self._handlers) ^ set(TOOL_INPUT_MODELS))
            raise RuntimeError(f"Tool handlers out of sync with input models: {mismatched}")

    @property
    def tool_names(self) -> List[str]:
        return list(TOOL_INPUT_MODELS)

    def list_tools(self) -> List[Tool]:
        return list_tool_definitions()

    async def call_tool(self, name: str, arguments: Any) -> CallToolResult:
        try:
            # Raises UnknownToolError for names missing from TOOL_INPUT_MODELS.
            tool_input = validate_tool_input(name, arguments)
            payload = await self._handlers[name](tool_input)
        except PayPlsError as exc:
            logger.warning("Tool %s failed: %s", name, exc)
            return _error_result(str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error in tool %s", name)
            return _error_result(str(exc) or type(exc).__name__)
        return _ok_result(payload)

    # -- Handlers -----------------------------------------------------------

    async def _handle_balance(self, tool_input: WalletBalanceInput) -> Dict[str, Any]:
        params = {"bucket_id": tool_input.bucket_id, "token": tool_input.token}
        result = await asyncio.to_thread(self._client.get, "/agent/balance", params)
        return normalize_balance(result, tool_input)

    async def _handle_list_buckets(self, tool_input: WalletListBucketsInput) -> Dict[str, Any]:
        result = await asyncio.to_thread(self._client.get, "/agent/buckets")
        return normalize_buckets(result)

    async def _handle_send_btc(self, tool_input: WalletSendBtcInput) -> Dict[str, Any]:
        result = await asyncio.to_thread(
            self._client.post, "/agent/send", _send_body(tool_input)
        )
        return normalize_send_btc(result, tool_input)

    async def _handle_send_usdc(self, tool_input: WalletSendUsdcInput) -> Dict[str, Any]:
        result = await asyncio.to_thread(
            self._client.post, "/agent/send", _send_body(tool_input)
        )
        return normalize_send_usdc(result, tool_input)

    async def _handle_receive(self, tool_input: WalletReceiveInput) -> Dict[str, Any]:
        result = await asyncio.to_thread(
            self._client.post, "/agent/receive", tool_input.model_dump(exclude_none=True)
        )
        return normalize_receive(result)

    async def _handle_tx_status(self, tool_input: WalletTxStatusInput) -> Dict[str, Any]:
        result = await asyncio.to_thread(
            self._client.get, f"/agent/tx/{tool_input.transaction_id}"
        )
        return normalize_tx_status(result)


# ---------------------------------------------------------------------------
# Server wiring
# ---------------------------------------------------------------------------


def create_server(cfg: PayPlsConfig) -> Server:
    """Build the MCP server with a dispatcher bound to the given configuration."""
    dispatcher = WalletToolDispatcher(PayPlsClient(cfg))
    app = Server("paypls", version=__version__)

    @app.list_tools()
    async def list_tools() -> List[Tool]:
        return dispatcher.list_tools()

    # The dispatcher validates arguments itself and reports errors as envelopes.
    @app.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: Dict[str, Any]) -> CallToolResult:
        return await dispatcher.call_tool(name, arguments)

    return app


async def serve(cfg: PayPlsConfig) -> None:
    app = create_server(cfg)
    async with stdio_server() as (read_stream, write_stream):
        logger.info("PayPls MCP server running (BTC + USDC supported) against %s", cfg.api_url)
        await app.run(read_stream, write_stream, app.create_initialization_options())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _configure_logging(level: str) -> None:
    # stdout carries the MCP stream.
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main() -> None:
    load_dotenv(SERVER_DIR / ".env")
    load_dotenv(SERVER_DIR.parent / ".env")

    try:
        cfg = PayPlsConfig.from_env()
    except StartupConfigError as exc:
        _configure_logging("INFO")
        logger.error("Error: %s", exc)
        sys.exit(1)

    _configure_logging(cfg.log_level)
    asyncio.run(serve(cfg))


if __name__ == "__main__":
    main()
