"""
Read-only chain access: native balance over JSON-RPC and an optional
background poller that logs it. Nothing on the payment path depends on
either.
"""

from __future__ import annotations

import itertools
import logging
import threading
from decimal import Decimal
from typing import Callable, Optional, Protocol

import httpx

from .errors import ChainError

logger = logging.getLogger(__name__)


WEI_PER_ETHER = 10 ** 18


class ChainClient(Protocol):
    def get_balance(self, address: str) -> int: ...


def format_ether(wei: int) -> str:
    return format((Decimal(wei) / WEI_PER_ETHER).normalize(), "f")


class RpcChainClient:
    """Minimal JSON-RPC client for balance reads."""

    def __init__(
        self,
        rpc_url: str,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.rpc_url = rpc_url
        self._ids = itertools.count(1)
        self._http = httpx.Client(timeout=timeout_seconds, transport=transport)

    def _call(self, method: str, params: list) -> object:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = self._http.post(self.rpc_url, json=payload)
        except httpx.HTTPError as e:
            raise ChainError(f"RPC {method} failed: {type(e).__name__}: {e}") from e
        if response.status_code != 200:
            raise ChainError(f"RPC {method} returned HTTP {response.status_code}")
        try:
            body = response.json()
        except ValueError as e:
            raise ChainError(f"RPC {method} returned invalid JSON") from e
        if body.get("error"):
            err = body["error"]
            raise ChainError(f"RPC {method} error: {err.get('message', err)}", code=err.get("code"))
        return body.get("result")

    def get_balance(self, address: str) -> int:
        result = self._call("eth_getBalance", [address, "latest"])
        if not isinstance(result, str):
            raise ChainError(f"Unexpected eth_getBalance result: {result!r}")
        return int(result, 16)

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


class BalancePoller:
    """Logs the agent balance on a fixed interval until stopped."""

    def __init__(
        self,
        chain: ChainClient,
        address: str,
        interval_seconds: float = 30.0,
        on_balance: Optional[Callable[[int], None]] = None,
    ):
        self.chain = chain
        self.address = address
        self.interval_seconds = interval_seconds
        self._on_balance = on_balance
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="autopay-balance-poller",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def poll_once(self) -> Optional[int]:
        try:
            balance = self.chain.get_balance(self.address)
        except Exception as e:
            logger.error("Error polling agent balance: %s: %s", type(e).__name__, e)
            return None
        if balance > 0:
            logger.info("Agent listening... (balance: %s)", format_ether(balance))
        if self._on_balance is not None:
            self._on_balance(balance)
        return balance

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.poll_once()
