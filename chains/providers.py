"""
chains/providers.py - JSON-RPC provider for a single endpoint.

Provides:
- Bounded local retry (fixed delay) for transport failures
- Typed errors: InfraError for transport, RPCResponseError for node errors
- Latency / success tracking per endpoint
- eth_* helpers used by the contract wrappers and the signer

Failover across endpoints is owned by chains.registry, not by the provider.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any

import httpx

from core.constants import (
    DEFAULT_RECEIPT_POLL_INTERVAL_MS,
    DEFAULT_RECEIPT_TIMEOUT_SECONDS,
    DEFAULT_RPC_RETRY_COUNT,
    DEFAULT_RPC_RETRY_DELAY_MS,
    DEFAULT_RPC_TIMEOUT_SECONDS,
)
from core.exceptions import (
    InfraError,
    ReceiptTimeoutError,
    RPCError,
    RPCResponseError,
    RPCTimeoutError,
)
from core.logging import get_logger

logger = get_logger("monirouter.chains.providers")


@dataclass
class RPCStats:
    """Statistics for an RPC endpoint."""
    url: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_latency_ms: int = 0
    last_error: str | None = None
    last_success_ts: int | None = None

    @property
    def avg_latency_ms(self) -> int:
        if self.successful_requests == 0:
            return 0
        return self.total_latency_ms // self.successful_requests

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests


@dataclass
class RPCResponse:
    """Response from an RPC call."""
    result: Any
    latency_ms: int
    endpoint_used: str
    attempts: int = 1


class RPCProvider:
    """
    JSON-RPC client bound to one endpoint URL.

    Each call is attempted up to `retry_count` times with a fixed
    `retry_delay_ms` pause on transport failures (connection errors,
    timeouts, HTTP 4xx/5xx). A JSON-RPC error object is returned by a
    healthy node and is raised immediately as RPCResponseError.
    """

    def __init__(
        self,
        network: str,
        url: str,
        timeout_seconds: float = DEFAULT_RPC_TIMEOUT_SECONDS,
        retry_count: int = DEFAULT_RPC_RETRY_COUNT,
        retry_delay_ms: int = DEFAULT_RPC_RETRY_DELAY_MS,
        client: httpx.AsyncClient | None = None,
    ):
        self.network = network
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.retry_count = max(1, retry_count)
        self.retry_delay_ms = retry_delay_ms
        self._client = client
        self._owns_client = client is None
        self._request_id = 0
        self.stats = RPCStats(url=url)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=httpx.Limits(max_connections=10),
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
        self._client = None

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def call(
        self,
        method: str,
        params: list | None = None,
        retry_count: int | None = None,
    ) -> RPCResponse:
        """
        Make an RPC call with bounded retry.

        Args:
            method: RPC method name
            params: Method parameters
            retry_count: Override of the provider's attempt count

        Returns:
            RPCResponse with result and metadata

        Raises:
            RPCResponseError: Node returned a JSON-RPC error
            InfraError: All attempts failed at the transport level
        """
        client = await self._get_client()
        last_error: InfraError | None = None
        attempts = self.retry_count if retry_count is None else max(1, retry_count)

        for attempt in range(1, attempts + 1):
            self.stats.total_requests += 1
            payload = {
                "jsonrpc": "2.0",
                "method": method,
                "params": params or [],
                "id": self._next_request_id(),
            }
            start_ms = int(time.time() * 1000)

            try:
                resp = await client.post(self.url, json=payload)
                latency_ms = int(time.time() * 1000) - start_ms

                if resp.status_code >= 400:
                    raise RPCError(
                        f"HTTP {resp.status_code} from {self.network} RPC",
                        details={"url": self.url, "method": method, "status": resp.status_code},
                    )

                body = resp.json()

            except httpx.TimeoutException:
                latency_ms = int(time.time() * 1000) - start_ms
                last_error = RPCTimeoutError(
                    f"RPC timeout after {latency_ms}ms",
                    details={"url": self.url, "method": method},
                )
            except RPCError as e:
                last_error = e
            except (httpx.TransportError, ValueError) as e:
                last_error = RPCError(
                    f"RPC transport failure: {type(e).__name__}",
                    details={"url": self.url, "method": method, "error": str(e)},
                )
            else:
                if isinstance(body, dict) and "error" in body:
                    error = body["error"] or {}
                    message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                    self.stats.failed_requests += 1
                    self.stats.last_error = message
                    logger.debug(
                        f"RPC error response from {self.network}: {message}",
                        extra={"context": {"network": self.network, "method": method}},
                    )
                    raise RPCResponseError(
                        f"RPC error: {message}",
                        rpc_code=error.get("code") if isinstance(error, dict) else None,
                        details={"url": self.url, "method": method},
                    )

                self.stats.successful_requests += 1
                self.stats.total_latency_ms += latency_ms
                self.stats.last_success_ts = int(time.time() * 1000)
                return RPCResponse(
                    result=body.get("result") if isinstance(body, dict) else None,
                    latency_ms=latency_ms,
                    endpoint_used=self.url,
                    attempts=attempt,
                )

            self.stats.failed_requests += 1
            self.stats.last_error = last_error.message
            logger.debug(
                f"RPC attempt {attempt}/{attempts} failed for {self.network}: {last_error.message}",
                extra={"context": {"network": self.network, "method": method, "url": self.url}},
            )
            if attempt < attempts:
                await asyncio.sleep(self.retry_delay_ms / 1000)

        raise last_error

    # =========================================================================
    # eth_* helpers
    # =========================================================================

    def _quantity(self, response: RPCResponse, method: str) -> int:
        """Hex quantity result; a missing or malformed value counts as an endpoint failure."""
        if not isinstance(response.result, str):
            raise RPCError(
                f"{method} returned no quantity from {self.network} RPC",
                details={"url": self.url, "method": method, "result": response.result},
            )
        try:
            return int(response.result, 16)
        except ValueError:
            raise RPCError(
                f"{method} returned a malformed quantity from {self.network} RPC",
                details={"url": self.url, "method": method, "result": response.result},
            )

    async def get_chain_id(self) -> int:
        """Get chain ID from RPC."""
        response = await self.call("eth_chainId")
        return self._quantity(response, "eth_chainId")

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        """
        Make eth_call.

        Returns:
            Hex-encoded return data
        """
        response = await self.call("eth_call", [{"to": to, "data": data}, block])
        return response.result or "0x"

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        """Account nonce of `address`."""
        response = await self.call("eth_getTransactionCount", [address, block])
        return self._quantity(response, "eth_getTransactionCount")

    async def get_gas_price(self) -> int:
        """Current gas price in wei."""
        response = await self.call("eth_gasPrice")
        return self._quantity(response, "eth_gasPrice")

    async def estimate_gas(self, tx: dict) -> int:
        """Gas estimate for a call object ({from, to, data})."""
        response = await self.call("eth_estimateGas", [tx])
        return self._quantity(response, "eth_estimateGas")

    async def send_raw_transaction(self, raw_tx: str) -> str:
        """
        Broadcast a signed transaction; returns the transaction hash.

        Sent exactly once: after a transport failure the transaction may
        already be in the node's pool.
        """
        response = await self.call("eth_sendRawTransaction", [raw_tx], retry_count=1)
        return response.result

    async def get_transaction_receipt(self, tx_hash: str) -> dict | None:
        """Receipt for `tx_hash`, or None while pending."""
        response = await self.call("eth_getTransactionReceipt", [tx_hash])
        return response.result

    async def wait_for_receipt(
        self,
        tx_hash: str,
        timeout_seconds: float = DEFAULT_RECEIPT_TIMEOUT_SECONDS,
        poll_interval_ms: int = DEFAULT_RECEIPT_POLL_INTERVAL_MS,
    ) -> dict:
        """
        Block until the transaction is mined.

        Raises:
            ReceiptTimeoutError: No receipt within timeout_seconds
            InfraError: Transport failure while polling
        """
        deadline = time.monotonic() + timeout_seconds
        while True:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt:
                return receipt
            if time.monotonic() >= deadline:
                raise ReceiptTimeoutError(
                    f"No receipt after {timeout_seconds}s",
                    tx_hash=tx_hash,
                    details={"network": self.network},
                )
            await asyncio.sleep(poll_interval_ms / 1000)

    def get_stats_summary(self) -> dict:
        """Statistics summary for this endpoint."""
        return {
            "total_requests": self.stats.total_requests,
            "success_rate": round(self.stats.success_rate, 3),
            "avg_latency_ms": self.stats.avg_latency_ms,
            "last_error": self.stats.last_error,
        }


def receipt_succeeded(receipt: dict) -> bool:
    """Receipt status 0x1 means the call did not revert."""
    status = receipt.get("status")
    if isinstance(status, str):
        return int(status, 16) == 1
    return status == 1
