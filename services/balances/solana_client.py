"""Solana JSON-RPC client for native balance lookups.

The client talks to exactly one endpoint per call; choosing which endpoint is
the job of :class:`services.rpc.EndpointRotator`.
"""

import asyncio
from typing import Any, Dict

import aiohttp
import structlog

from services.errors import RpcError, TransportError, UpstreamDataError

logger = structlog.get_logger()


class SolanaRpcClient:
    """Async client for the ``getBalance`` JSON-RPC method."""

    def __init__(self, timeout: int = 30, commitment: str = "confirmed", verify_ssl: bool = True):
        """Initialize Solana RPC client.

        Args:
            timeout: Request timeout in seconds
            commitment: Commitment level sent with every query
            verify_ssl: Verify TLS certificates of the RPC endpoints
        """
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.verify_ssl = verify_ssl
        self.commitment = commitment

        self.logger = logger.bind(component="solana_rpc_client")

    def build_balance_request(self, address: str) -> Dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": "1",
            "method": "getBalance",
            "params": [address, {"commitment": self.commitment}],
        }

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON-RPC payload and return the decoded body.

        Raises:
            TransportError: On connection errors, timeouts or non-2xx status
            UpstreamDataError: If the body is not a JSON object
        """
        try:
            connector = aiohttp.TCPConnector(ssl=self.verify_ssl)
            async with aiohttp.ClientSession(timeout=self.timeout, connector=connector) as session:
                async with session.post(endpoint, json=payload) as response:
                    response.raise_for_status()
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"RPC transport error: {e}") from e
        except ValueError as e:
            raise UpstreamDataError(f"RPC returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamDataError("RPC response is not a JSON object")
        return data

    async def get_balance(self, endpoint: str, address: str) -> int:
        """Get the confirmed balance of ``address`` in lamports.

        Args:
            endpoint: RPC endpoint URL
            address: Base58 wallet address

        Returns:
            Balance in lamports

        Raises:
            TransportError: On HTTP failures
            RpcError: On an ``error`` member or an unusable ``result.value``
        """
        data = await self._post(endpoint, self.build_balance_request(address))

        if data.get("error"):
            error = data["error"]
            message = error.get("message", "Unknown error") if isinstance(error, dict) else str(error)
            raise RpcError(f"RPC error: {message}")

        return parse_balance_result(data)


def parse_balance_result(data: Dict[str, Any]) -> int:
    """Extract ``result.value`` as a non-negative integer.

    Raises:
        RpcError: If the field is missing or not an integer
    """
    result = data.get("result")
    value = result.get("value") if isinstance(result, dict) else None

    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int):
        raise RpcError(f"RPC result.value missing or not an integer: {value!r}")
    if value < 0:
        raise RpcError(f"RPC result.value is negative: {value}")
    return value
