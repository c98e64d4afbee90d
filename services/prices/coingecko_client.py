"""
CoinGecko API Client for current USD prices
"""

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Optional

import aiohttp
import structlog

from services.errors import TransportError, UpstreamDataError

logger = structlog.get_logger()


class CoinGeckoClient:
    """
    Client for the CoinGecko ``/simple/price`` endpoint

    Features:
    - One coin per request so each price can fail on its own
    - Optional demo API key for higher rate limits
    """

    BASE_URL = "https://api.coingecko.com/api/v3"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: int = 30,
        verify_ssl: bool = True,
    ):
        """
        Initialize CoinGecko client

        Args:
            api_key: Optional CoinGecko demo API key
            base_url: Override for the pinned API base URL
            timeout: Request timeout in seconds
            verify_ssl: Verify TLS certificates (TLS_VERIFY)
        """
        self.api_key = api_key
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.verify_ssl = verify_ssl
        self.headers = {}

        if api_key:
            self.headers['x-cg-demo-api-key'] = api_key

        self.logger = logger.bind(component="coingecko_client")

    async def get_current_price(
        self,
        coin_id: str,
        vs_currency: str = 'usd'
    ) -> Decimal:
        """
        Get current price for a coin

        Args:
            coin_id: CoinGecko coin ID (e.g. 'solana', 'ore')
            vs_currency: Quote currency

        Returns:
            Current price

        Raises:
            TransportError: On network errors or non-2xx responses (including 429)
            UpstreamDataError: If ``<coin_id>.<vs_currency>`` is missing or not numeric
        """
        url = f"{self.base_url}/simple/price"
        params = {
            'ids': coin_id,
            'vs_currencies': vs_currency
        }

        try:
            connector = aiohttp.TCPConnector(ssl=self.verify_ssl)
            async with aiohttp.ClientSession(headers=self.headers, timeout=self.timeout, connector=connector) as session:
                async with session.get(url, params=params) as response:
                    if response.status == 429:
                        raise TransportError("CoinGecko rate limit exceeded")
                    response.raise_for_status()
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Network error fetching CoinGecko price: {e}") from e
        except ValueError as e:
            raise UpstreamDataError(f"CoinGecko returned invalid JSON: {e}") from e

        price = parse_simple_price(data, coin_id, vs_currency)
        self.logger.debug("coingecko_price", coin=coin_id, price=str(price))
        return price


def parse_simple_price(data, coin_id: str, vs_currency: str = 'usd') -> Decimal:
    """Read ``data[coin_id][vs_currency]`` as a non-negative Decimal"""
    entry = data.get(coin_id) if isinstance(data, dict) else None
    value = entry.get(vs_currency) if isinstance(entry, dict) else None

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise UpstreamDataError(f"No {vs_currency} price for {coin_id}: {value!r}")

    try:
        price = Decimal(str(value))
    except InvalidOperation as e:
        raise UpstreamDataError(f"Unparseable price for {coin_id}: {value!r}") from e

    if not price.is_finite() or price < 0:
        raise UpstreamDataError(f"Price out of range for {coin_id}: {value!r}")
    return price
