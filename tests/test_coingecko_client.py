"""Tests for CoinGecko price client and the price oracle."""

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch
from aiohttp import ClientError

from conftest import mock_http_response
from services.errors import TransportError, UpstreamDataError
from services.prices.coingecko_client import CoinGeckoClient, parse_simple_price
from services.prices.price_oracle import PriceOracle, PriceQuote


def test_client_initialization():
    client = CoinGeckoClient()
    assert client.base_url == "https://api.coingecko.com/api/v3"
    assert client.headers == {}
    assert client.verify_ssl is True

    keyed = CoinGeckoClient(api_key="demo-key")
    assert keyed.headers == {'x-cg-demo-api-key': 'demo-key'}


@pytest.mark.asyncio
async def test_get_current_price():
    client = CoinGeckoClient()
    response = mock_http_response({"solana": {"usd": 145.32}})

    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = response

        price = await client.get_current_price("solana")

    assert price == Decimal("145.32")
    assert mock_get.call_args[1]["params"] == {"ids": "solana", "vs_currencies": "usd"}


@pytest.mark.asyncio
async def test_get_current_price_rate_limited():
    client = CoinGeckoClient()
    response = mock_http_response(status=429)

    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = response

        with pytest.raises(TransportError, match="rate limit"):
            await client.get_current_price("ore")


@pytest.mark.asyncio
async def test_get_current_price_network_error():
    client = CoinGeckoClient()

    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.side_effect = ClientError("dns failure")

        with pytest.raises(TransportError):
            await client.get_current_price("solana")


@pytest.mark.asyncio
async def test_get_current_price_missing_coin():
    client = CoinGeckoClient()
    response = mock_http_response({})

    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = response

        with pytest.raises(UpstreamDataError):
            await client.get_current_price("ore")


def test_parse_simple_price_rejects_non_numeric():
    for data in ({"ore": {"usd": "1.2"}}, {"ore": {"usd": None}}, {"ore": {"usd": True}}, {"ore": {"usd": -1}}, []):
        with pytest.raises(UpstreamDataError):
            parse_simple_price(data, "ore")


def test_parse_simple_price_integer():
    assert parse_simple_price({"ore": {"usd": 2}}, "ore") == Decimal("2")


def make_oracle(prices):
    """Oracle whose client answers from ``prices``, raising any exception values"""
    async def get_current_price(coin_id, vs_currency='usd'):
        value = prices[coin_id]
        if isinstance(value, Exception):
            raise value
        return value

    client = MagicMock()
    client.get_current_price = AsyncMock(side_effect=get_current_price)
    return PriceOracle(client)


@pytest.mark.asyncio
async def test_oracle_fetches_both_prices():
    oracle = make_oracle({"solana": Decimal("150"), "ore": Decimal("1.25")})

    quote = await oracle.fetch_prices()

    assert quote == PriceQuote(primary_price=Decimal("150"), secondary_price=Decimal("1.25"))


@pytest.mark.asyncio
async def test_oracle_degrades_each_price_independently():
    oracle = make_oracle({"solana": Decimal("150"), "ore": TransportError("rate limit")})

    quote = await oracle.fetch_prices()

    assert quote.primary_price == Decimal("150")
    assert quote.secondary_price == Decimal("0")


@pytest.mark.asyncio
async def test_oracle_both_failing():
    oracle = make_oracle({"solana": UpstreamDataError("bad"), "ore": TransportError("down")})

    quote = await oracle.fetch_prices()

    assert quote == PriceQuote()
