"""Tests for the Solana getBalance client."""

import pytest
import aiohttp
from unittest.mock import patch
from aiohttp import ClientError

from conftest import mock_http_response
from services.balances.solana_client import SolanaRpcClient, parse_balance_result
from services.errors import RpcError, TransportError, UpstreamDataError


ENDPOINT = "https://rpc-a.example"
ADDRESS = "4Nd1mYQ8Vb3pFv1Z9oV6u2e4m3Tq5tX7r8s9a1b2c3d4"


@pytest.fixture
def rpc_client():
    return SolanaRpcClient(timeout=5)


def test_build_balance_request(rpc_client):
    payload = rpc_client.build_balance_request(ADDRESS)

    assert payload == {
        "jsonrpc": "2.0",
        "id": "1",
        "method": "getBalance",
        "params": [ADDRESS, {"commitment": "confirmed"}],
    }


@pytest.mark.asyncio
async def test_get_balance(rpc_client):
    response = mock_http_response({"jsonrpc": "2.0", "id": "1", "result": {"context": {"slot": 1}, "value": 2_000_000_000}})

    with patch("aiohttp.ClientSession.post") as mock_post:
        mock_post.return_value.__aenter__.return_value = response

        lamports = await rpc_client.get_balance(ENDPOINT, ADDRESS)

    assert lamports == 2_000_000_000
    assert mock_post.call_args[0][0] == ENDPOINT
    assert mock_post.call_args[1]["json"]["params"][0] == ADDRESS


@pytest.mark.asyncio
async def test_get_balance_rpc_error_member(rpc_client):
    response = mock_http_response({"jsonrpc": "2.0", "id": "1", "error": {"code": -32602, "message": "Invalid param"}})

    with patch("aiohttp.ClientSession.post") as mock_post:
        mock_post.return_value.__aenter__.return_value = response

        with pytest.raises(RpcError, match="Invalid param"):
            await rpc_client.get_balance(ENDPOINT, ADDRESS)


@pytest.mark.asyncio
async def test_get_balance_transport_error(rpc_client):
    with patch("aiohttp.ClientSession.post") as mock_post:
        mock_post.side_effect = ClientError("connection reset")

        with pytest.raises(TransportError):
            await rpc_client.get_balance(ENDPOINT, ADDRESS)


@pytest.mark.asyncio
async def test_get_balance_invalid_json(rpc_client):
    response = mock_http_response(json_error=ValueError("Expecting value"))

    with patch("aiohttp.ClientSession.post") as mock_post:
        mock_post.return_value.__aenter__.return_value = response

        with pytest.raises(UpstreamDataError):
            await rpc_client.get_balance(ENDPOINT, ADDRESS)


def test_parse_balance_result_rejects_bad_values():
    for body in (
        {},
        {"result": None},
        {"result": {"value": "100"}},
        {"result": {"value": 1.5}},
        {"result": {"value": True}},
        {"result": {"value": -1}},
    ):
        with pytest.raises(RpcError):
            parse_balance_result(body)


def test_parse_balance_result_zero():
    assert parse_balance_result({"result": {"value": 0}}) == 0


@pytest.mark.asyncio
async def test_tls_verification_setting_reaches_connector():
    rpc_client = SolanaRpcClient(verify_ssl=False)
    response = mock_http_response({"result": {"value": 5}})

    with patch("aiohttp.TCPConnector", wraps=aiohttp.TCPConnector) as mock_connector, \
            patch("aiohttp.ClientSession.post") as mock_post:
        mock_post.return_value.__aenter__.return_value = response

        assert await rpc_client.get_balance(ENDPOINT, ADDRESS) == 5

    mock_connector.assert_called_once_with(ssl=False)
