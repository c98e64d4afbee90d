"""Tests for single-flight credential refresh."""

import asyncio
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from conftest import make_token
from services.auth.credential_refresher import CredentialRefresher
from services.auth.refresh_client import TokenPair
from services.auth.token_store import Credential, TokenStore
from services.errors import CredentialError, PersistenceError, RefreshRejectedError, TransportError


NOW = 1_700_000_000


class InMemoryTokenStore(TokenStore):
    """TokenStore keeping one record in memory and counting writes."""

    def __init__(self, credential=None, fail_save=False):
        self.credential = credential
        self.fail_save = fail_save
        self.saves = 0

    def load(self):
        return self.credential

    def save_tokens(self, access_token, refresh_token):
        if self.fail_save:
            raise PersistenceError("write rejected")
        self.saves += 1
        self.credential = Credential(
            access_token=access_token,
            refresh_token=refresh_token,
            last_updated=datetime(2024, 1, 1, tzinfo=timezone.utc),
            personal_access_token=self.credential.personal_access_token,
        )
        return self.credential


def make_refresher(credential, refresh=None, fail_save=False):
    store = InMemoryTokenStore(credential, fail_save=fail_save)
    client = MagicMock()
    client.refresh = refresh or AsyncMock(
        return_value=TokenPair(token=make_token({"exp": NOW + 3600}), refresh_token="refresh-2")
    )
    refresher = CredentialRefresher(store, client, buffer_seconds=60, clock=lambda: NOW)
    return refresher, store, client


@pytest.mark.asyncio
async def test_fresh_token_returned_without_refresh():
    credential = Credential(access_token=make_token({"exp": NOW + 3600}), refresh_token="refresh-1")
    refresher, store, client = make_refresher(credential)

    result = await refresher.get_valid_credential()

    assert result == credential
    client.refresh.assert_not_called()
    assert store.saves == 0


@pytest.mark.asyncio
async def test_stale_token_is_refreshed_and_stored():
    old_access = make_token({"exp": NOW + 30})
    refresher, store, client = make_refresher(Credential(access_token=old_access, refresh_token="refresh-1"))

    result = await refresher.get_valid_credential()

    client.refresh.assert_awaited_once_with("refresh-1", old_access)
    assert store.saves == 1
    assert result.refresh_token == "refresh-2"
    assert result.last_updated is not None
    assert refresher.is_stale(result) is False


@pytest.mark.asyncio
async def test_malformed_token_triggers_refresh():
    refresher, store, client = make_refresher(Credential(access_token="garbage", refresh_token="refresh-1"))

    await refresher.get_valid_credential()

    client.refresh.assert_awaited_once()
    assert store.saves == 1


@pytest.mark.asyncio
async def test_non_finite_expiry_triggers_refresh():
    refresher, store, client = make_refresher(
        Credential(access_token=make_token({"exp": float("inf")}), refresh_token="refresh-1")
    )

    result = await refresher.get_valid_credential()

    client.refresh.assert_awaited_once()
    assert store.saves == 1
    assert result.refresh_token == "refresh-2"


@pytest.mark.asyncio
async def test_rejected_refresh_leaves_record_untouched():
    original = Credential(access_token=make_token({"exp": NOW - 5}), refresh_token="refresh-1")
    refresher, store, _ = make_refresher(
        original,
        refresh=AsyncMock(side_effect=RefreshRejectedError("Failed to refresh token: 401")),
    )

    with pytest.raises(CredentialError, match="401"):
        await refresher.get_valid_credential()

    assert store.credential == original
    assert store.saves == 0


@pytest.mark.asyncio
async def test_transport_failure_becomes_credential_error():
    refresher, store, _ = make_refresher(
        Credential(access_token=make_token({"exp": NOW}), refresh_token="refresh-1"),
        refresh=AsyncMock(side_effect=TransportError("timeout")),
    )

    with pytest.raises(CredentialError, match="timeout"):
        await refresher.get_valid_credential()
    assert store.saves == 0


@pytest.mark.asyncio
async def test_failed_save_propagates_persistence_error():
    refresher, _, _ = make_refresher(
        Credential(access_token=make_token({"exp": NOW}), refresh_token="refresh-1"),
        fail_save=True,
    )

    with pytest.raises(PersistenceError):
        await refresher.get_valid_credential()


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh():
    release = asyncio.Event()

    async def slow_refresh(refresh_token, access_token):
        await release.wait()
        return TokenPair(token=make_token({"exp": NOW + 3600}), refresh_token="refresh-2")

    refresher, store, client = make_refresher(
        Credential(access_token=make_token({"exp": NOW + 10}), refresh_token="refresh-1"),
        refresh=AsyncMock(side_effect=slow_refresh),
    )

    first = asyncio.ensure_future(refresher.get_valid_credential())
    second = asyncio.ensure_future(refresher.get_valid_credential())
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(first, second)

    assert client.refresh.await_count == 1
    assert store.saves == 1
    assert results[0] == results[1]


@pytest.mark.asyncio
async def test_next_call_after_refresh_uses_stored_token():
    refresher, store, client = make_refresher(
        Credential(access_token=make_token({"exp": NOW}), refresh_token="refresh-1")
    )

    await refresher.get_valid_credential()
    await refresher.get_valid_credential()

    assert client.refresh.await_count == 1
    assert store.saves == 1


@pytest.mark.asyncio
async def test_missing_record():
    refresher, _, _ = make_refresher(None)

    with pytest.raises(CredentialError, match="No credential record"):
        await refresher.get_valid_credential()


@pytest.mark.asyncio
async def test_stale_token_without_refresh_token():
    refresher, _, client = make_refresher(Credential(access_token=make_token({"exp": NOW}), refresh_token=""))

    with pytest.raises(CredentialError, match="no refresh token"):
        await refresher.get_valid_credential()
    client.refresh.assert_not_called()


@pytest.mark.asyncio
async def test_bearer_token_falls_back_to_personal_access_token():
    refresher, _, client = make_refresher(
        Credential(access_token="", refresh_token="", personal_access_token="pat-123")
    )

    token = await refresher.get_bearer_token()

    assert token == "pat-123"
    client.refresh.assert_not_called()


@pytest.mark.asyncio
async def test_token_status():
    refresher, _, client = make_refresher(
        Credential(
            access_token=make_token({"exp": NOW + 90}),
            refresh_token="refresh-1",
            last_updated=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
    )

    status = await refresher.token_status()

    assert status == {
        "last_updated": "2024-01-01T00:00:00+00:00",
        "has_personal_access_token": False,
        "stale": False,
        "expires_at": NOW + 90,
        "seconds_remaining": 90,
    }
    client.refresh.assert_not_called()


@pytest.mark.asyncio
async def test_token_status_unreadable_token():
    refresher, _, _ = make_refresher(Credential(access_token="garbage", refresh_token="refresh-1"))

    status = await refresher.token_status()

    assert status["stale"] is True
    assert status["expires_at"] is None
    assert status["seconds_remaining"] is None


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_shared_refresh():
    release = asyncio.Event()

    async def slow_refresh(refresh_token, access_token):
        await release.wait()
        return TokenPair(token=make_token({"exp": NOW + 3600}), refresh_token="refresh-2")

    refresher, store, client = make_refresher(
        Credential(access_token=make_token({"exp": NOW + 10}), refresh_token="refresh-1"),
        refresh=AsyncMock(side_effect=slow_refresh),
    )

    first = asyncio.ensure_future(refresher.get_valid_credential())
    second = asyncio.ensure_future(refresher.get_valid_credential())
    await asyncio.sleep(0)

    first.cancel()
    release.set()
    result = await second

    with pytest.raises(asyncio.CancelledError):
        await first
    assert result.refresh_token == "refresh-2"
    assert client.refresh.await_count == 1
    assert store.saves == 1


@pytest.mark.asyncio
async def test_failed_refresh_clears_inflight_so_next_call_retries():
    refresher, store, client = make_refresher(
        Credential(access_token=make_token({"exp": NOW}), refresh_token="refresh-1"),
        refresh=AsyncMock(side_effect=[
            RefreshRejectedError("Failed to refresh token: 503"),
            TokenPair(token=make_token({"exp": NOW + 3600}), refresh_token="refresh-2"),
        ]),
    )

    with pytest.raises(CredentialError):
        await refresher.get_valid_credential()
    assert refresher._inflight is None

    result = await refresher.get_valid_credential()

    assert result.refresh_token == "refresh-2"
    assert client.refresh.await_count == 2
    assert store.saves == 1
