"""End-to-end failover over real httpx clients.

Each provider is an ``httpx.Client`` / ``httpx.AsyncClient`` backed by an
``httpx.MockTransport``.  A response hook turns error statuses into
``httpx.HTTPStatusError`` so that failing backends raise.
"""

from __future__ import annotations

import httpx
import pytest

from failover_provider import FailoverProvider

PRIMARY = "https://rpc-primary.example"
BACKUP = "https://rpc-backup.example"


def _raise_on_error(response: httpx.Response) -> None:
    response.raise_for_status()


async def _araise_on_error(response: httpx.Response) -> None:
    response.raise_for_status()


def server_errors_only(error: BaseException) -> bool:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return isinstance(error, httpx.TransportError)


def _handler(status_by_host: dict[str, int], seen: list[str]):
    def handle(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.host)
        status = status_by_host[request.url.host]
        if status == 0:
            raise httpx.ConnectError("Connection refused", request=request)
        return httpx.Response(status, json={"host": request.url.host, "balance": 42})

    return handle


def _client(base_url: str, handler) -> httpx.Client:
    return httpx.Client(
        base_url=base_url,
        transport=httpx.MockTransport(handler),
        event_hooks={"response": [_raise_on_error]},
    )


def _async_client(base_url: str, handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url,
        transport=httpx.MockTransport(handler),
        event_hooks={"response": [_araise_on_error]},
    )


class TestSyncClients:
    def test_fails_over_on_503(self):
        seen: list[str] = []
        handler = _handler({"rpc-primary.example": 503, "rpc-backup.example": 200}, seen)
        with _client(PRIMARY, handler) as primary, _client(BACKUP, handler) as backup:
            client = FailoverProvider(retries=1).add_provider(primary).add_provider(backup).initialize()
            response = client.get("/v1/balance")

        assert response.json()["host"] == "rpc-backup.example"
        assert seen == ["rpc-primary.example", "rpc-backup.example"]

    def test_fails_over_on_connect_error(self):
        seen: list[str] = []
        handler = _handler({"rpc-primary.example": 0, "rpc-backup.example": 200}, seen)
        with _client(PRIMARY, handler) as primary, _client(BACKUP, handler) as backup:
            client = FailoverProvider().add_provider(primary).add_provider(backup).initialize()
            assert client.get("/v1/balance").status_code == 200

    def test_client_error_not_retried(self):
        seen: list[str] = []
        handler = _handler({"rpc-primary.example": 404, "rpc-backup.example": 200}, seen)
        with _client(PRIMARY, handler) as primary, _client(BACKUP, handler) as backup:
            client = (
                FailoverProvider(should_retry_on=server_errors_only)
                .add_provider(primary)
                .add_provider(backup)
                .initialize()
            )
            with pytest.raises(httpx.HTTPStatusError) as excinfo:
                client.get("/v1/balance")

        assert excinfo.value.response.status_code == 404
        assert seen == ["rpc-primary.example"]

    def test_composite_is_an_httpx_client(self):
        handler = _handler({"rpc-primary.example": 200}, [])
        with _client(PRIMARY, handler) as primary:
            client = FailoverProvider().add_provider(primary).initialize()
            assert isinstance(client, httpx.Client)
            assert client.base_url.host == "rpc-primary.example"

    def test_composite_as_context_manager(self):
        handler = _handler({"rpc-primary.example": 200}, [])
        primary = _client(PRIMARY, handler)
        with FailoverProvider().add_provider(primary).initialize() as client:
            assert isinstance(client, httpx.Client)
            assert client.get("/v1/balance").status_code == 200
        assert primary.is_closed


class TestAsyncClients:
    async def test_fails_over_on_502(self):
        seen: list[str] = []
        handler = _handler({"rpc-primary.example": 502, "rpc-backup.example": 200}, seen)
        async with _async_client(PRIMARY, handler) as primary, _async_client(BACKUP, handler) as backup:
            client = FailoverProvider(retries=1).add_provider(primary).add_provider(backup).initialize()
            response = await client.post("/v1/balance", json={"address": "0xabc"})

        assert response.json()["host"] == "rpc-backup.example"
        assert seen == ["rpc-primary.example", "rpc-backup.example"]

    async def test_all_backends_down_raises_last_error(self):
        seen: list[str] = []
        handler = _handler({"rpc-primary.example": 503, "rpc-backup.example": 500}, seen)
        async with _async_client(PRIMARY, handler) as primary, _async_client(BACKUP, handler) as backup:
            client = FailoverProvider(retries=1).add_provider(primary).add_provider(backup).initialize()
            with pytest.raises(httpx.HTTPStatusError) as excinfo:
                await client.get("/v1/balance")

        assert excinfo.value.response.status_code == 500
        assert len(seen) == 2

    async def test_composite_as_async_context_manager(self):
        seen: list[str] = []
        handler = _handler({"rpc-primary.example": 503, "rpc-backup.example": 200}, seen)
        primary, backup = _async_client(PRIMARY, handler), _async_client(BACKUP, handler)
        composite = FailoverProvider(retries=1).add_provider(primary).add_provider(backup).initialize()
        async with composite as client:
            assert client is composite
            response = await client.get("/v1/balance")
        await primary.aclose()

        assert response.json()["host"] == "rpc-backup.example"
        # Exit is dispatched to the provider active at that point.
        assert backup.is_closed
