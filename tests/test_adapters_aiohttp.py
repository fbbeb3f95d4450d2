from unittest.mock import AsyncMock

import pytest

from tokenpool import AsyncTokenPool, TokenConfig


class FakeResponse:
    def __init__(self, status=200, headers=None, total=9):
        self.status = status
        self.headers = headers or {}
        self.closed = False
        self._total = total

    async def json(self):
        return {"usage": {"total_tokens": self._total}}

    async def release(self):
        self.closed = True


async def _cost(resp):
    data = await resp.json()
    return data["usage"]["total_tokens"]


@pytest.mark.asyncio
async def test_aiohttp_header_injection_and_charges():
    pool = AsyncTokenPool("k1", tokens=[TokenConfig("k2")])
    session = AsyncMock()
    session.request.return_value = FakeResponse(total=9)

    async with pool.aiohttp_client(
        session=session,
        request_cost=lambda kw: len(kw["json"]["prompt"]),
        response_cost=_cost,
    ) as client:
        async with client.post("https://api.example.com/v1", json={"prompt": "abc"}) as resp:
            assert resp.status == 200  # noqa: PLR2004
            args, kwargs = session.request.call_args
            assert kwargs["headers"]["Authorization"] == "Bearer k1"
        assert resp.closed
        async with client.post("https://api.example.com/v1", json={"prompt": "abcd"}):
            _, kwargs = session.request.call_args
            assert kwargs["headers"]["Authorization"] == "Bearer k2"

    assert pool.get_token(1).usage == 12  # noqa: PLR2004
    assert pool.get_token(2).usage == 13  # noqa: PLR2004


@pytest.mark.asyncio
async def test_aiohttp_query_injection():
    pool = AsyncTokenPool("k1", auth_in="query", auth_query_param="api_key")
    session = AsyncMock()
    session.request.return_value = FakeResponse(200, {})

    async with pool.aiohttp_client(session=session) as client:
        async with client.get("https://api.example.com/v1", params={"q": "x"}) as resp:
            assert isinstance(resp, FakeResponse)
            _, kwargs = session.request.call_args
            assert kwargs["params"] == {"q": "x", "api_key": "k1"}
            assert "Authorization" not in kwargs["headers"]


@pytest.mark.asyncio
async def test_aiohttp_error_in_block_skips_response_cost():
    pool = AsyncTokenPool("k1")
    session = AsyncMock()
    response = FakeResponse(total=50)
    session.request.return_value = response

    async with pool.aiohttp_client(
        session=session, request_cost=lambda kw: 1, response_cost=_cost
    ) as client:
        with pytest.raises(ValueError):
            async with client.get("https://api.example.com/v1"):
                raise ValueError("bad payload")
    assert response.closed
    assert pool.get_token(1).usage == 1


@pytest.mark.asyncio
async def test_aiohttp_send_failure_closes_dispatch():
    pool = AsyncTokenPool("k1")
    session = AsyncMock()
    session.request.side_effect = ConnectionError("down")

    async with pool.aiohttp_client(session=session, request_cost=lambda kw: 2) as client:
        with pytest.raises(ConnectionError):
            async with client.get("https://api.example.com/v1"):
                pass
    assert pool.get_token(1).usage == 2  # noqa: PLR2004
    assert pool.get_current_token().id == 1
