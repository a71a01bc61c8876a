"""Tests for atlas.sources — ledger download client with mocked HTTP responses."""

import httpx
import pytest

from atlas.sources.http_source import LedgerSourceClient

URL = "https://example.com/exports/main.csv"
BODY = "Order,Open Time,Type,Profit\n1,2024.01.15 10:00:00,buy,5\n"


def _client() -> LedgerSourceClient:
    return LedgerSourceClient(timeout=5.0, retry_base_delay=0.0)


@pytest.mark.asyncio
async def test_fetch_text_returns_body(monkeypatch):
    seen = {}

    async def _mock_get(self, url, *, headers=None, timeout=None):
        seen["headers"] = headers
        seen["timeout"] = timeout
        return httpx.Response(200, text=BODY, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    assert await _client().fetch_text(URL) == BODY
    assert "no-cache" in seen["headers"]["Cache-Control"]
    assert seen["headers"]["Pragma"] == "no-cache"
    assert seen["timeout"] == 5.0


@pytest.mark.asyncio
async def test_retries_transient_status(monkeypatch):
    calls = []

    async def _mock_get(self, url, *, headers=None, timeout=None):
        calls.append(url)
        status = 503 if len(calls) < 3 else 200
        return httpx.Response(status, text=BODY, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    assert await _client().fetch_text(URL) == BODY
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_retries(monkeypatch):
    calls = []

    async def _mock_get(self, url, *, headers=None, timeout=None):
        calls.append(url)
        return httpx.Response(502, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    with pytest.raises(httpx.HTTPStatusError):
        await _client().fetch_text(URL)
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_not_found_is_not_retried(monkeypatch):
    calls = []

    async def _mock_get(self, url, *, headers=None, timeout=None):
        calls.append(url)
        return httpx.Response(404, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    with pytest.raises(httpx.HTTPStatusError):
        await _client().fetch_text(URL)
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_transport_error_raised_after_retries(monkeypatch):
    calls = []

    async def _mock_get(self, url, *, headers=None, timeout=None):
        calls.append(url)
        raise httpx.ConnectError("offline", request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    with pytest.raises(httpx.ConnectError):
        await _client().fetch_text(URL)
    assert len(calls) == 3
