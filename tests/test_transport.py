from __future__ import annotations

import asyncio
from typing import Any

import aiohttp
import pytest

from pyalbumart._transport import AiohttpTransport, HttpResponse
from pyalbumart.exceptions import TransportError
from pyalbumart.navigation import auth_params, strip_auth_params
from pyalbumart.scheduler import AsyncioScheduler


def test_raise_for_status_keeps_error_body() -> None:
    response = HttpResponse(status=400, text='{"error": "invalid_grant"}', url="https://auth.example/token")

    with pytest.raises(TransportError) as excinfo:
        response.raise_for_status("Refresh")

    assert excinfo.value.status_code == 400
    assert excinfo.value.error_code == "invalid_grant"
    assert HttpResponse(status=204).ok


def test_json_decode_failure_is_transport_error() -> None:
    with pytest.raises(TransportError):
        HttpResponse(status=200, text="<html>").json()
    assert HttpResponse(status=500, text="<html>").json_or_none() is None


def test_error_code_reads_nested_api_errors() -> None:
    error = TransportError("x", body={"error": {"status": 401, "message": "The access token expired"}})
    assert error.error_code == "The access token expired"
    assert TransportError("x", body=["not", "a", "dict"]).error_code == ""


class _FailingSession:
    def request(self, *args: Any, **kwargs: Any) -> Any:
        raise aiohttp.ClientConnectionError("connection refused")


@pytest.mark.asyncio
async def test_aiohttp_transport_wraps_client_errors() -> None:
    transport = AiohttpTransport(_FailingSession())  # type: ignore[arg-type]

    with pytest.raises(TransportError, match="connection refused"):
        await transport.request("GET", "https://api.example/v1/me?access_token=secret")


def test_auth_params_and_strip() -> None:
    url = "http://localhost:5173/spotify?code=abc&state=xyz&keep=1"

    assert auth_params(url) == ("abc", "xyz")
    assert auth_params("http://localhost:5173/spotify") == (None, None)
    assert strip_auth_params(url) == "http://localhost:5173/spotify?keep=1"
    assert strip_auth_params("http://localhost:5173/spotify?code=abc") == "http://localhost:5173/spotify"


@pytest.mark.asyncio
async def test_asyncio_scheduler_runs_coroutines_and_cancels() -> None:
    scheduler = AsyncioScheduler()
    fired: list[str] = []
    done = asyncio.Event()

    async def work() -> None:
        fired.append("coro")
        done.set()

    cancelled = scheduler.schedule_once(0, lambda: fired.append("cancelled"))
    cancelled.cancel()
    scheduler.schedule_once(0, work)

    await asyncio.wait_for(done.wait(), timeout=1)
    for _ in range(3):
        await asyncio.sleep(0)

    assert fired == ["coro"]
    assert scheduler.pending_tasks == 0


@pytest.mark.asyncio
async def test_asyncio_scheduler_logs_callback_failures(caplog: pytest.LogCaptureFixture) -> None:
    scheduler = AsyncioScheduler()
    done = asyncio.Event()

    async def boom() -> None:
        done.set()
        raise RuntimeError("boom")

    scheduler.schedule_once(0, boom)
    await asyncio.wait_for(done.wait(), timeout=1)
    await asyncio.sleep(0)
    await scheduler.aclose()

    assert "Scheduled callback failed" in caplog.text
