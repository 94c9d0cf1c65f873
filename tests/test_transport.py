from __future__ import annotations

import asyncio
import importlib
import sys

import httpx
import pytest

from attempt_core.driver import AttemptDriver
from attempt_core.errors import AttemptError, AttemptNotActive, SubscriptionRequired
from attempt_core.transport import HttpTransport, TransportError
from tests.conftest import student, write_bank


def _mocked(handler) -> HttpTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://attempts.test")
    return HttpTransport("http://attempts.test", student(), client=client)


def test_identity_headers_and_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["user"] = request.headers["x-user-id"]
        seen["expires"] = request.headers["x-subscription-expires-at"]
        seen["body"] = request.content
        return httpx.Response(200, json={"success": True, "ack": {"status": "in_progress", "accepted": True}})

    ack = asyncio.run(_mocked(handler).record_answer("a1", "short_0", text_answer="hi", time_used_seconds=4))
    assert ack["accepted"] is True
    assert seen["path"] == "/api/assessment-attempts/a1/answer"
    assert seen["user"] == "s1"
    assert seen["expires"].startswith("2099-01-01")
    assert b'"textAnswer":"hi"' in seen["body"].replace(b" ", b"")
    assert b"selectedIndex" not in seen["body"]


def test_rejections_map_to_engine_errors():
    def conflict(request):
        return httpx.Response(409, json={"success": False, "code": "attempt_not_active", "msg": "done"})

    def paywall(request):
        return httpx.Response(403, json={"success": False, "code": "subscription_required", "msg": "Subscription required"})

    def unauthenticated(request):
        return httpx.Response(401, json={"detail": "missing X-User-Id"})

    with pytest.raises(AttemptNotActive):
        asyncio.run(_mocked(conflict).heartbeat("a1", 30))
    with pytest.raises(SubscriptionRequired) as exc:
        asyncio.run(_mocked(paywall).start_or_resume("P1"))
    assert exc.value.msg == "Subscription required"
    with pytest.raises(AttemptError) as exc:
        asyncio.run(_mocked(unauthenticated).submit("a1", False, 10))
    assert exc.value.msg == "missing X-User-Id"


def test_network_and_server_failures_are_transport_errors():
    def down(request):
        raise httpx.ConnectError("connection refused", request=request)

    def broken(request):
        return httpx.Response(502, text="bad gateway")

    def garbage(request):
        return httpx.Response(200, text="<html>")

    for handler in (down, broken, garbage):
        with pytest.raises(TransportError):
            asyncio.run(_mocked(handler).heartbeat("a1", 30))


def test_driver_end_to_end_over_asgi(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("BANK_PATH", str(write_bank(tmp_path / "bank.json")))
    for name in ("attempt_core.config", "api.app"):
        if name in sys.modules:
            importlib.reload(sys.modules[name])
        else:
            __import__(name)
    app = sys.modules["api.app"].app

    async def scenario():
        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://attempts.test")
        transport = HttpTransport("http://attempts.test", student(), client=client)
        try:
            paper = await transport.get_paper("P1")
            attempt = await transport.start_or_resume("P1")
            items = sorted(paper["items"], key=lambda i: i["order"])
            driver = AttemptDriver(transport, attempt, [i["id"] for i in items])
            assert await driver.select_option("mcq_0", 1)
            assert await driver.select_option("mcq_1", 3)
            driver.type_text("short_0", "photosynthesis")
            for _ in range(42):
                await driver.tick()
            await driver.drain()
            submitted = await driver.submit()
            results = await transport.get_results(driver.attempt_id)
            return submitted, results
        finally:
            await transport.aclose()

    submitted, results = asyncio.run(scenario())
    assert submitted["timeUsedSeconds"] == 42
    assert submitted["score"]["correct"] == 2
    assert submitted["score"]["percentage"] == 50
    assert [q["isCorrect"] for q in results["questionResults"]] == [True, False, True, False]
