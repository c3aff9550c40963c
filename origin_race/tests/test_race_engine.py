"""Tests for the probe runner and the first-success race."""

import asyncio
import sys
import time
from pathlib import Path

import pytest
from httpx import ConnectError, ReadTimeout

# Ensure package path for local src
ROOT = Path(__file__).resolve().parents[2]
SRC = ROOT / "origin_race" / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from origin_race.probe import ProbeError, build_probe_url, probe_origin
from origin_race.race import race_origins


def run(coro):
    return asyncio.run(coro)


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code


class FakeHTTPClient:
    """Fake probe transport keyed by origin id (first label of the host)."""

    def __init__(self, behavior):
        # behavior: origin -> {"status": int, "latency_ms": int, "error": Exception|None}
        self.behavior = behavior
        self.calls = []

    async def request(self, method, url, timeout=None):
        host = url.split("//", 1)[1].split("/", 1)[0]
        origin = host.split(".", 1)[0]
        self.calls.append((method, url))
        cfg = self.behavior.get(origin, {})
        latency = cfg.get("latency_ms", 0)
        if latency:
            await asyncio.sleep(latency / 1000.0)
        if cfg.get("error"):
            raise cfg["error"]
        return FakeResponse(cfg.get("status", 200))


ORIGINS = ["a", "b", "c"]


def _race(client, origins=ORIGINS, timeout_ms=500, method="HEAD"):
    return race_origins(client, origins, ".race.example.com", "/probe", method, timeout_ms)


class TestProbe:

    def test_build_probe_url(self):
        assert build_probe_url("us-east", ".race.example.com", "/a?b=1") == "https://us-east.race.example.com/a?b=1"
        assert build_probe_url("us-east", ".race.example.com", "a") == "https://us-east.race.example.com/a"

    def test_probe_success_returns_origin(self):
        client = FakeHTTPClient({"a": {"status": 204}})
        assert run(probe_origin(client, "a", "https://a.race.example.com/", "GET", 500)) == "a"
        assert client.calls == [("GET", "https://a.race.example.com/")]

    @pytest.mark.parametrize("status", [301, 404, 500, 503])
    def test_probe_non_2xx_fails(self, status):
        client = FakeHTTPClient({"a": {"status": status}})
        with pytest.raises(ProbeError) as exc:
            run(probe_origin(client, "a", "https://a.race.example.com/", "HEAD", 500))
        assert exc.value.reason == f"HTTP {status}"
        assert exc.value.origin == "a"

    def test_probe_transport_error_fails(self):
        client = FakeHTTPClient({"a": {"error": ConnectError("refused")}})
        with pytest.raises(ProbeError):
            run(probe_origin(client, "a", "https://a.race.example.com/", "HEAD", 500))

    def test_probe_client_timeout_fails(self):
        client = FakeHTTPClient({"a": {"error": ReadTimeout("slow")}})
        with pytest.raises(ProbeError) as exc:
            run(probe_origin(client, "a", "https://a.race.example.com/", "HEAD", 500))
        assert "timeout" in exc.value.reason

    def test_probe_enforces_timeout_on_slow_transport(self):
        client = FakeHTTPClient({"a": {"latency_ms": 2000}})
        start = time.monotonic()
        with pytest.raises(ProbeError):
            run(probe_origin(client, "a", "https://a.race.example.com/", "HEAD", 50))
        assert time.monotonic() - start < 1.0


class TestRaceEngine:

    def test_first_success_wins_without_waiting_for_stragglers(self):
        client = FakeHTTPClient({
            "a": {"latency_ms": 50, "status": 500},
            "b": {"latency_ms": 100},
            "c": {"latency_ms": 300},
        })
        start = time.monotonic()
        winner = run(_race(client))
        elapsed = time.monotonic() - start
        assert winner == "b"
        assert elapsed < 0.25

    def test_failures_do_not_win_even_when_fastest(self):
        client = FakeHTTPClient({
            "a": {"error": ConnectError("refused")},
            "b": {"status": 503},
            "c": {"latency_ms": 20},
        })
        assert run(_race(client)) == "c"

    def test_all_timeouts_is_no_winner(self):
        client = FakeHTTPClient({o: {"latency_ms": 2000} for o in ORIGINS})
        start = time.monotonic()
        winner = run(_race(client, timeout_ms=100))
        assert winner is None
        assert time.monotonic() - start < 1.0

    def test_all_failures_is_no_winner(self):
        client = FakeHTTPClient({
            "a": {"status": 500},
            "b": {"error": ConnectError("refused")},
            "c": {"status": 404},
        })
        assert run(_race(client)) is None

    def test_unexpected_probe_exception_is_absorbed(self):
        client = FakeHTTPClient({"a": {"error": RuntimeError("boom")}, "b": {"status": 500}})
        assert run(_race(client, origins=["a", "b"])) is None

    def test_empty_origins_probes_nothing(self):
        client = FakeHTTPClient({})
        assert run(_race(client, origins=[])) is None
        assert client.calls == []

    def test_every_origin_is_probed_with_method_and_path(self):
        client = FakeHTTPClient({"a": {"latency_ms": 30}, "b": {"latency_ms": 30}, "c": {}})
        assert run(_race(client, method="GET")) == "c"
        urls = sorted(url for _, url in client.calls)
        assert urls == [
            "https://a.race.example.com/probe",
            "https://b.race.example.com/probe",
            "https://c.race.example.com/probe",
        ]
        assert {m for m, _ in client.calls} == {"GET"}

    def test_single_origin(self):
        client = FakeHTTPClient({"only": {}})
        assert run(_race(client, origins=["only"])) == "only"
