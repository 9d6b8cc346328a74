"""
Proxy transport tests

Fallback order, activation short-circuit, header isolation and error
aggregation, against httpx.MockTransport (no network).

Run: cd api && pytest tests/test_transport.py
"""

import os
import sys
import asyncio
from unittest.mock import patch
from urllib.parse import quote

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx
import pytest

from integrations.core.errors import NetworkError, ProxyActivationRequired
from integrations.core.transport import (
    CORS_ANYWHERE_ACTIVATION_URL,
    ProxyProvider,
    ProxyTransport,
    RequestSpec,
    default_providers,
)

TARGET = "https://api.clickup.com/api/v2/user"


def relay(name: str, **kwargs) -> ProxyProvider:
    """A provider that routes through https://<name>.relay.test/?u=<target>."""
    return ProxyProvider(
        name=name,
        rewrite=lambda url, host=f"{name}.relay.test": f"https://{host}/?u={quote(url, safe='')}",
        **kwargs,
    )


class Recorder:
    """MockTransport handler: records requests, fails or answers per relay host."""

    def __init__(self, failing=(), responses=None):
        self.failing = set(failing)
        self.responses = responses or {}
        self.requests: list[httpx.Request] = []

    @property
    def hosts(self) -> list[str]:
        return [r.url.host for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        name = request.url.host.split(".")[0]
        if name in self.failing:
            raise httpx.ConnectError("connection refused", request=request)
        return self.responses.get(name, httpx.Response(200, json={"via": name}))


def make_transport(providers, recorder) -> ProxyTransport:
    return ProxyTransport(providers=providers, http_transport=httpx.MockTransport(recorder))


def test_falls_back_until_a_provider_answers():
    """Providers 0..k-1 fail at network level, k answers, k+1.. are never tried."""
    recorder = Recorder(failing={"p0", "p1"})
    transport = make_transport([relay("p0"), relay("p1"), relay("p2"), relay("p3")], recorder)

    response = asyncio.run(transport.send(TARGET))

    assert response.json() == {"via": "p2"}
    assert recorder.hosts == ["p0.relay.test", "p1.relay.test", "p2.relay.test"]


def test_http_error_status_is_returned_not_retried():
    recorder = Recorder(responses={"p0": httpx.Response(500, text="boom")})
    transport = make_transport([relay("p0"), relay("p1")], recorder)

    response = asyncio.run(transport.send(TARGET))

    assert response.status_code == 500
    assert recorder.hosts == ["p0.relay.test"]


def test_activation_page_raises_proxy_activation_required():
    recorder = Recorder(
        failing={"p0"},
        responses={"cors": httpx.Response(403, text="See /corsdemo to request temporary access")},
    )
    final = relay(
        "cors",
        activation_marker="/corsdemo",
        activation_url=CORS_ANYWHERE_ACTIVATION_URL,
    )
    transport = make_transport([relay("p0"), final], recorder)

    with pytest.raises(ProxyActivationRequired) as exc_info:
        asyncio.run(transport.send(TARGET))

    assert exc_info.value.activation_url == CORS_ANYWHERE_ACTIVATION_URL
    assert exc_info.value.kind == "proxy_activation"


def test_plain_403_from_activation_provider_is_returned():
    recorder = Recorder(responses={"cors": httpx.Response(403, json={"err": "Team not authorized"})})
    final = relay("cors", activation_marker="/corsdemo", activation_url=CORS_ANYWHERE_ACTIVATION_URL)
    transport = make_transport([final], recorder)

    response = asyncio.run(transport.send(TARGET))

    assert response.status_code == 403


def test_all_providers_failing_aggregates_attempts():
    recorder = Recorder(failing={"p0", "p1", "p2"})
    transport = make_transport([relay("p0"), relay("p1"), relay("p2")], recorder)

    with pytest.raises(NetworkError) as exc_info:
        asyncio.run(transport.send(TARGET))

    attempts = exc_info.value.attempts
    assert [a.provider_name for a in attempts] == ["p0", "p1", "p2"]
    assert all("ConnectError" in a.outcome for a in attempts)
    assert "Unable to connect via any proxy" in exc_info.value.message


def test_provider_headers_do_not_leak_to_other_providers():
    recorder = Recorder(failing={"p0"})
    transport = make_transport(
        [relay("p0", headers={"X-Requested-With": "XMLHttpRequest"}), relay("p1")],
        recorder,
    )

    asyncio.run(transport.send(TARGET, RequestSpec(headers={"Authorization": "pk_1"})))

    first, second = recorder.requests
    assert first.headers["X-Requested-With"] == "XMLHttpRequest"
    assert "X-Requested-With" not in second.headers
    assert second.headers["Authorization"] == "pk_1"


def test_method_restricted_provider_is_skipped():
    recorder = Recorder(failing={"p0", "p2"})
    transport = make_transport(
        [relay("p0"), relay("getonly", methods=("GET", "HEAD")), relay("p2")],
        recorder,
    )

    with pytest.raises(NetworkError) as exc_info:
        asyncio.run(transport.send(TARGET, RequestSpec(method="POST", json={"name": "x"})))

    assert "getonly.relay.test" not in recorder.hosts
    skipped = [a for a in exc_info.value.attempts if a.provider_name == "getonly"]
    assert skipped and skipped[0].outcome.startswith("skipped")


def test_params_are_merged_into_the_target_url():
    recorder = Recorder()
    direct = ProxyProvider(name="direct", rewrite=lambda url: url)
    transport = make_transport([direct], recorder)

    asyncio.run(transport.send("https://api.trello.com/1/members/me", RequestSpec(params={"key": "k", "token": "t"})))

    url = recorder.requests[0].url
    assert url.host == "api.trello.com"
    assert url.params["key"] == "k"
    assert url.params["token"] == "t"


def test_default_chain_order_and_allow_list():
    names = [p.name for p in default_providers()]
    assert names[0] == "direct"
    assert names[1] == "backend"
    assert names[-1] == "cors-anywhere"

    cors_anywhere = default_providers()[-1]
    assert cors_anywhere.headers == {"X-Requested-With": "XMLHttpRequest"}
    assert cors_anywhere.activation_url == CORS_ANYWHERE_ACTIVATION_URL

    with patch.dict(os.environ, {"BUGSNAP_PROXY_PROVIDERS": "direct, cors-anywhere"}):
        assert [p.name for p in default_providers()] == ["direct", "cors-anywhere"]


def test_backend_provider_encodes_target():
    with patch.dict(os.environ, {"BUGSNAP_PROXY_URL": "https://bugsnap.example.com/api/proxy"}):
        backend = [p for p in default_providers() if p.name == "backend"][0]

    rewritten = backend.rewrite("https://api.trello.com/1/cards?idList=abc")
    assert rewritten == (
        "https://bugsnap.example.com/api/proxy?url="
        "https%3A%2F%2Fapi.trello.com%2F1%2Fcards%3FidList%3Dabc"
    )
