"""
Proxy Transport - ordered-fallback outbound requests.

Every call to a destination platform goes through ProxyTransport.send().
The transport walks an ordered list of providers: a direct call first, then
our own relay (routes/proxy.py), then public CORS relays. A provider is
abandoned only on a low-level network failure; any HTTP response, including
4xx/5xx, is returned to the caller as-is.

The last relay (cors-anywhere) needs a one-time human unlock. When it answers
with its lock page we stop and raise ProxyActivationRequired instead of a
generic NetworkError, so the caller can show a single remediation link.

No timeout is imposed here. Callers set RequestSpec.timeout per call since
tolerance differs between bulk discovery and a single create.
"""

import os
import time
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional
from urllib.parse import quote

import httpx

from .errors import NetworkError, ProxyActivationRequired

logger = logging.getLogger(__name__)

CORS_ANYWHERE_ACTIVATION_URL = "https://cors-anywhere.herokuapp.com/corsdemo"


@dataclass
class RequestSpec:
    """Method, headers and body of one outbound request."""
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    params: Optional[dict[str, Any]] = None
    json: Any = None
    data: Optional[dict[str, Any]] = None
    files: Optional[Any] = None
    content: Optional[bytes] = None
    # Per-attempt timeout in seconds; None means wait indefinitely
    timeout: Optional[float] = None


@dataclass
class ProxyAttempt:
    """Outcome of one provider try. Only used for error aggregation."""
    provider_name: str
    outcome: str


@dataclass
class ProxyProvider:
    """
    A route to the destination.

    `rewrite` turns the target URL into the URL actually requested.
    `headers` are attached only when this provider is used.
    `methods` restricts the HTTP methods the provider can relay (None = all).
    """
    name: str
    rewrite: Callable[[str], str]
    headers: dict[str, str] = field(default_factory=dict)
    methods: Optional[tuple[str, ...]] = None
    activation_marker: Optional[str] = None
    activation_url: Optional[str] = None

    def supports(self, method: str) -> bool:
        return self.methods is None or method.upper() in self.methods

    def requires_activation(self, response: httpx.Response) -> bool:
        if not self.activation_marker or response.status_code != 403:
            return False
        return self.activation_marker in response.text


def _encode(url: str) -> str:
    return quote(url, safe="")


def get_backend_proxy_url() -> str:
    return os.getenv("BUGSNAP_PROXY_URL", "http://localhost:8000/api/proxy")


DIRECT_PROVIDER = ProxyProvider(name="direct", rewrite=lambda url: url)


def default_providers() -> list[ProxyProvider]:
    """
    Build the default provider chain.

    BUGSNAP_PROXY_PROVIDERS (comma-separated names) restricts the chain
    without changing its order.
    """
    backend = get_backend_proxy_url()

    providers = [
        DIRECT_PROVIDER,
        ProxyProvider(
            name="backend",
            rewrite=lambda url: f"{backend}?url={_encode(url)}",
        ),
        ProxyProvider(
            name="corsproxy.io",
            rewrite=lambda url: f"https://corsproxy.io/?{_encode(url)}",
        ),
        ProxyProvider(
            name="codetabs",
            rewrite=lambda url: f"https://api.codetabs.com/v1/proxy?quest={_encode(url)}",
        ),
        ProxyProvider(
            name="allorigins",
            # Timestamp defeats allorigins' response cache
            rewrite=lambda url: f"https://api.allorigins.win/raw?url={_encode(url)}&t={int(time.time() * 1000)}",
            methods=("GET", "HEAD"),
        ),
        ProxyProvider(
            name="thingproxy",
            rewrite=lambda url: f"https://thingproxy.freeboard.io/fetch/{url}",
        ),
        ProxyProvider(
            name="cors-anywhere",
            rewrite=lambda url: f"https://cors-anywhere.herokuapp.com/{url}",
            headers={"X-Requested-With": "XMLHttpRequest"},
            activation_marker="/corsdemo",
            activation_url=CORS_ANYWHERE_ACTIVATION_URL,
        ),
    ]

    allowed = os.getenv("BUGSNAP_PROXY_PROVIDERS")
    if allowed:
        names = {name.strip() for name in allowed.split(",") if name.strip()}
        providers = [p for p in providers if p.name in names]

    return providers


class ProxyTransport:
    """
    Executes requests through the first provider that can reach the target.

    Usage:
        transport = ProxyTransport()
        response = await transport.send(
            "https://api.clickup.com/api/v2/user",
            RequestSpec(headers={"Authorization": token}, timeout=15.0),
        )
    """

    def __init__(
        self,
        providers: Optional[list[ProxyProvider]] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            providers: Ordered provider chain (default: default_providers())
            http_transport: Optional httpx transport, e.g. httpx.MockTransport in tests
        """
        self.providers = providers if providers is not None else default_providers()
        self._http_transport = http_transport

    async def send(self, target_url: str, spec: Optional[RequestSpec] = None) -> httpx.Response:
        """
        Send a request, falling back across providers on network failures.

        Returns:
            The first HTTP response obtained, whatever its status

        Raises:
            ProxyActivationRequired: A relay answered with its unlock page
            NetworkError: Every provider failed at the network level
        """
        spec = spec or RequestSpec()
        method = spec.method.upper()
        url = str(httpx.URL(target_url).copy_merge_params(spec.params)) if spec.params else target_url

        attempts: list[ProxyAttempt] = []

        for provider in self.providers:
            if not provider.supports(method):
                attempts.append(ProxyAttempt(provider.name, f"skipped ({method} not supported)"))
                continue

            # Provider headers never leak into requests sent via another provider
            headers = {**spec.headers, **provider.headers}

            try:
                async with httpx.AsyncClient(timeout=spec.timeout, transport=self._http_transport) as client:
                    response = await client.request(
                        method,
                        provider.rewrite(url),
                        headers=headers,
                        json=spec.json,
                        data=spec.data,
                        files=spec.files,
                        content=spec.content,
                    )
            except httpx.TransportError as e:
                outcome = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__
                attempts.append(ProxyAttempt(provider.name, outcome))
                logger.warning(f"[TRANSPORT] {provider.name} failed for {method} {_host(url)}: {outcome}")
                continue

            if provider.requires_activation(response):
                attempts.append(ProxyAttempt(provider.name, "activation required"))
                logger.warning(f"[TRANSPORT] {provider.name} requires activation at {provider.activation_url}")
                raise ProxyActivationRequired(provider.name, provider.activation_url or "")

            attempts.append(ProxyAttempt(provider.name, f"HTTP {response.status_code}"))
            logger.debug(f"[TRANSPORT] {method} {_host(url)} via {provider.name} -> {response.status_code}")
            return response

        summary = "; ".join(f"{a.provider_name}: {a.outcome}" for a in attempts)
        logger.error(f"[TRANSPORT] All providers failed for {method} {_host(url)}")
        raise NetworkError(
            f"Unable to connect via any proxy. Please check your connection. ({summary})",
            attempts=attempts,
        )


def _host(url: str) -> str:
    """Host part of a URL, for logs that must not carry query-string credentials."""
    try:
        return httpx.URL(url).host or url
    except httpx.InvalidURL:
        return "<invalid url>"


# Singleton instance
_transport: Optional[ProxyTransport] = None


def get_transport() -> ProxyTransport:
    """Get or create the shared ProxyTransport."""
    global _transport
    if _transport is None:
        _transport = ProxyTransport()
    return _transport
