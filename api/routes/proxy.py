"""
Relay Proxy Routes

Forwards a request to a third-party API on behalf of a browser client that
cannot call it directly (CORS). This is the "backend" provider in the
transport's fallback chain.

Endpoints:
- ANY /api/proxy?url=<encoded target> - Forward method, headers and body
"""

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from integrations.credentials import is_http_url

logger = logging.getLogger(__name__)

router = APIRouter()

PROXY_TIMEOUT_SECONDS = 60.0

# Never forwarded upstream
HOP_BY_HOP_HEADERS = {
    "host",
    "connection",
    "content-length",
    "origin",
    "referer",
    "content-encoding",
    "transfer-encoding",
    "accept-encoding",
}

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "*",
}


def get_upstream_transport() -> Optional[httpx.AsyncBaseTransport]:
    """httpx transport for upstream calls; None uses the network. Overridden in tests."""
    return None


@router.options("")
async def preflight() -> Response:
    return Response(status_code=204, headers=CORS_HEADERS)


@router.api_route("", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"])
async def relay(
    request: Request,
    url: Optional[str] = Query(None),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_upstream_transport),
) -> Response:
    """
    Forward the incoming request to `url` and return the upstream response.

    The upstream status is passed through unchanged, including 4xx/5xx.
    """
    if not url:
        raise HTTPException(status_code=400, detail='Missing "url" parameter')
    if not is_http_url(url):
        raise HTTPException(status_code=400, detail="Only http(s) URLs can be proxied")

    headers = {k: v for k, v in request.headers.items() if k.lower() not in HOP_BY_HOP_HEADERS}
    body = await request.body()

    logger.info(f"[PROXY] {request.method} {httpx.URL(url).host}")

    try:
        async with httpx.AsyncClient(
            timeout=PROXY_TIMEOUT_SECONDS, follow_redirects=True, transport=transport
        ) as client:
            upstream = await client.request(
                request.method,
                url,
                headers=headers,
                content=body or None,
            )
    except httpx.HTTPError as e:
        logger.error(f"[PROXY] Upstream request failed: {e}")
        return JSONResponse(
            status_code=502,
            content={"error": "Proxy request failed", "message": str(e)},
            headers=CORS_HEADERS,
        )

    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type"),
        headers=CORS_HEADERS,
    )
