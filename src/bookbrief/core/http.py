"""HTTP helper with retry and exponential backoff for upstream APIs."""

from __future__ import annotations

import asyncio

import httpx
import structlog

log = structlog.get_logger()

RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    retries: int = 2,
    backoff: float = 0.5,
    **kwargs: object,
) -> httpx.Response:
    """Send a request, retrying transport errors and 429/5xx responses.

    Waits ``backoff * 2**attempt`` seconds between attempts. The final
    response is checked with ``raise_for_status`` so callers only ever see
    a successful response or an ``httpx.HTTPError``.
    """
    attempt = 0
    while True:
        try:
            resp = await client.request(method, url, **kwargs)  # type: ignore[arg-type]
        except httpx.TransportError as e:
            if attempt >= retries:
                raise
            log.debug("http_retry", url=url, attempt=attempt + 1, error=str(e))
        else:
            if resp.status_code not in RETRY_STATUSES or attempt >= retries:
                resp.raise_for_status()
                return resp
            log.debug("http_retry", url=url, attempt=attempt + 1, status=resp.status_code)

        await asyncio.sleep(backoff * 2**attempt)
        attempt += 1
