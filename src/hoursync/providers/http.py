# src/hoursync/providers/http.py

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import ProviderError, ProviderTimeout, RecordNotFound

logger = logging.getLogger(__name__)

_TIMEOUT_STATUSES = {408, 504}
_TIMEOUT_CODES = {"request_timeout"}
_NOT_FOUND_CODES = {"object_not_found"}


def _error_body(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def decode_response(resp: httpx.Response, *, provider: str) -> dict[str, Any]:
    """
    Map an HTTP response to a JSON object or a typed ProviderError.

    - 408/504 or code=request_timeout -> ProviderTimeout (retried by RetryPolicy)
    - 404 or code=object_not_found    -> RecordNotFound
    - anything else non-2xx           -> ProviderError
    """
    if resp.is_success:
        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(f"{provider}: response is not JSON", status=resp.status_code) from e
        if not isinstance(data, dict):
            raise ProviderError(f"{provider}: expected a JSON object", status=resp.status_code)
        return data

    body = _error_body(resp)
    code = body.get("code") if isinstance(body.get("code"), str) else None
    message = str(body.get("message") or body.get("error_description") or body.get("error") or resp.reason_phrase)
    text = f"{provider}: HTTP {resp.status_code} {code or ''} {message}".strip()

    if resp.status_code in _TIMEOUT_STATUSES or code in _TIMEOUT_CODES:
        raise ProviderTimeout(text, status=resp.status_code, code=code)
    if resp.status_code == 404 or code in _NOT_FOUND_CODES:
        raise RecordNotFound(text, status=resp.status_code, code=code)
    raise ProviderError(text, status=resp.status_code, code=code)


async def send(client: httpx.AsyncClient, request: httpx.Request, *, provider: str) -> dict[str, Any]:
    """Send one request; transport timeouts become ProviderTimeout."""
    try:
        resp = await client.send(request)
    except httpx.TimeoutException as e:
        raise ProviderTimeout(f"{provider}: {request.method} {request.url.path} timed out") from e
    except httpx.TransportError as e:
        raise ProviderError(f"{provider}: {request.method} {request.url.path} failed: {e!r}") from e
    return decode_response(resp, provider=provider)
