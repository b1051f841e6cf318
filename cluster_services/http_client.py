"""Outbound probe client for cluster services.

Issues single read-only requests with an explicit timeout and reports
status, headers, body, and latency.  Any HTTP status (including 4xx/5xx)
is a result, not an error; only transport failures raise
:class:`~cluster_services.errors.HttpError` with the ``0`` sentinel code.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Mapping, Optional, TypedDict

import httpx

from cluster_services.config import DEFAULT_TIMEOUT_MS
from cluster_services.errors import HttpError

logger = logging.getLogger(__name__)

SENSITIVE_HEADERS = ("authorization", "cookie", "set-cookie", "x-api-key")
REDACTED = "[REDACTED]"


class ProbeResult(TypedDict, total=False):
    statusCode: int
    headers: Dict[str, str]
    body: Any
    responseTime: int


def sanitize_headers(headers: httpx.Headers) -> Dict[str, str]:
    sanitized: Dict[str, str] = {}
    for key in headers.keys():
        if any(sensitive in key.lower() for sensitive in SENSITIVE_HEADERS):
            sanitized[key] = REDACTED
        else:
            sanitized[key] = ", ".join(headers.get_list(key))
    return sanitized


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            pass
    return response.text


class HttpClient:
    """Thin async probe client over a shared :class:`httpx.AsyncClient`.

    Redirects are not followed: a redirect target has not passed the URL
    guard, so the 3xx response itself is returned to the caller.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                follow_redirects=False,
            )
        return self._client

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> ProbeResult:
        method = method.upper()
        start = time.perf_counter()
        try:
            response = await self._get_client().request(
                method,
                url,
                headers=dict(headers or {}),
                timeout=timeout_ms / 1000,
            )
        except httpx.ConnectError as exc:
            logger.debug("%s %s refused: %s", method, url, exc)
            raise HttpError("Connection refused - service may be down", 0) from exc
        except httpx.TimeoutException as exc:
            logger.debug("%s %s timed out after %dms", method, url, timeout_ms)
            raise HttpError("Request timeout", 0) from exc
        except httpx.HTTPError as exc:
            raise HttpError(f"HTTP request failed: {exc}", 0) from exc

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        result: ProbeResult = {
            "statusCode": response.status_code,
            "headers": sanitize_headers(response.headers),
            "responseTime": elapsed_ms,
        }
        if method == "GET":
            result["body"] = _decode_body(response)
        return result

    async def get(self, url: str, headers=None, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> ProbeResult:
        return await self.request("GET", url, headers=headers, timeout_ms=timeout_ms)

    async def head(self, url: str, headers=None, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> ProbeResult:
        return await self.request("HEAD", url, headers=headers, timeout_ms=timeout_ms)

    async def options(self, url: str, headers=None, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> ProbeResult:
        return await self.request("OPTIONS", url, headers=headers, timeout_ms=timeout_ms)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
