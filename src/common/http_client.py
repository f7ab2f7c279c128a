"""Shared HTTP helpers used by repository providers and the download pipeline.

Encapsulates timeout, retry and error handling so providers avoid
duplicating try/except blocks. ``robust_get`` and ``get_json`` never raise
for transport problems and report a status code of 0 instead.
``fetch_json`` raises :class:`HttpFetchError` so providers can log the cause,
and ``stream_get`` lets requests exceptions propagate to the download retry
loop.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import requests

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

Timeout = Tuple[float, float]


def default_timeout() -> Timeout:
    """Return the (connect, read) timeout in seconds from built-in defaults."""
    return (
        Constants.HTTP_CONNECT_TIMEOUT_MS / 1000.0,
        Constants.HTTP_READ_TIMEOUT_MS / 1000.0,
    )


def _headers(extra: Optional[Dict[str, str]]) -> Dict[str, str]:
    headers = {"User-Agent": Constants.USER_AGENT}
    if extra:
        headers.update(extra)
    return headers


def robust_get(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[Timeout] = None,
    attempts: int = Constants.HTTP_RETRY_MAX,
    delay: float = Constants.HTTP_RETRY_BASE_DELAY_SEC,
) -> Tuple[int, Dict[str, str], str]:
    """Perform GET with a bounded retry loop and a fixed delay between attempts.

    Retries on transport exceptions, 5xx responses and empty bodies. Any
    other response is returned as-is on the first attempt.

    Returns:
        Tuple of (status_code, headers_dict, text). status_code is 0 when no
        response was ever received.
    """
    safe_target = safe_url(url)
    last_status, last_headers, last_error = 0, {}, ""

    for attempt in range(max(1, attempts)):
        if attempt:
            time.sleep(delay)
        with Timer() as t:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP request",
                    extra=extra_context(
                        event="http_request",
                        component="http_client",
                        action="GET",
                        target=safe_target,
                        attempt=attempt + 1,
                    ),
                )
            try:
                response = requests.get(
                    url,
                    headers=_headers(headers),
                    timeout=timeout or default_timeout(),
                )
            except requests.RequestException as exc:  # includes Timeout and ConnectionError
                last_error = str(exc)
                logger.debug("GET %s failed on attempt %d: %s", safe_target, attempt + 1, exc)
                continue

            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP response",
                    extra=extra_context(
                        event="http_response",
                        component="http_client",
                        action="GET",
                        status_code=response.status_code,
                        duration_ms=t.duration_ms(),
                        target=safe_target,
                    ),
                )

            last_status, last_headers = response.status_code, dict(response.headers)
            if response.status_code >= 500:
                last_error = f"HTTP {response.status_code}"
                continue
            if 200 <= response.status_code < 300 and not response.text.strip():
                last_error = "empty body"
                continue
            return response.status_code, last_headers, response.text

    return last_status, last_headers, f"Request failed after {attempts} attempts: {last_error}"


def get_json(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[Timeout] = None,
    attempts: int = Constants.HTTP_RETRY_MAX,
    delay: float = Constants.HTTP_RETRY_BASE_DELAY_SEC,
) -> Tuple[int, Dict[str, str], Optional[Any]]:
    """Perform GET request and parse a JSON response.

    Args:
        url: Target URL
        headers: Optional request headers
        timeout: (connect, read) timeout in seconds
        attempts: Maximum number of attempts
        delay: Seconds to wait between attempts

    Returns:
        Tuple of (status_code, headers_dict, parsed_json_or_none)
    """
    status_code, response_headers, text = robust_get(
        url, headers=headers, timeout=timeout, attempts=attempts, delay=delay
    )
    if status_code != 200 or not text:
        return status_code, response_headers, None
    try:
        return status_code, response_headers, json.loads(text)
    except json.JSONDecodeError:
        logger.debug("JSON decode error for %s", safe_url(url))
        return status_code, response_headers, None


class HttpFetchError(Exception):
    """Raised by :func:`fetch_json` when no usable response was received."""


def fetch_json(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[Timeout] = None,
    attempts: int = Constants.HTTP_RETRY_MAX,
    delay: float = Constants.HTTP_RETRY_BASE_DELAY_SEC,
) -> Tuple[int, Optional[Any]]:
    """GET and parse JSON, raising on transport failures and unparsable bodies.

    Client errors (4xx) are not failures here: they come back as
    ``(status_code, None)`` so callers can treat them as "not found".

    Raises:
        HttpFetchError: no response, a 5xx after all attempts, or a 200 body
            that is not valid JSON. The message carries the underlying error.
    """
    status_code, _, text = robust_get(
        url, headers=headers, timeout=timeout, attempts=attempts, delay=delay
    )
    if status_code == 0 or status_code >= 500:
        raise HttpFetchError(text)
    if status_code != 200:
        return status_code, None
    try:
        return status_code, json.loads(text)
    except json.JSONDecodeError as exc:
        raise HttpFetchError(f"invalid JSON from {safe_url(url)}: {exc}") from exc


def stream_get(url: str, *, timeout: Optional[Timeout] = None) -> requests.Response:
    """Open a streaming GET for large downloads.

    The caller owns the response and must close it (it is a context manager).
    Transport errors propagate as ``requests.RequestException`` so the
    download pipeline can count them as failed attempts.
    """
    if is_debug_enabled(logger):
        logger.debug(
            "HTTP stream request",
            extra=extra_context(
                event="http_request",
                component="http_client",
                action="GET",
                target=safe_url(url),
                stream=True,
            ),
        )
    return requests.get(
        url,
        headers=_headers(None),
        timeout=timeout or default_timeout(),
        stream=True,
    )
