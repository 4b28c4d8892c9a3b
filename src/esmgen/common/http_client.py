"""Shared HTTP helpers used by the registry client and the archive fetcher.

Encapsulates request logging and timeout handling so callers only translate
``requests`` exceptions into their own pipeline errors.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from esmgen.constants import Constants
from esmgen.common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

USER_AGENT = "esmgen/0.1"


def _request(
    url: str,
    *,
    context: str,
    stream: bool,
    timeout: Optional[float] = None,
    **kwargs: Any,
) -> requests.Response:
    safe_target = safe_url(url)
    timeout = timeout or Constants.REQUEST_TIMEOUT
    headers = {"User-Agent": USER_AGENT}
    headers.update(kwargs.pop("headers", None) or {})
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action="GET",
                    target=safe_target,
                    context=context,
                    stream=stream or None,
                ),
            )
        try:
            res = requests.get(url, timeout=timeout, stream=stream, headers=headers, **kwargs)
        except requests.Timeout:
            logger.error("%s request timed out after %s seconds", context, timeout)
            raise
        except requests.RequestException as exc:  # includes ConnectionError
            logger.error("%s connection error: %s", context, exc)
            raise
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    outcome="success" if res.ok else "non_2xx",
                    status_code=res.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context,
                ),
            )
        return res


def safe_get(url: str, *, context: str, timeout: Optional[float] = None, **kwargs: Any) -> requests.Response:
    """Perform a GET request with consistent logging.

    Args:
        url: Target URL.
        context: Human-readable source tag for logs (e.g., "registry").
        timeout: Seconds before giving up; defaults to Constants.REQUEST_TIMEOUT.
        **kwargs: Passed through to requests.get.

    Returns:
        requests.Response: The HTTP response object, whatever its status.

    Raises:
        requests.RequestException: The request never produced a response.
    """
    return _request(url, context=context, stream=False, timeout=timeout, **kwargs)


def open_stream(url: str, *, context: str, timeout: Optional[float] = None, **kwargs: Any) -> requests.Response:
    """Start a streamed GET; the caller must close the returned response.

    Raises:
        requests.RequestException: The request never produced a response.
    """
    return _request(url, context=context, stream=True, timeout=timeout, **kwargs)
