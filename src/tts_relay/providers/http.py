"""
HTTP Provider Base.

Shared plumbing for providers backed by a remote HTTP API:
    - one httpx.Client per provider (connection pooling, redirects)
    - request timeouts derived from the attempt's CancelToken
    - transport failures and HTTP statuses mapped to ErrorKind

Status mapping:
    401, 403            -> API_KEY_INVALID
    400, 413, 422       -> UNSUPPORTED_CONTENT
    any other non-2xx   -> SERVICE_ERROR

Transport mapping:
    httpx.TimeoutException -> TIMEOUT
    httpx.RequestError     -> SERVICE_ERROR

Tests pass an ``httpx.MockTransport`` as ``transport`` to exercise the
wire format without touching the network.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from tts_relay import __version__
from tts_relay.core.errors import ErrorKind, ProviderError
from tts_relay.providers.base import BaseProvider, CancelToken

_STATUS_KINDS = {
    401: ErrorKind.API_KEY_INVALID,
    403: ErrorKind.API_KEY_INVALID,
    400: ErrorKind.UNSUPPORTED_CONTENT,
    413: ErrorKind.UNSUPPORTED_CONTENT,
    422: ErrorKind.UNSUPPORTED_CONTENT,
}


def kind_for_status(status_code: int) -> ErrorKind:
    return _STATUS_KINDS.get(status_code, ErrorKind.SERVICE_ERROR)


class HTTPProvider(BaseProvider):
    """Base class for providers that talk to a remote HTTP API."""

    base_url: str = ""

    def __init__(
        self,
        api_key: str = "",
        base_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.api_key = api_key or ""
        if base_url:
            self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            transport=transport,
            follow_redirects=True,
            headers={"User-Agent": f"tts-relay/{__version__}"},
        )

    def close(self) -> None:
        self._client.close()

    def _budget(self, token: Optional[CancelToken], timeout: Optional[float]) -> float:
        budget = timeout if timeout is not None else self.timeout_s
        if token is not None:
            token.raise_if_cancelled(self.name)
            budget = min(budget, token.remaining(budget))
        return budget

    def _request(
        self,
        method: str,
        url: str,
        token: Optional[CancelToken] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send a request and return the 2xx response.

        Raises:
            ProviderError: on transport failure or a non-2xx status.
        """
        budget = self._budget(token, timeout)
        try:
            response = self._client.request(method, url, timeout=budget, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException:
            raise self._error(f"request timed out after {budget:.1f}s", ErrorKind.TIMEOUT) from None
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise self._error(
                f"upstream returned HTTP {status}: {e.response.reason_phrase}",
                kind_for_status(status),
                status=status,
            ) from None
        except httpx.RequestError as e:
            raise self._error(f"failed to connect: {type(e).__name__}", ErrorKind.SERVICE_ERROR) from None
        return response

    def _probe_request(self, method: str, url: str, **kwargs: Any) -> bool:
        """Probe helper: True iff the endpoint answers with a 2xx status."""
        try:
            self._request(method, url, timeout=self.probe_timeout_s, **kwargs)
        except ProviderError:
            return False
        return True
