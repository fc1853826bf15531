from __future__ import annotations

"""HTTPS transport for Boa XML-RPC calls.

Every call re-applies the client's `SessionState`, absorbs the response
headers before the body is decoded, and retries network-level failures with
a linear backoff. Calls on one transport are serialized so that header
application and absorption never interleave between two requests.
"""

import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Sequence, TypeVar
from urllib.parse import urlsplit

import httpx

from .errors import OutputRangeError
from .session import SessionState
from .wire import WireProtocolError, decode_response, encode_call

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 5
DEFAULT_RETRY_BACKOFF = 0.1
DEFAULT_TIMEOUT = 30.0

# Routing/gateway failures are treated like connection failures.
_RETRYABLE_STATUS = {404, 502, 503, 504}
_CONTENT_RANGE_RE = re.compile(r"^\s*bytes\s+(\d+)-(\d+)/(\d+|\*)\s*$")


class TransportError(ConnectionError):
    """Raised when a request still fails after every retry attempt."""

    def __init__(self, message: str, *, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class _RoutingError(Exception):
    """Retryable HTTP status received instead of an XML-RPC response."""

    def __init__(self, status_code: int, url: str) -> None:
        if status_code == 404:
            message = f'the specified path "{urlsplit(url).path}" in the given URL was not found'
        else:
            message = f"HTTP {status_code} from {urlsplit(url).netloc}"
        super().__init__(message)
        self.status_code = status_code


@dataclass
class FetchResult:
    """Bytes fetched from an output URL plus the size the server reported."""

    content: bytes
    total_size: int | None = None
    start: int = 0

    @property
    def truncated(self) -> bool:
        if self.total_size is None:
            return False
        return self.total_size > self.start + len(self.content)


def _parse_content_range(value: str | None) -> int | None:
    if not value:
        return None
    match = _CONTENT_RANGE_RE.match(value)
    if not match or match.group(3) == "*":
        return None
    return int(match.group(3))


def require_https(url: str) -> str:
    if urlsplit(url).scheme.lower() != "https":
        raise ValueError(f"URL protocol must be HTTPS: {url}")
    return url


class RpcTransport:
    """Synchronous XML-RPC over HTTPS with session headers and retry."""

    def __init__(
        self,
        endpoint: str,
        *,
        session: SessionState | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF,
        timeout: float = DEFAULT_TIMEOUT,
        verify: bool = True,
        user_agent: str = "boaapi",
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.endpoint = require_https(endpoint)
        self.session = session if session is not None else SessionState()
        self.max_retries = max(0, int(max_retries))
        self.retry_backoff = retry_backoff
        self.user_agent = user_agent

        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(timeout=timeout, verify=verify)
        self._sleep = sleep
        self._lock = threading.Lock()

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "RpcTransport":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def call(self, method: str, params: Sequence[Any] = ()) -> Any:
        """Invoke `method` remotely and return its decoded result.

        Raises `RpcFault` for application faults (never retried),
        `WireProtocolError` for malformed bodies (never retried) and
        `TransportError` once network retries are exhausted.
        """
        body = encode_call(method, params)
        with self._lock:
            return self._with_retries(method, lambda: self._post(method, body))

    def fetch(self, url: str, *, start: int = 0, length: int | None = None) -> FetchResult:
        """GET an output URL, optionally as a byte range.

        Unranged requests negotiate gzip. A non-zero `start` or a `length`
        switches to an explicit `Range` request with identity encoding. Session
        cookies and the CSRF token are only sent when `url` shares the
        endpoint's origin.
        """
        if start < 0:
            raise ValueError("start cannot be negative")
        if length is not None and length < 1:
            raise ValueError("length must be positive")

        headers = {"User-Agent": self.user_agent}
        if start > 0 or length is not None:
            end = "" if length is None else str(start + length - 1)
            headers["Range"] = f"bytes={start}-{end}"
            headers["Accept-Encoding"] = "identity"
        else:
            headers["Accept-Encoding"] = "gzip"

        with self._lock:
            return self._with_retries(
                "GET output", lambda: self._get(url, headers, start, length)
            )

    def stream(self, url: str, sink: BinaryIO, *, chunk_size: int = 65536) -> int:
        """Write the full body of an output URL to `sink`, returning bytes written."""
        headers = {"User-Agent": self.user_agent, "Accept-Encoding": "gzip"}
        with self._lock:
            return self._with_retries(
                "GET output", lambda: self._get_into(url, headers, sink, chunk_size)
            )

    def _with_retries(self, label: str, attempt: Callable[[], T]) -> T:
        retries = 0
        while True:
            try:
                return attempt()
            except (httpx.TransportError, _RoutingError) as exc:
                if retries >= self.max_retries:
                    raise TransportError(
                        f"{label} failed after {retries + 1} attempts: {exc}",
                        attempts=retries + 1,
                    ) from exc
                retries += 1
                logger.warning("failed(%s), retrying(%d): %s", label, retries, exc)
                self._sleep(retries * self.retry_backoff)

    def _request_headers(self, extra: dict[str, str], url: str | None = None) -> dict[str, str]:
        """Build request headers; session state only travels to the API origin."""
        headers = dict(extra)
        if url is None or self._same_origin(url):
            self.session.apply(headers)
        return headers

    def _same_origin(self, url: str) -> bool:
        target = urlsplit(url)
        endpoint = urlsplit(self.endpoint)
        return (target.scheme.lower(), target.netloc.lower()) == (
            endpoint.scheme.lower(),
            endpoint.netloc.lower(),
        )

    def _drop_client_cookies(self) -> None:
        # httpx keeps its own jar; SessionState alone decides what is sent.
        self._http.cookies.clear()

    def _post(self, method: str, body: bytes) -> Any:
        headers = self._request_headers(
            {
                "User-Agent": self.user_agent,
                "Content-Type": "text/xml",
                "Accept": "text/xml",
                "Accept-Charset": "UTF-8",
            }
        )
        logger.debug("POST %s (%d bytes)", method, len(body))
        with self._http.stream("POST", self.endpoint, content=body, headers=headers) as response:
            self._drop_client_cookies()
            if response.status_code in _RETRYABLE_STATUS:
                raise _RoutingError(response.status_code, self.endpoint)
            self.session.absorb(response.headers)
            try:
                return decode_response(response.iter_bytes())
            except httpx.DecodingError as exc:
                raise WireProtocolError(
                    f"cannot decode {response.headers.get('content-encoding')} "
                    f"response to {method}: {exc}"
                ) from exc
            except WireProtocolError as exc:
                if response.is_success:
                    raise
                raise WireProtocolError(
                    f"HTTP {response.status_code} response to {method} is not XML-RPC: {exc}"
                ) from exc

    def _check_output_status(self, response: httpx.Response, url: str, start: int) -> None:
        if response.status_code == 416:
            raise OutputRangeError(f"output start offset {start} is past the end of the output")
        if response.status_code in _RETRYABLE_STATUS:
            raise _RoutingError(response.status_code, url)
        if not response.is_success:
            raise TransportError(f"HTTP {response.status_code} while fetching output")

    def _get(
        self, url: str, extra: dict[str, str], start: int, length: int | None
    ) -> FetchResult:
        headers = self._request_headers(extra, url)
        with self._http.stream("GET", url, headers=headers) as response:
            self._drop_client_cookies()
            # A range starting at 0 is only unsatisfiable for an empty output.
            if response.status_code == 416 and start == 0:
                return FetchResult(content=b"", total_size=0)
            self._check_output_status(response, url, start)
            try:
                content = response.read()
            except httpx.DecodingError as exc:
                raise WireProtocolError(f"cannot decode output body: {exc}") from exc
            if response.status_code == 206:
                total = _parse_content_range(response.headers.get("content-range"))
                return FetchResult(content=content, total_size=total, start=start)

        # The server ignored the Range header and sent everything.
        total = len(content)
        if start > 0 and start >= total:
            raise OutputRangeError(f"output start offset {start} is past the end of the output")
        stop = None if length is None else start + length
        return FetchResult(content=content[start:stop], total_size=total, start=start)

    def _get_into(
        self, url: str, extra: dict[str, str], sink: BinaryIO, chunk_size: int
    ) -> int:
        headers = self._request_headers(extra, url)
        written = 0
        with self._http.stream("GET", url, headers=headers) as response:
            self._drop_client_cookies()
            if response.status_code == 416:
                return 0
            self._check_output_status(response, url, 0)
            try:
                for chunk in response.iter_bytes(chunk_size):
                    sink.write(chunk)
                    written += len(chunk)
            except httpx.DecodingError as exc:
                raise WireProtocolError(f"cannot decode output body: {exc}") from exc
            except httpx.TransportError as exc:
                if written == 0:
                    raise
                # Bytes already reached the sink; a retry would duplicate them.
                raise TransportError(
                    f"output stream interrupted after {written} bytes: {exc}"
                ) from exc
        return written
