from __future__ import annotations

import gzip
import re
from typing import Any, Callable, Iterator

import httpx
import pytest

from boaapi.client import BoaClient
from boaapi.wire import RpcFault, decode_call, encode_fault, encode_response

ENDPOINT = "https://boa.example.org/boa/?q=boa/api"
OUTPUT_URL = "https://boa.example.org/files/output-42.txt"

_RANGE_RE = re.compile(r"^bytes=(\d+)-(\d*)$")

DEFAULT_DATASETS = [
    {"id": 1, "name": "sys"},
    {"id": 2, "name": "2017"},
    {"id": 3, "name": "2018"},
]


def job_struct(
    job_id: int = 42,
    compiler_status: str = "Finished",
    hadoop_status: str = "Finished",
    dataset: dict[str, Any] | None = None,
    submitted: str = "2022-03-01 10:00:00",
) -> dict[str, Any]:
    return {
        "id": job_id,
        "submitted": submitted,
        "input": dict(dataset or {"id": 2, "name": "2017"}),
        "compiler_status": compiler_status,
        "hadoop_status": hadoop_status,
    }


class FakeBoaServer:
    """In-process Boa API used as an httpx mock transport handler."""

    def __init__(self) -> None:
        self.handlers: dict[str, Callable[..., Any]] = {}
        self.calls: list[tuple[str, list[Any]]] = []
        self.requests: list[httpx.Request] = []
        self.outputs: dict[str, bytes] = {}
        self.pending_cookies: list[str] = []
        self.datasets: list[dict[str, Any]] = [dict(entry) for entry in DEFAULT_DATASETS]
        self.jobs: dict[int, dict[str, Any]] = {}
        self.partial_without_total = False

        self.on("user.login", lambda user, password: {"token": "csrf-123", "uid": "7"})
        self.on("user.logout", lambda: True)
        self.on("boa.datasets", lambda: self.datasets)
        self.on("boa.job", lambda job_id: self.jobs[job_id])
        self.on("job.output", lambda job_id: OUTPUT_URL)

    def on(self, method: str, handler: Callable[..., Any]) -> None:
        self.handlers[method] = handler

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET":
            return self._serve_output(request)

        method, params = decode_call(request.content)
        self.calls.append((method, params))
        handler = self.handlers.get(method)
        if handler is None:
            body = encode_fault(-32601, f"server error. requested method {method} not found")
        else:
            try:
                body = encode_response(handler(*params))
            except RpcFault as exc:
                body = encode_fault(exc.code, exc.message)

        headers = [("Content-Type", "text/xml")]
        headers.extend(("Set-Cookie", cookie) for cookie in self.pending_cookies)
        self.pending_cookies = []
        return httpx.Response(200, headers=headers, content=body)

    def _serve_output(self, request: httpx.Request) -> httpx.Response:
        data = self.outputs.get(str(request.url))
        if data is None:
            return httpx.Response(404)

        range_header = request.headers.get("range")
        if range_header:
            match = _RANGE_RE.match(range_header)
            assert match, range_header
            start = int(match.group(1))
            end = int(match.group(2)) if match.group(2) else len(data) - 1
            if start >= len(data):
                return httpx.Response(416, headers={"Content-Range": f"bytes */{len(data)}"})
            end = min(end, len(data) - 1)
            total = "*" if self.partial_without_total else len(data)
            return httpx.Response(
                206,
                headers={"Content-Range": f"bytes {start}-{end}/{total}"},
                content=data[start : end + 1],
            )

        if "gzip" in request.headers.get("accept-encoding", ""):
            return httpx.Response(
                200, headers={"Content-Encoding": "gzip"}, content=gzip.compress(data)
            )
        return httpx.Response(200, content=data)


@pytest.fixture
def server() -> FakeBoaServer:
    return FakeBoaServer()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def anonymous_client(server: FakeBoaServer, sleeps: list[float]) -> Iterator[BoaClient]:
    http_client = httpx.Client(transport=httpx.MockTransport(server))
    client = BoaClient(
        ENDPOINT,
        config_path=None,
        http_client=http_client,
        sleep=sleeps.append,
        poll_interval=0.0,
    )
    yield client
    http_client.close()


@pytest.fixture
def client(anonymous_client: BoaClient) -> BoaClient:
    anonymous_client.login("alice", "s3cret-pw")
    return anonymous_client
