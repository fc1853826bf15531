from __future__ import annotations

"""Client-side handle for one remote Boa job.

A `JobHandle` caches the latest known status of a job. The remote job keeps
running independently; call `refresh()` (or `wait()`) to observe changes.
"""

import threading
from typing import TYPE_CHECKING, Any, BinaryIO, Mapping

from .errors import JobRunningError, WaitCancelledError
from .models import CompilerStatus, Dataset, ExecutionStatus, parse_status
from .wire import WireProtocolError

if TYPE_CHECKING:
    from .client import BoaClient

DEFAULT_OUTPUT_SIZE_LIMIT = 64 * 1024
DEFAULT_POLL_INTERVAL = 2.0


def _descriptor_fields(value: Any) -> dict[str, Any]:
    """Validate a job descriptor struct and convert its fields."""
    if not isinstance(value, Mapping):
        raise WireProtocolError(f"expected job struct, got {value!r}")
    try:
        return {
            "id": int(value["id"]),
            "submitted": value.get("submitted"),
            "input": Dataset.from_wire(value["input"]),
            "compiler_status": parse_status(CompilerStatus, value["compiler_status"]),
            "exec_status": parse_status(ExecutionStatus, value["hadoop_status"]),
        }
    except (KeyError, TypeError, ValueError) as exc:
        raise WireProtocolError(f"invalid job struct: {value!r}") from exc


class JobHandle:
    """Proxy for one remote job, bound to the client that produced it."""

    def __init__(
        self,
        client: "BoaClient",
        id: int,
        submitted: Any,
        input: Dataset,
        compiler_status: CompilerStatus,
        exec_status: ExecutionStatus,
        *,
        output_size_limit: int = DEFAULT_OUTPUT_SIZE_LIMIT,
    ) -> None:
        self._client = client
        self._id = id
        self._input = input
        self.submitted = submitted
        self.compiler_status = compiler_status
        self.exec_status = exec_status
        self.output_size_limit = output_size_limit

    @property
    def id(self) -> int:
        return self._id

    @property
    def input(self) -> Dataset:
        return self._input

    @property
    def running(self) -> bool:
        """True while the job is queued, compiling, or executing."""
        return (
            self.compiler_status is CompilerStatus.RUNNING
            or self.exec_status is ExecutionStatus.RUNNING
            or self.compiler_status is CompilerStatus.WAITING
            or (
                self.exec_status is ExecutionStatus.WAITING
                and self.compiler_status is CompilerStatus.FINISHED
            )
        )

    @property
    def succeeded(self) -> bool:
        return (
            self.compiler_status is not CompilerStatus.ERROR
            and self.exec_status is not ExecutionStatus.ERROR
        )

    def refresh(self) -> None:
        """Re-fetch status fields; id and input never change."""
        fields = _descriptor_fields(self._client._job_descriptor(self._id))
        self.submitted = fields["submitted"]
        self.compiler_status = fields["compiler_status"]
        self.exec_status = fields["exec_status"]

    def wait(
        self,
        poll_interval: float | None = None,
        cancel: threading.Event | None = None,
    ) -> bool:
        """Poll until the job stops running; return True if it succeeded.

        Setting `cancel` stops the loop before the next refresh with
        `WaitCancelledError`; an in-flight refresh is never interrupted.
        """
        interval = self._client.poll_interval if poll_interval is None else poll_interval
        token = cancel if cancel is not None else threading.Event()
        while self.running:
            if token.wait(interval):
                raise WaitCancelledError(f"stopped waiting for job {self._id}")
            self.refresh()
        return self.succeeded

    def stop(self) -> None:
        self._client._job_call("job.stop", self._id)

    def resubmit(self) -> None:
        self._client._job_call("job.resubmit", self._id)

    def delete(self) -> None:
        """Delete the remote job. This handle should be discarded afterwards."""
        self._client._job_call("job.delete", self._id)

    @property
    def url(self) -> str:
        return str(self._client._job_call("job.url", self._id))

    @property
    def public_url(self) -> str:
        return str(self._client._job_call("job.publicurl", self._id))

    @property
    def public(self) -> bool:
        return bool(self._client._job_call("job.public", self._id))

    @public.setter
    def public(self, status: bool) -> None:
        self.set_public(status)

    def set_public(self, status: bool) -> None:
        self._client._job_call("job.setpublic", self._id, bool(status))

    @property
    def source(self) -> str:
        return str(self._client._job_call("job.source", self._id))

    @property
    def compiler_errors(self) -> str | None:
        """Compiler messages, or None when compilation did not fail."""
        if self.compiler_status is not CompilerStatus.ERROR:
            return None
        errors = self._client._job_call("job.compilerErrors", self._id)
        if isinstance(errors, (list, tuple)):
            return "\n".join(str(entry) for entry in errors)
        return str(errors)

    @property
    def output_size(self) -> int:
        return int(self._client._job_call("job.outputsize", self._id))

    def _require_finished(self) -> None:
        if self.exec_status is not ExecutionStatus.FINISHED:
            raise JobRunningError(
                f"job {self._id} has not finished executing "
                f"(execution status: {self.exec_status.value})"
            )

    def output(self) -> str:
        """Return at most `output_size_limit` bytes of output."""
        self._require_finished()
        return self._client._job_output(self._id, length=self.output_size_limit)

    def output_full(self) -> str:
        self._require_finished()
        return self._client._job_output(self._id)

    def output_range(self, start: int, length: int | None = None) -> str:
        self._require_finished()
        return self._client._job_output(self._id, start=start, length=length)

    def write_output(self, sink: BinaryIO) -> int:
        """Stream the complete output into a binary sink."""
        self._require_finished()
        return self._client._job_write_output(self._id, sink)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self._id,
            "submitted": self.submitted,
            "input": self._input.to_wire(),
            "compiler_status": self.compiler_status.value,
            "exec_status": self.exec_status.value,
            "running": self.running,
        }

    def __repr__(self) -> str:
        return (
            f"JobHandle(id={self._id!r}, submitted={self.submitted!r}, "
            f"input={self._input!r}, compiler_status={self.compiler_status.value!r}, "
            f"exec_status={self.exec_status.value!r})"
        )


def parse_job(client: "BoaClient", value: Any) -> JobHandle:
    """Wrap a job descriptor struct into a handle bound to `client`."""
    fields = _descriptor_fields(value)
    return JobHandle(client, output_size_limit=client.output_size_limit, **fields)
