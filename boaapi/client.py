from __future__ import annotations

"""High-level Boa API client.

`BoaClient` owns one `SessionState` and one `RpcTransport`. Each public
operation is a single remote call whose decoded result is mapped onto the
domain types in `models` and `job`.
"""

import logging
from importlib.metadata import PackageNotFoundError, version as package_version
from typing import Any, BinaryIO, Callable, List, Mapping

import httpx

from .auth import BoaCredentials
from .config import DEFAULT_CONFIG_PATH, BoaClientConfig, load_boa_client_config
from .errors import AmbiguousDatasetError, BoaException, DatasetNotFoundError, NotLoggedInError
from .job import JobHandle, parse_job
from .models import RESERVED_DATASET_ID, Dataset
from .session import SessionState
from .transport import RpcTransport, TransportError
from .utils import DatasetFilters, apply_filters, format_size
from .wire import RpcFault, WireProtocolError

logger = logging.getLogger(__name__)


def _resolve_client_version() -> str:
    """Resolve installed package version for the User-Agent header."""
    try:
        return package_version("boa-api")
    except PackageNotFoundError:
        return "0.0.0"


class BoaClient:
    """Client for the Boa XML-RPC API."""

    def __init__(
        self,
        endpoint: str | None = None,
        *,
        config_path: str | None = DEFAULT_CONFIG_PATH,
        max_retries: int | None = None,
        retry_backoff: float | None = None,
        timeout: float | None = None,
        poll_interval: float | None = None,
        output_size_limit: int | None = None,
        verify_ssl: bool | None = None,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        """Create a client; explicit arguments override config file values.

        `http_client` and `sleep` exist for embedding and tests: the former
        replaces the pooled HTTPS client, the latter the retry backoff wait.
        """
        self.config_path = config_path
        cfg = self._load_config(
            endpoint=endpoint,
            max_retries=max_retries,
            retry_backoff=retry_backoff,
            timeout=timeout,
            poll_interval=poll_interval,
            output_size_limit=output_size_limit,
            verify_ssl=verify_ssl,
        )
        self.endpoint = cfg.endpoint
        self.poll_interval = cfg.poll_interval
        self.output_size_limit = cfg.output_size_limit
        self.client_version = _resolve_client_version()

        self._session = SessionState()
        transport_options: dict[str, Any] = {}
        if sleep is not None:
            transport_options["sleep"] = sleep
        self._transport = RpcTransport(
            cfg.endpoint,
            session=self._session,
            max_retries=cfg.max_retries,
            retry_backoff=cfg.retry_backoff,
            timeout=cfg.timeout,
            verify=cfg.verify_ssl,
            user_agent=f"boaapi/{self.client_version}",
            http_client=http_client,
            **transport_options,
        )
        self._logged_in = False

    def _load_config(self, **overrides: Any) -> BoaClientConfig:
        """Load and apply runtime config overrides."""
        cfg = load_boa_client_config(self.config_path)
        for key, value in overrides.items():
            if value is not None:
                setattr(cfg, key, value)
        return cfg

    @property
    def session(self) -> SessionState:
        return self._session

    @property
    def logged_in(self) -> bool:
        return self._logged_in

    def __enter__(self) -> "BoaClient":
        return self

    def __exit__(self, exc_type: type | None, exc: BaseException | None, tb: object) -> None:
        if exc_type is None:
            self.close()
            return
        # Keep the in-flight exception; a failed logout is only logged.
        try:
            self.close()
        except (BoaException, RpcFault, TransportError, WireProtocolError) as logout_exc:
            logger.warning("logout failed while handling %s: %s", exc_type.__name__, logout_exc)

    def _ensure_logged_in(self) -> None:
        if not self._logged_in:
            raise NotLoggedInError("user not logged in")

    def _call(self, method: str, *params: Any) -> Any:
        self._ensure_logged_in()
        return self._transport.call(method, params)

    def login(self, username: str, password: str) -> None:
        """Log in and keep the anti-forgery token for later calls.

        Errors are re-raised with the password scrubbed from their text.
        """
        credentials = BoaCredentials(username=username, password=password)
        try:
            result = self._transport.call("user.login", [username, password])
        except RpcFault as exc:
            raise RpcFault(exc.code, credentials.redact(exc.message)) from None
        except TransportError as exc:
            raise TransportError(credentials.redact(str(exc)), attempts=exc.attempts) from None
        except WireProtocolError as exc:
            raise WireProtocolError(credentials.redact(str(exc))) from None

        if isinstance(result, Mapping) and result.get("token"):
            self._session.set_token(str(result["token"]))
        self._logged_in = True
        logger.debug("logged in as %s", username)

    def logout(self) -> None:
        """Invalidate the session server-side."""
        self._call("user.logout")
        self._logged_in = False

    def close(self) -> None:
        """Log out if needed and release the HTTP connection pool."""
        try:
            if self._logged_in:
                self.logout()
        finally:
            self._transport.close()

    def datasets(self, filters: DatasetFilters = None) -> List[Dataset]:
        """List the datasets available to the user.

        The reserved dataset (id 1) is always dropped. `filters` may be a
        single predicate or a sequence applied left to right.
        """
        raw = self._call("boa.datasets")
        if not isinstance(raw, list):
            raise WireProtocolError(f"expected dataset list, got {type(raw).__name__}")
        datasets = [Dataset.from_wire(entry) for entry in raw]
        datasets = [dataset for dataset in datasets if dataset.id != RESERVED_DATASET_ID]
        return apply_filters(datasets, filters)

    def dataset_names(self, filters: DatasetFilters = None) -> List[str]:
        return [dataset.name for dataset in self.datasets(filters)]

    def get_dataset(self, name: str) -> Dataset:
        """Find exactly one dataset by name, ignoring the admin prefix."""
        matches = [dataset for dataset in self.datasets() if dataset.matches(name)]
        if not matches:
            raise DatasetNotFoundError(f"no dataset named {name!r}")
        if len(matches) > 1:
            names = ", ".join(repr(dataset.name) for dataset in matches)
            raise AmbiguousDatasetError(f"dataset name {name!r} is ambiguous: {names}")
        return matches[0]

    def job_count(self, pub_only: bool = False) -> int:
        return int(self._call("boa.count", bool(pub_only)))

    def query(self, query: str, dataset: Dataset | str | None = None) -> JobHandle:
        """Submit a query; defaults to the first available dataset."""
        if dataset is None:
            available = self.datasets()
            if not available:
                raise DatasetNotFoundError("no datasets are available")
            dataset = available[0]
        elif isinstance(dataset, str):
            dataset = self.get_dataset(dataset)
        return parse_job(self, self._call("boa.submit", query, dataset.id))

    def get_job(self, job_id: int) -> JobHandle:
        return parse_job(self, self._job_descriptor(job_id))

    def job_list(self, pub_only: bool = False, offset: int = 0, length: int = 1000) -> List[JobHandle]:
        raw = self._call("boa.jobs", bool(pub_only), int(offset), int(length))
        if not isinstance(raw, list):
            raise WireProtocolError(f"expected job list, got {type(raw).__name__}")
        return [parse_job(self, entry) for entry in raw]

    def last_job(self) -> JobHandle:
        jobs = self.job_list(False, 0, 1)
        if not jobs:
            raise BoaException("no jobs have been submitted")
        return jobs[0]

    # Job-scoped primitives, reached through JobHandle only.

    def _job_descriptor(self, job_id: int) -> Any:
        return self._call("boa.job", int(job_id))

    def _job_call(self, method: str, job_id: int, *extra: Any) -> Any:
        return self._call(method, int(job_id), *extra)

    def _job_output(self, job_id: int, start: int = 0, length: int | None = None) -> str:
        url = self._job_call("job.output", job_id)
        if not url:
            return ""
        result = self._transport.fetch(str(url), start=start, length=length)
        text = result.content.decode("utf-8", errors="replace")
        if length is None:
            return text

        if result.total_size is None:
            result.total_size = int(self._job_call("job.outputsize", job_id))
        if result.truncated:
            text += "\n...\n[output truncated at %s of %s]\n" % (
                format_size(length),
                format_size(result.total_size),
            )
        return text

    def _job_write_output(self, job_id: int, sink: BinaryIO) -> int:
        url = self._job_call("job.output", job_id)
        if not url:
            return 0
        return self._transport.stream(str(url), sink)
