"""Python client for the Boa XML-RPC API."""

from .client import BoaClient
from .config import BOA_API_ENDPOINT, BOAC_API_ENDPOINT, BoaClientConfig
from .errors import (
    AmbiguousDatasetError,
    BoaException,
    DatasetNotFoundError,
    JobRunningError,
    NotLoggedInError,
    OutputRangeError,
    WaitCancelledError,
)
from .job import JobHandle
from .models import CompilerStatus, Dataset, ExecutionStatus
from .transport import TransportError
from .utils import admin_filter, format_size, name_filter
from .wire import RpcFault, WireProtocolError

__all__ = [
    "BOA_API_ENDPOINT",
    "BOAC_API_ENDPOINT",
    "AmbiguousDatasetError",
    "BoaClient",
    "BoaClientConfig",
    "BoaException",
    "CompilerStatus",
    "Dataset",
    "DatasetNotFoundError",
    "ExecutionStatus",
    "JobHandle",
    "JobRunningError",
    "NotLoggedInError",
    "OutputRangeError",
    "RpcFault",
    "TransportError",
    "WaitCancelledError",
    "WireProtocolError",
    "admin_filter",
    "format_size",
    "name_filter",
]
