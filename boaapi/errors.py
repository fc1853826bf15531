"""Domain errors raised by the Boa API client and job handles."""


class BoaException(RuntimeError):
    """Base class for client-side Boa API failures."""


class NotLoggedInError(BoaException):
    """Raised when a remote operation is attempted before `login`."""


class DatasetNotFoundError(BoaException, LookupError):
    """Raised when no dataset matches a requested name."""


class AmbiguousDatasetError(DatasetNotFoundError):
    """Raised when more than one dataset matches a requested name."""


class JobRunningError(BoaException):
    """Raised when job output is requested before execution finished."""


class OutputRangeError(BoaException):
    """Raised when an output start offset lies at or past the end of the output."""


class WaitCancelledError(BoaException):
    """Raised by `JobHandle.wait` when its cancellation token is set."""
