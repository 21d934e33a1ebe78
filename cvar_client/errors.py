from typing import Optional


class OptimizerClientError(Exception):
    """Base class for every failure a run can end with."""


class PreconditionError(OptimizerClientError):
    """Raised before any network call when a required input is missing."""


class DatasetError(OptimizerClientError):
    """Raised when a dataset cannot be read or previewed."""


class TransportError(OptimizerClientError):
    """Raised when the optimizer service cannot be reached at all."""


class ApiResponseError(OptimizerClientError):
    """Raised on a non-success HTTP response; keeps status and body verbatim."""

    def __init__(self, status_code: int, body: str, message: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message or f"HTTP {status_code}: {body}")


class SubmissionError(ApiResponseError):
    pass


class StatusQueryError(ApiResponseError):
    pass


class FetchError(ApiResponseError):
    pass


class RunError(OptimizerClientError):
    """The service reported the run as failed."""


class PollTimeoutError(OptimizerClientError):
    def __init__(self, deadline_s: float):
        self.deadline_s = deadline_s
        super().__init__("Timed out waiting for run to finish (check server logs).")


class RunCancelledError(OptimizerClientError):
    def __init__(self, message: str = "Run cancelled."):
        super().__init__(message)


class RunInProgressError(OptimizerClientError):
    """A second run was started while one is still in flight."""


class MemoDecodeError(ValueError):
    """Memo payload could not be parsed. Never escapes the result fetcher."""
