"""Exception hierarchy for the ingestion pipeline."""


class IngestError(Exception):
    """Base class for all pipeline errors."""


class MalformedURL(IngestError, ValueError):
    """Raised when a URL cannot be parsed into a canonical form."""

    def __init__(self, url: str | None, reason: str = "") -> None:
        self.url = url
        self.reason = reason
        message = f"Malformed URL {url!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class DataAccessError(IngestError):
    """Raised when a datastore operation fails or returns nothing."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"[{operation}] {message}")


class FetchError(IngestError):
    """Raised when the page-fetch service cannot return content."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class AIServiceError(IngestError):
    """Raised when the completion service call fails."""


class AIResponseError(AIServiceError):
    """Raised when a completion response fails JSON parsing or schema validation."""

    def __init__(self, message: str, raw_response: str = "") -> None:
        self.raw_response = raw_response
        super().__init__(message)


class TransientError(IngestError):
    """An infrastructure failure that is safe to retry."""


class PipelineError(IngestError):
    """Terminal failure of a workflow run."""


class PipelineTimeout(PipelineError):
    """A polling budget was exhausted before the awaited rows appeared."""

    def __init__(self, message: str, pending: list[str] | None = None) -> None:
        self.pending = pending or []
        super().__init__(message)


class UnknownWorkflowError(IngestError, KeyError):
    """Raised when a workflow name is not registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"Unknown workflow: {self.name}"
