"""Custom exception hierarchy for the transcription job pipeline.

All exceptions inherit from JobError, enabling targeted handling at
component boundaries while preserving specific failure context.
"""


class JobError(Exception):
    """Base exception for all transcription job errors."""

    def __init__(self, message: str, job_id: str | None = None) -> None:
        self.job_id = job_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.job_id:
            return f"[job={self.job_id}] {super().__str__()}"
        return super().__str__()


class ValidationError(JobError):
    """Raised for malformed or missing input. Never retried."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        field: str | None = None,
    ) -> None:
        self.field = field
        super().__init__(message, job_id)


class InvalidTransitionError(ValidationError):
    """Raised when a status change would violate the job state machine."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        current: str | None = None,
        target: str | None = None,
    ) -> None:
        self.current = current
        self.target = target
        super().__init__(message, job_id)


class AuthenticationError(JobError):
    """Raised when a credential is missing or rejected. Never retried."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        provider: str | None = None,
    ) -> None:
        self.provider = provider
        super().__init__(message, job_id)


class NotFoundError(JobError):
    """Raised when no job matches a correlation key."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        external_job_id: str | None = None,
    ) -> None:
        self.external_job_id = external_job_id
        super().__init__(message, job_id)


class UpstreamError(JobError):
    """Raised on a non-success response from the transcription or analysis provider.

    ``transient`` marks failures worth retrying (rate limits, 5xx,
    transport errors). Rejections such as a 400 are permanent.
    """

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        provider: str | None = None,
        status_code: int | None = None,
        transient: bool = False,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        self.transient = transient
        super().__init__(message, job_id)


class JobTimeoutError(JobError):
    """Raised when a bounded wait (polling or analysis deadline) is exceeded."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        stage: str | None = None,
    ) -> None:
        self.stage = stage
        super().__init__(message, job_id)


class ParseError(JobError):
    """Raised when an analysis response cannot be parsed as JSON."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        raw_text: str | None = None,
    ) -> None:
        self.raw_text = raw_text
        super().__init__(message, job_id)


class PersistenceError(JobError):
    """Raised when a job store operation fails."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.operation = operation
        super().__init__(message, job_id)


class ConfigurationError(JobError):
    """Raised when a collaborator cannot be constructed from its configuration."""

    def __init__(self, message: str, setting: str | None = None) -> None:
        self.setting = setting
        super().__init__(message)
