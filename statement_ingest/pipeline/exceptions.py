from enum import Enum


class ErrorKind(str, Enum):
    """Machine-readable failure category returned to callers."""

    VALIDATION = "validation"
    DUPLICATE = "duplicate"
    STORAGE = "storage"
    ORACLE = "oracle"
    LINK = "link"
    QUALITY_CHECK = "quality_check"
    REVERT = "revert"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


class PipelineError(Exception):
    """Base exception for all ingestion pipeline errors."""

    kind: ErrorKind = ErrorKind.INTERNAL


class ValidationError(PipelineError):
    """Bad input shape, size or type. Raised before any state mutation."""

    kind = ErrorKind.VALIDATION


class UnsupportedPhaseError(ValidationError):
    """Raised when a fix phase other than 1 is requested."""


class DuplicateError(PipelineError):
    """Identical content was uploaded before. Informational only."""

    kind = ErrorKind.DUPLICATE


class StorageError(PipelineError):
    """Raised when file bytes cannot be persisted, read or removed."""

    kind = ErrorKind.STORAGE


class OracleError(PipelineError):
    """The extraction call failed or returned unusable data."""

    kind = ErrorKind.ORACLE

    def __init__(self, message: str, raw_response: str | None = None) -> None:
        super().__init__(message)
        self.raw_response = raw_response


class LinkError(PipelineError):
    """Extraction succeeded but account linking or data writing failed."""

    kind = ErrorKind.LINK


class QualityCheckError(PipelineError):
    """The quality check engine itself malfunctioned."""

    kind = ErrorKind.QUALITY_CHECK


class RevertError(ValidationError):
    """Raised when reverting an upload that was never confirmed."""

    kind = ErrorKind.REVERT


class RecordWriteError(PipelineError):
    """Raised when a database write returns no row."""


class NotFoundError(PipelineError):
    kind = ErrorKind.NOT_FOUND


class UploadNotFoundError(NotFoundError):
    """Raised when an upload does not exist for the requesting user."""


class AccountNotFoundError(NotFoundError):
    """Raised when a requested account is missing or inactive."""


class QualityCheckNotFoundError(NotFoundError):
    """Raised when no quality check exists for an upload."""


class FailureNotFoundError(NotFoundError):
    """Raised when an extraction failure does not exist for the user."""


class ConflictError(PipelineError):
    kind = ErrorKind.CONFLICT


class ProcessingConflictError(ConflictError):
    """Raised when processing is triggered while already processing."""


class InvalidStateError(ConflictError):
    """Raised when an upload or check is in the wrong state for an operation."""


class ProcessingTimeoutError(PipelineError):
    """Raised when a processing run exceeds its deadline."""

    kind = ErrorKind.TIMEOUT
