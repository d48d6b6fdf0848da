from dataclasses import dataclass, field
from typing import Generic, TypeVar

from statement_ingest.pipeline.exceptions import ErrorKind, PipelineError

T = TypeVar("T")


@dataclass(frozen=True)
class Notice:
    """Non-fatal information attached to a successful outcome."""

    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Structured outcome of a service operation.

    Exactly one of ``value`` or ``error_kind`` is meaningful: ``ok`` tells
    which. Callers branch on ``error_kind`` instead of catching exceptions.
    """

    ok: bool
    value: T | None = None
    error_kind: ErrorKind | None = None
    error_message: str | None = None
    notices: list[Notice] = field(default_factory=list)

    @classmethod
    def success(cls, value: T, notices: list[Notice] | None = None) -> "OperationResult[T]":
        return cls(ok=True, value=value, notices=list(notices or []))

    @classmethod
    def failure(cls, error: PipelineError) -> "OperationResult[T]":
        return cls(ok=False, error_kind=error.kind, error_message=str(error))

    @classmethod
    def internal_failure(cls, message: str) -> "OperationResult[T]":
        return cls(ok=False, error_kind=ErrorKind.INTERNAL, error_message=message)

    def unwrap(self) -> T:
        """Return the value or raise RuntimeError for a failed outcome."""
        if not self.ok or self.value is None:
            raise RuntimeError(f"Operation failed ({self.error_kind}): {self.error_message}")
        return self.value
