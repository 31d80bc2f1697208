"""
Pipeline Errors and Results

Every failure that crosses a coordinator boundary is a PipelineError tagged
with an ErrorKind. Operations whose contract is "return a failure, don't
raise" hand back a Result instead of propagating the exception.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure taxonomy shared by the key generator and coordinators."""
    VALIDATION = "VALIDATION"
    NETWORK = "NETWORK"
    PROVIDER = "PROVIDER"
    SECURITY_ABORT = "SECURITY_ABORT"
    UNKNOWN = "UNKNOWN"


class PipelineError(Exception):
    """Base exception for pipeline failures."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}


class ValidationError(PipelineError):
    """Malformed or incomplete request, rejected before any work."""
    kind = ErrorKind.VALIDATION


class NetworkError(PipelineError):
    """External service unreachable or timed out."""
    kind = ErrorKind.NETWORK


class ProviderError(PipelineError):
    """External service answered, but not with usable key material."""
    kind = ErrorKind.PROVIDER


class SecurityAbortError(PipelineError):
    """Eavesdropper detected: QBER above the security threshold."""
    kind = ErrorKind.SECURITY_ABORT

    def __init__(self, qber: float, message: Optional[str] = None):
        super().__init__(
            message or f"Eavesdropping detected! QBER: {qber * 100:.1f}%"
        )
        self.qber = qber

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["qber"] = self.qber
        return data


class UnknownPipelineError(PipelineError):
    """Anything else; the original message is kept for diagnostics."""
    kind = ErrorKind.UNKNOWN


@dataclass(frozen=True)
class Result(Generic[T]):
    """Success value or PipelineError, never both."""
    value: Optional[T] = None
    error: Optional[PipelineError] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: PipelineError) -> "Result[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None
