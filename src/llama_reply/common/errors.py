"""Typed failures surfaced by the generation core."""
from __future__ import annotations
import enum
from typing import Any

class ErrorKind(str, enum.Enum):
    PROCESS_NOT_FOUND = "ProcessNotFound"
    TIMEOUT = "Timeout"
    EMPTY_RESPONSE = "EmptyResponse"
    PROCESS_ERROR = "ProcessError"

class GenerationError(RuntimeError):
    """
    Base class for every failure a caller of `generate` can observe.

    Args:
        message: Human readable summary.
        details: Debug payload (partial output, chunk count, elapsed time...).
    """
    kind: ErrorKind = ErrorKind.PROCESS_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "kind": self.kind.value, "details": self.details}

class ProcessNotFoundError(GenerationError):
    """The llama.cpp executable is missing or cannot be spawned."""
    kind = ErrorKind.PROCESS_NOT_FOUND

class GenerationTimeoutError(GenerationError):
    """The run exceeded its deadline and was killed."""
    kind = ErrorKind.TIMEOUT

class EmptyResponseError(GenerationError):
    """The process finished but nothing usable survived cleaning."""
    kind = ErrorKind.EMPTY_RESPONSE

class ProcessFailedError(GenerationError):
    """Unexpected child-process failure while the run was active."""
    kind = ErrorKind.PROCESS_ERROR
