"""Typed outcomes returned by the engine instead of ambient exceptions."""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"


class StoreUnavailable(Exception):
    """Raised when the store cannot be reached after the reconnect loop."""


@dataclass(frozen=True)
class EngineError:
    kind: ErrorKind
    message: str
    detail: Any = None


@dataclass(frozen=True)
class Result(Generic[T]):
    value: T | None = None
    error: EngineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, detail: Any = None) -> "Result[T]":
        return cls(error=EngineError(kind=kind, message=message, detail=detail))

    @classmethod
    def not_found(cls, message: str) -> "Result[T]":
        return cls.failure(ErrorKind.NOT_FOUND, message)
