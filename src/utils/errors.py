from __future__ import annotations

import functools
import sqlite3
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Literal, Optional, TypeVar

from utils.logger import get_logger

_logger = get_logger(__name__)

T = TypeVar("T")


class ShopError(Exception):
    """Base class for every failure an operation can report back to a caller."""

    default_message = "Something went wrong."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class AuthFailure(ShopError):
    """Bad credentials, or a valid account that lacks the required role."""

    default_message = "Invalid username or password."

    def __init__(
        self,
        message: Optional[str] = None,
        reason: Literal["credentials", "role", "session"] = "credentials",
    ) -> None:
        super().__init__(message)
        self.reason = reason


class DuplicateUsername(ShopError):
    default_message = "Username already exists."


class InsufficientFunds(ShopError):
    default_message = "Insufficient balance."

    def __init__(
        self, message: Optional[str] = None, balance: float = 0, price: float = 0
    ) -> None:
        super().__init__(message)
        self.balance = balance
        self.price = price


class BackendUnavailable(ShopError):
    """Federated auth or persistence collaborator not configured or unreachable."""

    default_message = "Backend is not available."


class NotFound(ShopError):
    default_message = "Record not found."


class InvalidProduct(ShopError):
    default_message = "Product has malformed validity dates."


class InvalidAmount(ShopError):
    default_message = "Amount must be a positive number."


class ConditionFailed(ShopError):
    """
    Raised by the store when a conditional increment would cross its minimum,
    or a unique field of a created document is already taken. The whole batch
    it belongs to is discarded.
    """

    default_message = "Conditional update rejected."

    def __init__(
        self, collection: str, doc_id: str, field: str, message: Optional[str] = None
    ) -> None:
        super().__init__(
            message or f"{collection}/{doc_id}.{field} would drop below its minimum"
        )
        self.collection = collection
        self.doc_id = doc_id
        self.field = field


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a public operation. Failures carry the ShopError that caused them,
    so the caller can pick its own retry policy (e.g. for BackendUnavailable).
    """

    success: bool
    message: str
    value: Optional[T] = None
    error: Optional[ShopError] = None

    @classmethod
    def ok(cls, value: Optional[T] = None, message: str = "OK") -> "Result[T]":
        return cls(True, message, value, None)

    @classmethod
    def fail(cls, error: ShopError) -> "Result[T]":
        return cls(False, error.message, None, error)

    def __bool__(self) -> bool:
        return self.success


# raised by the persistence layer when the store itself is broken or unreachable
BACKEND_ERRORS = (sqlite3.Error, OSError)


def operation(success_message: str = "OK"):
    """
    Turn an async service method into a Result-returning operation boundary.

    ShopErrors become failed Results, storage errors become BackendUnavailable.
    A method may also return a Result itself to pick its own message.
    """

    def decorate(fn: Callable[..., Awaitable[Any]]):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs) -> Result:
            try:
                value = await fn(*args, **kwargs)
            except ShopError as exc:
                _logger.info(f"{fn.__qualname__} failed: {exc.message}")
                return Result.fail(exc)
            except BACKEND_ERRORS as exc:
                _logger.exception(f"{fn.__qualname__}: backend error")
                return Result.fail(BackendUnavailable(f"Backend error: {exc}"))
            if isinstance(value, Result):
                return value
            return Result.ok(value, success_message)

        return wrapper

    return decorate
