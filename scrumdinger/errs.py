"""Error codes and error types reported by the web API."""

from __future__ import annotations

import enum
import inspect
import json
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Iterable, Iterator

CONTENT_TYPE_JSON = "application/json"


def _dumps(value: Any) -> bytes:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode()


class ErrCode(enum.Enum):
    """An error code in the system."""

    OK = 0
    NO_CONTENT = 1
    CANCELED = 2
    UNKNOWN = 3
    INVALID_ARGUMENT = 4
    DEADLINE_EXCEEDED = 5
    NOT_FOUND = 6
    ALREADY_EXISTS = 7
    PERMISSION_DENIED = 8
    RESOURCE_EXHAUSTED = 9
    FAILED_PRECONDITION = 10
    ABORTED = 11
    OUT_OF_RANGE = 12
    UNIMPLEMENTED = 13
    INTERNAL = 14
    UNAVAILABLE = 15
    DATA_LOSS = 16
    UNAUTHENTICATED = 17
    TOO_MANY_REQUESTS = 18
    INTERNAL_ONLY_LOG = 19

    def __str__(self) -> str:
        return _CODE_NAMES[self]

    @classmethod
    def from_name(cls, name: str) -> "ErrCode":
        """Return the code registered under the given wire name."""
        try:
            return _CODE_NUMBERS[name]
        except KeyError:
            raise ValueError(f'err code "{name}" does not exist') from None

    def http_status(self) -> int:
        """Return the HTTP status used to report this code."""
        return _HTTP_STATUS[self]


_CODE_NUMBERS: dict[str, ErrCode] = {
    "ok": ErrCode.OK,
    "no_content": ErrCode.NO_CONTENT,
    "canceled": ErrCode.CANCELED,
    "unknown": ErrCode.UNKNOWN,
    "invalid_argument": ErrCode.INVALID_ARGUMENT,
    "deadline_exceeded": ErrCode.DEADLINE_EXCEEDED,
    "not_found": ErrCode.NOT_FOUND,
    "already_exists": ErrCode.ALREADY_EXISTS,
    "permission_denied": ErrCode.PERMISSION_DENIED,
    "resource_exhausted": ErrCode.RESOURCE_EXHAUSTED,
    "failed_precondition": ErrCode.FAILED_PRECONDITION,
    "aborted": ErrCode.ABORTED,
    "out_of_range": ErrCode.OUT_OF_RANGE,
    "unimplemented": ErrCode.UNIMPLEMENTED,
    "internal": ErrCode.INTERNAL,
    "unavailable": ErrCode.UNAVAILABLE,
    "data_loss": ErrCode.DATA_LOSS,
    "unauthenticated": ErrCode.UNAUTHENTICATED,
    "too_many_requests": ErrCode.TOO_MANY_REQUESTS,
    "internal_only_log": ErrCode.INTERNAL_ONLY_LOG,
}

_CODE_NAMES: dict[ErrCode, str] = {
    ErrCode.OK: "ok",
    ErrCode.NO_CONTENT: "ok_no_content",
    ErrCode.CANCELED: "canceled",
    ErrCode.UNKNOWN: "unknown",
    ErrCode.INVALID_ARGUMENT: "invalid_argument",
    ErrCode.DEADLINE_EXCEEDED: "deadline_exceeded",
    ErrCode.NOT_FOUND: "not_found",
    ErrCode.ALREADY_EXISTS: "already_exists",
    ErrCode.PERMISSION_DENIED: "permission_denied",
    ErrCode.RESOURCE_EXHAUSTED: "resource_exhausted",
    ErrCode.FAILED_PRECONDITION: "failed_precondition",
    ErrCode.ABORTED: "aborted",
    ErrCode.OUT_OF_RANGE: "out_of_range",
    ErrCode.UNIMPLEMENTED: "unimplemented",
    ErrCode.INTERNAL: "internal",
    ErrCode.UNAVAILABLE: "unavailable",
    ErrCode.DATA_LOSS: "data_loss",
    ErrCode.UNAUTHENTICATED: "unauthenticated",
    ErrCode.TOO_MANY_REQUESTS: "too_many_requests",
    ErrCode.INTERNAL_ONLY_LOG: "internal_only_log",
}

_HTTP_STATUS: dict[ErrCode, int] = {
    ErrCode.OK: HTTPStatus.OK,
    ErrCode.NO_CONTENT: HTTPStatus.NO_CONTENT,
    ErrCode.CANCELED: HTTPStatus.GATEWAY_TIMEOUT,
    ErrCode.UNKNOWN: HTTPStatus.INTERNAL_SERVER_ERROR,
    ErrCode.INVALID_ARGUMENT: HTTPStatus.BAD_REQUEST,
    ErrCode.DEADLINE_EXCEEDED: HTTPStatus.GATEWAY_TIMEOUT,
    ErrCode.NOT_FOUND: HTTPStatus.NOT_FOUND,
    ErrCode.ALREADY_EXISTS: HTTPStatus.CONFLICT,
    ErrCode.PERMISSION_DENIED: HTTPStatus.FORBIDDEN,
    ErrCode.RESOURCE_EXHAUSTED: HTTPStatus.TOO_MANY_REQUESTS,
    ErrCode.FAILED_PRECONDITION: HTTPStatus.BAD_REQUEST,
    ErrCode.ABORTED: HTTPStatus.CONFLICT,
    ErrCode.OUT_OF_RANGE: HTTPStatus.BAD_REQUEST,
    ErrCode.UNIMPLEMENTED: HTTPStatus.NOT_IMPLEMENTED,
    ErrCode.INTERNAL: HTTPStatus.INTERNAL_SERVER_ERROR,
    ErrCode.UNAVAILABLE: HTTPStatus.SERVICE_UNAVAILABLE,
    ErrCode.DATA_LOSS: HTTPStatus.INTERNAL_SERVER_ERROR,
    ErrCode.UNAUTHENTICATED: HTTPStatus.UNAUTHORIZED,
    ErrCode.TOO_MANY_REQUESTS: HTTPStatus.TOO_MANY_REQUESTS,
    ErrCode.INTERNAL_ONLY_LOG: HTTPStatus.INTERNAL_SERVER_ERROR,
}


def _error_chain(err: BaseException | None) -> Iterator[BaseException]:
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        err = err.__cause__ or err.__context__


class AppError(Exception):
    """An error carrying a code and a message meant for the client."""

    def __init__(self, code: ErrCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.func_name = ""
        self.file_name = ""
        frame = inspect.currentframe()
        caller = frame.f_back if frame is not None else None
        if caller is not None:
            self.func_name = caller.f_code.co_name
            self.file_name = f"{caller.f_code.co_filename}:{caller.f_lineno}"
        del frame, caller

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"AppError(code={self.code!s}, message={self.message!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AppError):
            return NotImplemented
        return self.code == other.code and self.message == other.message

    def __hash__(self) -> int:
        return hash((self.code, self.message))

    def http_status(self) -> int:
        """Return the HTTP status for this error."""
        return self.code.http_status()

    def to_dict(self) -> dict[str, str]:
        return {"code": str(self.code), "message": self.message}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AppError":
        name = data.get("code")
        code = ErrCode.OK if name is None else ErrCode.from_name(name)
        return cls(code, data.get("message", ""))

    def encode(self) -> tuple[bytes, str]:
        return _dumps(self.to_dict()), CONTENT_TYPE_JSON


def new_error(err: BaseException) -> AppError:
    """Return the AppError within err's chain, or wrap err as an internal error."""
    for item in _error_chain(err):
        if isinstance(item, AppError):
            return item
    return AppError(ErrCode.INTERNAL, str(err))


@dataclass(frozen=True)
class FieldError:
    """An error with one specific request field."""

    field: str
    err: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "error": self.err}


class FieldErrors(Exception):
    """A collection of field errors."""

    def __init__(self, errors: Iterable[FieldError]) -> None:
        self.errors = list(errors)
        super().__init__(self._json())

    def _json(self) -> str:
        return _dumps([e.to_dict() for e in self.errors]).decode()

    def __str__(self) -> str:
        return self._json()

    def __iter__(self) -> Iterator[FieldError]:
        return iter(self.errors)

    def __len__(self) -> int:
        return len(self.errors)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldErrors):
            return NotImplemented
        return self.errors == other.errors

    def __hash__(self) -> int:
        return hash(tuple(self.errors))

    def fields(self) -> dict[str, str]:
        """Map each failing field to its error message."""
        return {fe.field: fe.err for fe in self.errors}

    def encode(self) -> tuple[bytes, str]:
        return _dumps([e.to_dict() for e in self.errors]), CONTENT_TYPE_JSON


def new_fields_error(field: str, err: BaseException | str) -> FieldErrors:
    """Build a FieldErrors holding a single field error."""
    return FieldErrors([FieldError(field, str(err))])


def is_field_errors(err: BaseException | None) -> bool:
    """Tell whether err's chain holds a FieldErrors."""
    return get_field_errors(err) is not None


def get_field_errors(err: BaseException | None) -> FieldErrors | None:
    """Return the FieldErrors from err's chain, or None."""
    for item in _error_chain(err):
        if isinstance(item, FieldErrors):
            return item
    return None