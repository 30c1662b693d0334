"""Incoming requests and the values middleware attaches to them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping
from urllib.parse import parse_qs
from uuid import UUID

from .auth import Claims


@dataclass
class Request:
    """An HTTP request as seen by handlers and middleware."""

    method: str = "GET"
    path: str = "/"
    query_string: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    remote_addr: str = ""

    def param(self, name: str) -> str:
        """Return the named path parameter, or an empty string."""
        return self.params.get(name, "")

    def header(self, name: str) -> str:
        """Return the named header, matched case-insensitively, or an empty string."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return ""

    def query_value(self, name: str) -> str:
        """Return the first value of the named query parameter, or an empty string."""
        values = parse_qs(self.query_string, keep_blank_values=True).get(name)
        return values[0] if values else ""


class ContextError(LookupError):
    """Raised when a value expected in the request context is absent."""


@dataclass
class RequestContext:
    """Values gathered for a request while it passes through middleware."""

    claims: Claims = field(default_factory=Claims)
    user_id: UUID | None = None
    user: Any = None
    scrum: Any = None
    tran: Any = None

    def require_user_id(self) -> UUID:
        """Return the user id, or raise ContextError."""
        if self.user_id is None:
            raise ContextError("user id not found in context")
        return self.user_id

    def require_user(self) -> Any:
        """Return the user, or raise ContextError."""
        if self.user is None:
            raise ContextError("user not found in context")
        return self.user

    def require_scrum(self) -> Any:
        """Return the scrum, or raise ContextError."""
        if self.scrum is None:
            raise ContextError("scrum not found in context")
        return self.scrum

    def require_tran(self) -> Any:
        """Return the transaction handle, or raise ContextError."""
        if self.tran is None:
            raise ContextError("transaction not found in context")
        return self.tran