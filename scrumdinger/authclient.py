"""Client for the auth service."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable
from uuid import UUID

import httpx

from .auth import Claims
from .errs import AppError

_log = logging.getLogger(__name__)

_ZERO_UUID = UUID(int=0)


class AuthClientError(Exception):
    """Raised when the auth service cannot be reached or answers unexpectedly."""


def _parse_uuid(value: Any) -> UUID:
    return _ZERO_UUID if not value else UUID(str(value))


@dataclass
class Authorize:
    """Information required to perform an authorization."""

    user_id: UUID = _ZERO_UUID
    claims: Claims = field(default_factory=Claims)
    rule: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"UserID": str(self.user_id), "Claims": self.claims.to_dict(), "Rule": self.rule}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Authorize":
        return cls(
            user_id=_parse_uuid(data.get("UserID")),
            claims=Claims.from_dict(data.get("Claims") or {}),
            rule=data.get("Rule", "") or "",
        )


@dataclass
class AuthenticateResp:
    """Information returned by an authentication."""

    user_id: UUID = _ZERO_UUID
    claims: Claims = field(default_factory=Claims)

    def to_dict(self) -> dict[str, Any]:
        return {"UserID": str(self.user_id), "Claims": self.claims.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuthenticateResp":
        return cls(
            user_id=_parse_uuid(data.get("UserID")),
            claims=Claims.from_dict(data.get("Claims") or {}),
        )

    def encode(self) -> tuple[bytes, str]:
        return json.dumps(self.to_dict(), separators=(",", ":")).encode(), "application/json"


class AuthClient:
    """Talks to the auth service over HTTP."""

    def __init__(
        self,
        url: str,
        client: httpx.Client | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._url = url
        self._owns_client = client is None
        self._http = client or httpx.Client(timeout=10.0)
        self._log = log or _log

    def __enter__(self) -> "AuthClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._owns_client:
            self._http.close()

    def authenticate(self, authorization: str) -> AuthenticateResp:
        """Ask the auth service to authenticate an Authorization header value."""
        endpoint = f"{self._url}/v1/auth/authenticate"
        return self._do(
            "GET",
            endpoint,
            headers={"authorization": authorization},
            body=None,
            decode=AuthenticateResp.from_dict,
        )

    def authorize(self, auth: Authorize) -> None:
        """Ask the auth service to authorize; raise when it refuses."""
        endpoint = f"{self._url}/v1/auth/authorize"
        self._do("POST", endpoint, headers=None, body=auth.to_dict(), decode=None)

    def _do(
        self,
        method: str,
        endpoint: str,
        headers: dict[str, str] | None,
        body: Any,
        decode: Callable[[Any], Any] | None,
    ) -> Any:
        base = httpx.URL(endpoint).path.rstrip("/").rsplit("/", 1)[-1]
        self._log.info("authclient: rawRequest: started method=%s call=%s endpoint=%s", method, base, endpoint)
        status = 0
        try:
            content = b"" if body is None else json.dumps(body).encode() + b"\n"
            request_headers = {
                "Cache-Control": "no-cache",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
            for key, value in (headers or {}).items():
                self._log.info("authclient: rawRequest key=%s", key)
                request_headers[key] = value

            try:
                resp = self._http.request(method, endpoint, headers=request_headers, content=content)
            except httpx.HTTPError as exc:
                raise AuthClientError(f"do: error: {exc}") from exc

            status = resp.status_code
            if status == 204:
                return None

            text = resp.content.decode(errors="replace")

            if status == 200:
                try:
                    if decode is None:
                        raise ValueError("no response value expected")
                    return decode(json.loads(resp.content))
                except (ValueError, KeyError, TypeError, AttributeError) as exc:
                    raise AuthClientError(f"failed: response: {text}, decoding error: {exc} ") from exc

            if status == 401:
                try:
                    data = json.loads(resp.content)
                    if not isinstance(data, dict):
                        raise ValueError("expected a JSON object")
                    app_err = AppError.from_dict(data)
                except (ValueError, TypeError) as exc:
                    raise AuthClientError(f"failed: response: {text}, decoding error: {exc} ") from exc
                raise app_err

            raise AuthClientError(f"failed: response: {text}")
        finally:
            self._log.info("authclient: rawRequest: completed status=%s", status)