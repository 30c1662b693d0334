"""Web handlers for the auth service."""

from __future__ import annotations

import json
from dataclasses import dataclass

from .auth import Auth
from .authclient import AuthenticateResp, Authorize
from .context import ContextError, Request, RequestContext
from .errs import AppError, ErrCode, new_fields_error


@dataclass
class Token:
    """A signed token handed to the client."""

    token: str

    def encode(self) -> tuple[bytes, str]:
        data = json.dumps({"token": self.token}, separators=(",", ":"))
        return data.encode(), "application/json"


def _format_list(items: list[str]) -> str:
    return "[" + " ".join(items) + "]"


class AuthApp:
    """Token, authenticate and authorize handlers."""

    def __init__(self, auth: Auth) -> None:
        self._auth = auth

    def token(self, ctx: RequestContext, request: Request) -> Token | AppError:
        """Sign the claims established by basic authentication with the key kid."""
        kid = request.param("kid")
        if not kid:
            return AppError(ErrCode.INVALID_ARGUMENT, str(new_fields_error("kid", "missing kid")))

        try:
            tkn = self._auth.generate_token(kid, ctx.claims)
        except Exception as exc:
            return AppError(ErrCode.INTERNAL, str(exc))

        return Token(tkn)

    def authenticate(self, ctx: RequestContext, request: Request) -> AuthenticateResp | AppError:
        """Report the user and claims that middleware authenticated."""
        try:
            user_id = ctx.require_user_id()
        except ContextError as exc:
            return AppError(ErrCode.UNAUTHENTICATED, str(exc))
        return AuthenticateResp(user_id=user_id, claims=ctx.claims)

    def authorize(self, ctx: RequestContext, request: Request) -> AppError | None:
        """Check the posted claims against the posted rule."""
        try:
            data = json.loads(request.body or b"")
            auth = Authorize.from_dict(data)
        except (ValueError, TypeError, AttributeError) as exc:
            return AppError(ErrCode.INVALID_ARGUMENT, str(exc))

        try:
            self._auth.authorize(auth.claims, auth.user_id, auth.rule)
        except Exception as exc:
            return AppError(
                ErrCode.UNAUTHENTICATED,
                "authorize: you are not authorized for that action, "
                f"claims[{_format_list(auth.claims.roles)}] rule[{auth.rule}]: {exc}",
            )
        return None