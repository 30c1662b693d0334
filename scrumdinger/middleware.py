"""Middleware wrapped around request handlers.

A handler is called as ``handler(ctx, request)`` and returns its response.
A response that is an exception instance reports an error. A middleware
takes the next handler and returns a new handler around it.
"""

from __future__ import annotations

import base64
import binascii
import functools
import logging
import os
import time
import traceback
from dataclasses import replace
from email.utils import parseaddr
from typing import Any, Callable
from uuid import UUID

from .auth import RULE_ADMIN_OR_SUBJECT, Claims
from .authclient import Authorize
from .context import ContextError, Request, RequestContext
from .errs import AppError, ErrCode
from .metrics import METRICS, Metrics

Handler = Callable[[RequestContext, Request], Any]
Middleware = Callable[[Handler], Handler]

INVALID_ID_MESSAGE = "ID is not in its proper form"

_ZERO_UUID = UUID(int=0)
_BASIC_TOKEN_LIFETIME = 8760 * 3600

_log = logging.getLogger(__name__)


def is_error(resp: Any) -> BaseException | None:
    """Return resp when it is an error response, otherwise None."""
    return resp if isinstance(resp, BaseException) else None


def _middleware(wrap: Callable[[Handler, RequestContext, Request], Any]) -> Middleware:
    def mid(next_handler: Handler) -> Handler:
        @functools.wraps(next_handler)
        def handler(ctx: RequestContext, request: Request) -> Any:
            return wrap(next_handler, ctx, request)

        return handler

    return mid


def _unauthenticated(message: Any) -> AppError:
    return AppError(ErrCode.UNAUTHENTICATED, str(message))


# -----------------------------------------------------------------------------
# Authentication


def parse_basic_auth(value: str) -> tuple[str, str] | None:
    """Split a "Basic <base64>" header into (username, password), or None."""
    parts = value.split(" ")
    if len(parts) != 2 or parts[0] != "Basic":
        return None
    try:
        decoded = base64.b64decode(parts[1], validate=True).decode()
    except (binascii.Error, ValueError):
        return None
    username, sep, rest = decoded.partition(":")
    if not sep:
        return None
    return username, rest


def _parse_address(value: str) -> str:
    _, addr = parseaddr(value)
    if not addr or "@" not in addr:
        raise ValueError(f"mail: invalid address {value!r}")
    return addr


def authenticate(client: Any) -> Middleware:
    """Authenticate the caller through the auth service."""

    def wrap(next_handler: Handler, ctx: RequestContext, request: Request) -> Any:
        try:
            resp = client.authenticate(request.header("authorization"))
        except Exception as exc:
            return _unauthenticated(exc)
        ctx = replace(ctx, user_id=resp.user_id, claims=resp.claims)
        return next_handler(ctx, request)

    return _middleware(wrap)


def bearer(auth: Any) -> Middleware:
    """Authenticate the caller from a bearer JWT."""

    def wrap(next_handler: Handler, ctx: RequestContext, request: Request) -> Any:
        try:
            claims = auth.authenticate(request.header("authorization"))
        except Exception as exc:
            return _unauthenticated(exc)

        if not claims.subject:
            return _unauthenticated("authorize: you are not authorized for that action, no claims")

        try:
            subject_id = UUID(claims.subject)
        except ValueError as exc:
            return _unauthenticated(f"parsing subject: {exc}")

        ctx = replace(ctx, user_id=subject_id, claims=claims)
        return next_handler(ctx, request)

    return _middleware(wrap)


def basic(auth: Any, user_bus: Any) -> Middleware:
    """Authenticate the caller from basic credentials checked against the user store."""

    def wrap(next_handler: Handler, ctx: RequestContext, request: Request) -> Any:
        creds = parse_basic_auth(request.header("authorization"))
        if creds is None:
            return _unauthenticated("invalid Basic auth")
        email, given = creds

        try:
            addr = _parse_address(email)
        except ValueError as exc:
            return _unauthenticated(exc)

        try:
            usr = user_bus.authenticate(addr, given)
        except Exception as exc:
            return _unauthenticated(exc)

        now = int(time.time())
        claims = Claims(
            subject=str(usr.id),
            issuer=auth.issuer,
            expires_at=now + _BASIC_TOKEN_LIFETIME,
            issued_at=now,
            roles=[str(r) for r in usr.roles],
        )

        try:
            subject_id = UUID(claims.subject)
        except ValueError as exc:
            return _unauthenticated(f"parsing subject: {exc}")

        ctx = replace(ctx, user_id=subject_id, claims=claims)
        return next_handler(ctx, request)

    return _middleware(wrap)


# -----------------------------------------------------------------------------
# Authorization


def authorize(client: Any, rule: str) -> Middleware:
    """Authorize the authenticated caller against a rule via the auth service."""

    def wrap(next_handler: Handler, ctx: RequestContext, request: Request) -> Any:
        try:
            user_id = ctx.require_user_id()
        except ContextError as exc:
            return _unauthenticated(exc)

        try:
            client.authorize(Authorize(user_id=user_id, claims=ctx.claims, rule=rule))
        except Exception as exc:
            return _unauthenticated(exc)

        return next_handler(ctx, request)

    return _middleware(wrap)


def _lookup(bus: Any, kind: str, record_id: UUID) -> Any:
    try:
        return bus.query_by_id(record_id)
    except LookupError as exc:
        raise _unauthenticated(exc) from exc
    except Exception as exc:
        raise _unauthenticated(f"querybyid: {kind}[{record_id}]: {exc}") from exc


def authorize_user(client: Any, user_bus: Any, rule: str) -> Middleware:
    """Load the user named by the user_id path parameter and authorize against rule.

    A lookup raising LookupError is reported as not found.
    """

    def wrap(next_handler: Handler, ctx: RequestContext, request: Request) -> Any:
        raw_id = request.param("user_id")
        user_id = _ZERO_UUID

        if raw_id:
            try:
                user_id = UUID(raw_id)
            except ValueError:
                return _unauthenticated(INVALID_ID_MESSAGE)
            try:
                usr = _lookup(user_bus, "userID", user_id)
            except AppError as err:
                return err
            ctx = replace(ctx, user=usr)

        try:
            client.authorize(Authorize(user_id=user_id, claims=ctx.claims, rule=rule))
        except Exception as exc:
            return _unauthenticated(exc)

        return next_handler(ctx, request)

    return _middleware(wrap)


def authorize_scrum(client: Any, scrum_bus: Any) -> Middleware:
    """Load the scrum named by the scrum_id path parameter and authorize its owner.

    A lookup raising LookupError is reported as not found.
    """

    def wrap(next_handler: Handler, ctx: RequestContext, request: Request) -> Any:
        raw_id = request.param("scrum_id")
        user_id = _ZERO_UUID

        if raw_id:
            try:
                scrum_id = UUID(raw_id)
            except ValueError:
                return _unauthenticated(INVALID_ID_MESSAGE)
            try:
                scrum = _lookup(scrum_bus, "scrumID", scrum_id)
            except AppError as err:
                return err
            user_id = scrum.user_id
            ctx = replace(ctx, scrum=scrum)

        try:
            client.authorize(
                Authorize(user_id=user_id, claims=ctx.claims, rule=RULE_ADMIN_OR_SUBJECT)
            )
        except Exception as exc:
            return _unauthenticated(exc)

        return next_handler(ctx, request)

    return _middleware(wrap)


# -----------------------------------------------------------------------------
# Errors, logging, metrics and panics


def errors(log: logging.Logger | None = None) -> Middleware:
    """Turn error responses into AppError values fit to send to the client."""
    log = log or _log

    def wrap(next_handler: Handler, ctx: RequestContext, request: Request) -> Any:
        resp = next_handler(ctx, request)
        err = is_error(resp)
        if err is None:
            return resp

        app_err = err if isinstance(err, AppError) else AppError(ErrCode.INTERNAL, "Internal Server Error")

        log.error(
            "handled error during request err=%s source_err_file=%s source_err_func=%s",
            err,
            os.path.basename(app_err.file_name),
            app_err.func_name,
        )

        if app_err.code is ErrCode.INTERNAL_ONLY_LOG:
            app_err = AppError(ErrCode.INTERNAL, "Internal Server Error")

        return app_err

    return _middleware(wrap)


def logger(log: logging.Logger | None = None) -> Middleware:
    """Log the start and completion of each request."""
    log = log or _log

    def wrap(next_handler: Handler, ctx: RequestContext, request: Request) -> Any:
        started = time.monotonic()
        path = request.path
        if request.query_string:
            path = f"{path}?{request.query_string}"

        log.info(
            "request started method=%s path=%s remoteaddr=%s",
            request.method,
            path,
            request.remote_addr,
        )

        resp = next_handler(ctx, request)
        err = is_error(resp)

        status = ErrCode.OK
        if err is not None:
            status = err.code if isinstance(err, AppError) else ErrCode.INTERNAL

        log.info(
            "request completed method=%s path=%s remoteaddr=%s statuscode=%s since=%.6fs",
            request.method,
            path,
            request.remote_addr,
            status,
            time.monotonic() - started,
        )
        return resp

    return _middleware(wrap)


def track_metrics(metrics: Metrics | None = None) -> Middleware:
    """Count requests and errors, refreshing the thread count every 1000 requests."""
    counters = metrics or METRICS

    def wrap(next_handler: Handler, ctx: RequestContext, request: Request) -> Any:
        resp = next_handler(ctx, request)

        if counters.add_requests() % 1000 == 0:
            counters.add_goroutines()

        if is_error(resp) is not None:
            counters.add_errors()

        return resp

    return _middleware(wrap)


def panics(metrics: Metrics | None = None) -> Middleware:
    """Turn exceptions raised by the handler into internal-only error responses."""
    counters = metrics or METRICS

    def wrap(next_handler: Handler, ctx: RequestContext, request: Request) -> Any:
        try:
            return next_handler(ctx, request)
        except Exception as exc:
            trace = traceback.format_exc()
            counters.add_panics()
            return AppError(ErrCode.INTERNAL_ONLY_LOG, f"PANIC [{exc}] TRACE[{trace}]")

    return _middleware(wrap)


# -----------------------------------------------------------------------------
# Transactions


def begin_commit_rollback(log: logging.Logger | None, beginner: Any) -> Middleware:
    """Run the handler inside a transaction, committing unless it reports an error."""
    log = log or _log

    def wrap(next_handler: Handler, ctx: RequestContext, request: Request) -> Any:
        log.info("BEGIN TRANSACTION")
        try:
            tx = beginner.begin()
        except Exception as exc:
            return AppError(ErrCode.INTERNAL, f"BEGIN TRANSACTION: {exc}")

        committed = False
        try:
            resp = next_handler(replace(ctx, tran=tx), request)
            if is_error(resp) is not None:
                return resp

            log.info("COMMIT TRANSACTION")
            try:
                tx.commit()
            except Exception as exc:
                return AppError(ErrCode.INTERNAL, f"COMMIT TRANSACTION: {exc}")

            committed = True
            return resp
        finally:
            if not committed:
                log.info("ROLLBACK TRANSACTION")
                try:
                    tx.rollback()
                except Exception as exc:
                    log.info("ROLLBACK TRANSACTION ERROR=%s", exc)

    return _middleware(wrap)