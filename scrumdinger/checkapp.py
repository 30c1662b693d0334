"""Health check endpoints for the service."""

from __future__ import annotations

import json
import logging
import os
import socket
from dataclasses import dataclass
from typing import Any, Callable

from .context import Request, RequestContext
from .errs import AppError, ErrCode

_log = logging.getLogger(__name__)


@dataclass
class Info:
    """Information about the running service."""

    status: str = ""
    build: str = ""
    host: str = ""
    name: str = ""
    pod_ip: str = ""
    node: str = ""
    namespace: str = ""
    gomaxprocs: int = 0

    def to_dict(self) -> dict[str, Any]:
        pairs = [
            ("status", self.status),
            ("build", self.build),
            ("host", self.host),
            ("name", self.name),
            ("podIP", self.pod_ip),
            ("node", self.node),
            ("namespace", self.namespace),
            ("GOMAXPROCS", self.gomaxprocs),
        ]
        return {key: value for key, value in pairs if value}

    def encode(self) -> tuple[bytes, str]:
        data = json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)
        return data.encode(), "application/json"


class CheckApp:
    """Readiness and liveness handlers.

    ``status_check`` is called with no arguments and raises when the
    database is not ready; it is expected to give up within about a second.
    """

    def __init__(
        self,
        build: str,
        log: logging.Logger | None = None,
        status_check: Callable[[], Any] | None = None,
    ) -> None:
        self.build = build
        self._log = log or _log
        self._status_check = status_check

    def readiness(self, ctx: RequestContext, request: Request) -> AppError | None:
        """Report an internal error when the database is not ready."""
        if self._status_check is None:
            return None
        try:
            self._status_check()
        except Exception as exc:
            self._log.info("readiness failure ERROR=%s", exc)
            return AppError(ErrCode.INTERNAL, str(exc))
        return None

    def liveness(self, ctx: RequestContext, request: Request) -> Info:
        """Return status details about the running service."""
        try:
            host = socket.gethostname()
        except OSError:
            host = "unavailable"

        return Info(
            status="up",
            build=self.build,
            host=host,
            name=os.environ.get("KUBERNETES_NAME", ""),
            pod_ip=os.environ.get("KUBERNETES_POD_IP", ""),
            node=os.environ.get("KUBERNETES_NODE_NAME", ""),
            namespace=os.environ.get("KUBERNETES_NAMESPACE", ""),
            gomaxprocs=os.cpu_count() or 1,
        )