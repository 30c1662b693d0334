"""Web handlers and models for the scrum domain."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable
from uuid import UUID

from .context import ContextError, Request, RequestContext
from .errs import AppError, ErrCode, new_fields_error
from .validate import check

ORDER_BY_ID = "scrum_id"

ORDER_BY_FIELDS: dict[str, str] = {
    "scrum_id": ORDER_BY_ID,
}

_RFC3339 = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)


def _parse_rfc3339(value: str) -> datetime:
    match = _RFC3339.match(value)
    if match is None:
        raise ValueError(f'parsing time "{value}" as RFC3339: invalid format')
    date, clock, frac, zone = match.groups()
    frac = ((frac or "") + "000000")[:6]
    if zone.upper() == "Z":
        zone = "+00:00"
    try:
        return datetime.fromisoformat(f"{date}T{clock}.{frac}{zone}")
    except ValueError as exc:
        raise ValueError(f'parsing time "{value}": {exc}') from exc


def _format_rfc3339(dt: datetime) -> str:
    text = (
        f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"
        f"T{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}"
    )
    offset = dt.utcoffset()
    if offset is None or offset == timedelta(0):
        return text + "Z"
    minutes = int(offset.total_seconds()) // 60
    sign = "+" if minutes >= 0 else "-"
    hours, mins = divmod(abs(minutes), 60)
    return f"{text}{sign}{hours:02d}:{mins:02d}"


# -----------------------------------------------------------------------------
# Query parameters and filters


@dataclass
class QueryParams:
    """Raw query string values for scrum queries."""

    page: str = ""
    rows: str = ""
    order_by: str = ""
    id: str = ""
    user_id: str = ""
    start_created_date: str = ""
    end_created_date: str = ""


@dataclass
class ScrumFilter:
    """Parsed filter values for scrum queries."""

    id: UUID | None = None
    user_id: UUID | None = None
    start_created_date: datetime | None = None
    end_created_date: datetime | None = None


def parse_query_params(request: Request) -> QueryParams:
    """Read the scrum query parameters from the request."""
    return QueryParams(
        page=request.query_value("page"),
        rows=request.query_value("row"),
        order_by=request.query_value("orderBy"),
        id=request.query_value("scrum_id"),
        user_id=request.query_value("user_id"),
        start_created_date=request.query_value("start_created_date"),
        end_created_date=request.query_value("end_created_date"),
    )


def parse_filter(qp: QueryParams) -> ScrumFilter:
    """Parse query parameters into a filter; raise FieldErrors on a bad value."""
    result = ScrumFilter()

    if qp.id:
        try:
            result.id = UUID(qp.id)
        except ValueError as exc:
            raise new_fields_error("scrum_id", exc) from exc

    if qp.user_id:
        try:
            result.user_id = UUID(qp.user_id)
        except ValueError as exc:
            raise new_fields_error("user_id", exc) from exc

    if qp.start_created_date:
        try:
            result.start_created_date = _parse_rfc3339(qp.start_created_date)
        except ValueError as exc:
            raise new_fields_error("start_created_date", exc) from exc

    if qp.end_created_date:
        try:
            result.end_created_date = _parse_rfc3339(qp.end_created_date)
        except ValueError as exc:
            raise new_fields_error("end_created_date", exc) from exc

    return result


# -----------------------------------------------------------------------------
# Response model


@dataclass
class Scrum:
    """A scrum as returned to the client."""

    id: str
    name: str
    time: int
    color: str
    attendees: list[str] | None
    user_id: str
    date_created: str
    date_updated: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "time": self.time,
            "color": self.color,
            "attendees": None if self.attendees is None else list(self.attendees),
            "userID": self.user_id,
            "dateCreated": self.date_created,
            "dateUpdated": self.date_updated,
        }

    def encode(self) -> tuple[bytes, str]:
        data = json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)
        return data.encode(), "application/json"


def to_app_scrum(scrum: Any) -> Scrum:
    """Convert a stored scrum into the client model."""
    return Scrum(
        id=str(scrum.id),
        user_id=str(scrum.user_id),
        name=scrum.name,
        time=scrum.time,
        color=scrum.color,
        attendees=None if scrum.attendees is None else list(scrum.attendees),
        date_created=_format_rfc3339(scrum.date_created),
        date_updated=_format_rfc3339(scrum.date_updated),
    )


def to_app_scrums(scrums: Iterable[Any]) -> list[Scrum]:
    """Convert stored scrums into client models."""
    return [to_app_scrum(scrum) for scrum in scrums]


# -----------------------------------------------------------------------------
# Request models


def _load_object(data: bytes | str) -> dict[str, Any]:
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode()
    obj = json.loads(data)
    if obj is None:
        return {}
    if not isinstance(obj, dict):
        raise ValueError(f"json: cannot unmarshal {type(obj).__name__} into an object")
    return obj


def _opt_str(obj: dict[str, Any], key: str) -> str | None:
    value = obj.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"json: field {key} must be a string")
    return value


def _opt_int(obj: dict[str, Any], key: str) -> int | None:
    value = obj.get(key)
    if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
        raise ValueError(f"json: field {key} must be an integer")
    return value


def _opt_str_list(obj: dict[str, Any], key: str) -> list[str] | None:
    value = obj.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"json: field {key} must be a list of strings")
    return list(value)


def _validate(model: Any) -> None:
    try:
        check(model)
    except Exception as exc:
        raise AppError(ErrCode.INVALID_ARGUMENT, f"validate: {exc}") from exc


@dataclass
class NewScrum:
    """The data needed to add a new scrum."""

    name: str = field(default="", metadata={"json": "name", "validate": "required"})
    time: int = field(default=0, metadata={"json": "time", "validate": "required"})
    color: str = field(default="", metadata={"json": "color", "validate": "required"})
    attendees: list[str] | None = field(
        default=None, metadata={"json": "attendees", "validate": "required"}
    )

    @classmethod
    def decode(cls, data: bytes | str) -> "NewScrum":
        """Build from a JSON document; raise ValueError on malformed input."""
        obj = _load_object(data)
        return cls(
            name=_opt_str(obj, "name") or "",
            time=_opt_int(obj, "time") or 0,
            color=_opt_str(obj, "color") or "",
            attendees=_opt_str_list(obj, "attendees"),
        )

    def validate(self) -> None:
        """Raise AppError when a required value is missing."""
        _validate(self)


@dataclass
class UpdateScrum:
    """The data needed to update a scrum; None leaves a value unchanged."""

    name: str | None = field(default=None, metadata={"json": "name"})
    time: int | None = field(default=None, metadata={"json": "time"})
    color: str | None = field(default=None, metadata={"json": "color"})
    attendees: list[str] | None = field(default=None, metadata={"json": "attendees"})

    @classmethod
    def decode(cls, data: bytes | str) -> "UpdateScrum":
        """Build from a JSON document; raise ValueError on malformed input."""
        obj = _load_object(data)
        return cls(
            name=_opt_str(obj, "name"),
            time=_opt_int(obj, "time"),
            color=_opt_str(obj, "color"),
            attendees=_opt_str_list(obj, "attendees"),
        )

    def validate(self) -> None:
        """Raise AppError when the model is not clean."""
        _validate(self)


@dataclass
class BusNewScrum:
    """A new scrum handed to the scrum store."""

    user_id: UUID
    name: str
    time: int
    color: str
    attendees: list[str] | None


@dataclass
class BusUpdateScrum:
    """Changes to a scrum handed to the scrum store."""

    name: str | None = None
    time: int | None = None
    color: str | None = None
    attendees: list[str] | None = None


def to_bus_new_scrum(ctx: RequestContext, app: NewScrum) -> BusNewScrum:
    """Combine the request model with the caller's user id."""
    try:
        user_id = ctx.require_user_id()
    except ContextError as exc:
        raise ContextError(f"getuserid: {exc}") from exc
    return BusNewScrum(
        user_id=user_id,
        name=app.name,
        time=app.time,
        color=app.color,
        attendees=app.attendees,
    )


def to_bus_update_scrum(app: UpdateScrum) -> BusUpdateScrum:
    """Convert the request model into store changes."""
    return BusUpdateScrum(
        name=app.name,
        time=app.time,
        color=app.color,
        attendees=app.attendees,
    )


# -----------------------------------------------------------------------------
# Handlers


def _decode(model_cls: Any, body: bytes) -> Any:
    app = model_cls.decode(body)
    app.validate()
    return app


class ScrumApp:
    """Scrum handlers over a store offering create, update and delete."""

    def __init__(self, scrum_bus: Any) -> None:
        self._bus = scrum_bus

    def create(self, ctx: RequestContext, request: Request) -> Scrum | AppError:
        """Create a scrum owned by the caller."""
        try:
            app = _decode(NewScrum, request.body)
        except (ValueError, AppError) as exc:
            return AppError(ErrCode.INVALID_ARGUMENT, str(exc))

        try:
            new = to_bus_new_scrum(ctx, app)
        except ContextError as exc:
            return AppError(ErrCode.INVALID_ARGUMENT, str(exc))

        try:
            scrum = self._bus.create(new)
        except Exception as exc:
            return AppError(ErrCode.INTERNAL, f"create: scrum[{app!r}]: {exc}")

        return to_app_scrum(scrum)

    def update(self, ctx: RequestContext, request: Request) -> Scrum | AppError:
        """Apply changes to the scrum loaded by middleware."""
        try:
            app = _decode(UpdateScrum, request.body)
        except (ValueError, AppError) as exc:
            return AppError(ErrCode.INVALID_ARGUMENT, str(exc))

        changes = to_bus_update_scrum(app)

        try:
            scrum = ctx.require_scrum()
        except ContextError as exc:
            return AppError(ErrCode.INTERNAL, f"scrum missing in context: {exc}")

        try:
            updated = self._bus.update(scrum, changes)
        except Exception as exc:
            return AppError(ErrCode.INTERNAL, f"update: scrumID[{scrum.id}] uh[{changes!r}]: {exc}")

        return to_app_scrum(updated)

    def delete(self, ctx: RequestContext, request: Request) -> AppError | None:
        """Delete the scrum loaded by middleware."""
        try:
            scrum = ctx.require_scrum()
        except ContextError as exc:
            return AppError(ErrCode.INTERNAL, f"scrumID missing in context: {exc}")

        try:
            self._bus.delete(scrum)
        except Exception as exc:
            return AppError(ErrCode.INTERNAL, f"delete: scrumID[{scrum.id}]: {exc}")

        return None

    def query_by_id(self, ctx: RequestContext, request: Request) -> Scrum | AppError:
        """Return the scrum loaded by middleware."""
        try:
            scrum = ctx.require_scrum()
        except ContextError as exc:
            return AppError(ErrCode.INTERNAL, f"querybyid: {exc}")
        return to_app_scrum(scrum)