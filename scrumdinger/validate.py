"""Validation of request models declared as dataclasses.

Each dataclass field may carry metadata: ``json`` gives the name used in error
reports and ``validate`` holds comma separated rules: ``required``, ``email``,
``omitempty`` and ``eqfield=<attribute>``.
"""

from __future__ import annotations

import dataclasses
import re
from typing import Any

from .errs import FieldError, FieldErrors

_EMAIL = re.compile(
    r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@"
    r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$"
)


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (bool, int, float, str, bytes)):
        return bool(value)
    return True


def _label(fld: dataclasses.Field) -> str:
    name = str(fld.metadata.get("json", "")).split(",", 1)[0]
    if name in ("", "-"):
        return fld.name
    return name


def _apply(rule: str, param: str, value: Any, model: Any, label: str) -> str | None:
    if rule == "required":
        return None if _has_value(value) else f"{label} is a required field"
    if rule == "email":
        if isinstance(value, str) and _EMAIL.match(value):
            return None
        return f"{label} must be a valid email address"
    if rule == "eqfield":
        try:
            other = getattr(model, param)
        except AttributeError:
            raise ValueError(f"eqfield refers to unknown field '{param}'") from None
        return None if value == other else f"{label} must be equal to {param}"
    raise ValueError(f"undefined validation function '{rule}' on field '{label}'")


def check(model: Any) -> None:
    """Validate a dataclass instance against its declared rules.

    Raises FieldErrors naming every failing field, with the first failing
    rule reported for each.
    """
    if not dataclasses.is_dataclass(model) or isinstance(model, type):
        raise TypeError(f"cannot validate {type(model).__name__}: not a dataclass instance")

    failures: list[FieldError] = []
    for fld in dataclasses.fields(model):
        tag = fld.metadata.get("validate")
        if not tag or tag == "-":
            continue
        value = getattr(model, fld.name)
        label = _label(fld)
        for item in tag.split(","):
            rule, _, param = item.strip().partition("=")
            if rule == "omitempty":
                if not _has_value(value):
                    break
                continue
            message = _apply(rule, param, value, model, label)
            if message is not None:
                failures.append(FieldError(label, message))
                break

    if failures:
        raise FieldErrors(failures)