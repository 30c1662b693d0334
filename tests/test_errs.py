import json
import os
from http import HTTPStatus

import pytest

from scrumdinger.errs import (
    AppError,
    ErrCode,
    FieldError,
    FieldErrors,
    get_field_errors,
    is_field_errors,
    new_error,
    new_fields_error,
)


@pytest.mark.parametrize("code", [c for c in ErrCode if c is not ErrCode.NO_CONTENT])
def test_code_name_round_trip(code):
    assert ErrCode.from_name(str(code)) is code


def test_no_content_names_are_asymmetric():
    assert str(ErrCode.NO_CONTENT) == "ok_no_content"
    assert ErrCode.from_name("no_content") is ErrCode.NO_CONTENT
    with pytest.raises(ValueError):
        ErrCode.from_name("ok_no_content")


def test_unknown_code_name():
    with pytest.raises(ValueError, match="does not exist"):
        ErrCode.from_name("bogus")


def test_code_values_from_names():
    assert ErrCode.from_name("ok").value == 0
    assert ErrCode.from_name("invalid_argument").value == 4
    assert ErrCode.from_name("unauthenticated").value == 17
    assert ErrCode.from_name("internal_only_log").value == 19


@pytest.mark.parametrize(
    "code,status",
    [
        (ErrCode.INVALID_ARGUMENT, HTTPStatus.BAD_REQUEST),
        (ErrCode.UNAUTHENTICATED, HTTPStatus.UNAUTHORIZED),
        (ErrCode.NOT_FOUND, HTTPStatus.NOT_FOUND),
        (ErrCode.NO_CONTENT, HTTPStatus.NO_CONTENT),
        (ErrCode.INTERNAL_ONLY_LOG, HTTPStatus.INTERNAL_SERVER_ERROR),
        (ErrCode.ABORTED, HTTPStatus.CONFLICT),
        (ErrCode.CANCELED, HTTPStatus.GATEWAY_TIMEOUT),
        (ErrCode.RESOURCE_EXHAUSTED, HTTPStatus.TOO_MANY_REQUESTS),
    ],
)
def test_http_status(code, status):
    assert code.http_status() == status
    assert AppError(code, "x").http_status() == status


def test_app_error_message_and_equality():
    err = AppError(ErrCode.INVALID_ARGUMENT, "bad input")
    assert str(err) == "bad input"
    assert err == AppError(ErrCode.INVALID_ARGUMENT, "bad input")
    assert err != AppError(ErrCode.INTERNAL, "bad input")


def test_app_error_encode():
    data, content_type = AppError(ErrCode.INVALID_ARGUMENT, "bad input").encode()
    assert content_type == "application/json"
    assert json.loads(data) == {"code": "invalid_argument", "message": "bad input"}


def test_app_error_dict_round_trip():
    err = AppError(ErrCode.UNAUTHENTICATED, "denied")
    assert AppError.from_dict(err.to_dict()) == err


def test_app_error_from_dict_bad_code():
    with pytest.raises(ValueError):
        AppError.from_dict({"code": "nope", "message": "m"})


def test_app_error_records_caller():
    err = AppError(ErrCode.INTERNAL, "x")
    assert err.func_name == "test_app_error_records_caller"
    path = err.file_name.rsplit(":", 1)[0]
    assert os.path.basename(path) == os.path.basename(__file__)


def test_new_error_passes_app_error_through():
    err = AppError(ErrCode.NOT_FOUND, "missing")
    assert new_error(err) is err


def test_new_error_finds_wrapped():
    inner = AppError(ErrCode.NOT_FOUND, "missing")
    try:
        try:
            raise inner
        except AppError as exc:
            raise RuntimeError("outer") from exc
    except RuntimeError as outer:
        assert new_error(outer) is inner


def test_new_error_wraps_plain_error():
    err = new_error(ValueError("boom"))
    assert err.code is ErrCode.INTERNAL
    assert err.message == "boom"


def test_field_errors_string_is_compact_json():
    fe = new_fields_error("name", ValueError("boom"))
    assert str(fe) == '[{"field":"name","error":"boom"}]'
    assert json.loads(str(fe)) == [{"field": "name", "error": "boom"}]


def test_field_errors_fields_and_encode():
    fe = FieldErrors([FieldError("a", "one"), FieldError("b", "two")])
    assert fe.fields() == {"a": "one", "b": "two"}
    data, content_type = fe.encode()
    assert content_type == "application/json"
    assert json.loads(data) == [
        {"field": "a", "error": "one"},
        {"field": "b", "error": "two"},
    ]
    assert len(fe) == 2


def test_is_and_get_field_errors():
    fe = new_fields_error("page", "bad page")
    try:
        try:
            raise fe
        except FieldErrors as exc:
            raise RuntimeError("wrapped") from exc
    except RuntimeError as outer:
        assert is_field_errors(outer)
        assert get_field_errors(outer) is fe
    assert not is_field_errors(ValueError("x"))
    assert get_field_errors(ValueError("x")) is None