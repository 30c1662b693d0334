import json
from uuid import uuid4

import httpx
import pytest

from scrumdinger.auth import Claims
from scrumdinger.authclient import AuthClient, AuthClientError, AuthenticateResp, Authorize
from scrumdinger.errs import AppError, ErrCode

BASE = "http://auth.example.com"


def _client(handler):
    return AuthClient(BASE, client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_authenticate_success():
    uid = uuid4()
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["method"] = request.method
        body = {"UserID": str(uid), "Claims": {"sub": str(uid), "roles": ["USER"]}}
        return httpx.Response(200, json=body)

    resp = _client(handler).authenticate("Bearer token")
    assert resp.user_id == uid
    assert resp.claims.subject == str(uid)
    assert resp.claims.roles == ["USER"]
    assert seen == {"path": "/v1/auth/authenticate", "auth": "Bearer token", "method": "GET"}


def test_authorize_no_content_posts_body():
    uid = uuid4()
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        seen["ctype"] = request.headers.get("content-type")
        return httpx.Response(204)

    auth = Authorize(user_id=uid, claims=Claims(subject=str(uid), roles=["ADMIN"]), rule="rule_admin_only")
    assert _client(handler).authorize(auth) is None
    assert seen["path"] == "/v1/auth/authorize"
    assert seen["method"] == "POST"
    assert seen["ctype"] == "application/json"
    assert Authorize.from_dict(seen["body"]) == auth


def test_unauthorized_raises_app_error():
    def handler(request):
        return httpx.Response(401, json={"code": "unauthenticated", "message": "denied"})

    with pytest.raises(AppError) as info:
        _client(handler).authenticate("Bearer token")
    assert info.value.code is ErrCode.UNAUTHENTICATED
    assert info.value.message == "denied"


def test_other_status_raises():
    def handler(request):
        return httpx.Response(500, text="boom")

    with pytest.raises(AuthClientError, match="failed: response: boom"):
        _client(handler).authenticate("Bearer token")


def test_bad_json_raises_decoding_error():
    def handler(request):
        return httpx.Response(200, text="not json")

    with pytest.raises(AuthClientError, match="decoding error"):
        _client(handler).authenticate("Bearer token")


def test_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(AuthClientError, match="do: error"):
        _client(handler).authenticate("Bearer token")


def test_authenticate_resp_round_trip():
    uid = uuid4()
    resp = AuthenticateResp(user_id=uid, claims=Claims(subject=str(uid), roles=["USER"]))
    data, ctype = resp.encode()
    assert ctype == "application/json"
    assert AuthenticateResp.from_dict(json.loads(data)) == resp


def test_authorize_from_dict_defaults():
    auth = Authorize.from_dict({})
    assert auth.user_id.int == 0
    assert auth.rule == ""
    assert auth.claims == Claims()