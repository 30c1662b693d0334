import time
from types import SimpleNamespace
from uuid import uuid4

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from scrumdinger.auth import (
    RULE_ADMIN_ONLY,
    RULE_ADMIN_OR_SUBJECT,
    RULE_ANY,
    RULE_USER_ONLY,
    Auth,
    AuthError,
    Claims,
    evaluate_rule,
)

KID = "test-kid"
ISSUER = "test issuer"
OTHER_ISSUER = "someone else"
ALGORITHM = "RS256"


def _make_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


PRIVATE = _make_key()
PRIVATE_PEM = PRIVATE.private_bytes(
    serialization.Encoding.PEM,
    serialization.PrivateFormat.PKCS8,
    serialization.NoEncryption(),
).decode()
PUBLIC_PEM = (
    PRIVATE.public_key()
    .public_bytes(serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo)
    .decode()
)


class KeyStore:
    def __init__(self, private_pem=PRIVATE_PEM, public_pem=PUBLIC_PEM):
        self._private = {KID: private_pem}
        self._public = {KID: public_pem}

    def private_key(self, kid):
        return self._private[kid]

    def public_key(self, kid):
        return self._public[kid]


class UserBus:
    def __init__(self, enabled):
        self.enabled = enabled

    def query_by_id(self, user_id):
        return SimpleNamespace(id=user_id, enabled=self.enabled)


def _claims(**kw):
    now = int(time.time())
    base = dict(
        subject=str(uuid4()),
        issuer=ISSUER,
        expires_at=now + 3600,
        issued_at=now,
        roles=["USER"],
    )
    base.update(kw)
    return Claims(**base)


def test_round_trip():
    ath = Auth(KeyStore(), issuer=ISSUER)
    claims = _claims()
    signed = ath.generate_token(KID, claims)
    assert jwt.get_unverified_header(signed)["kid"] == KID
    assert ath.authenticate("Bearer " + signed) == claims


def test_missing_bearer_prefix():
    ath = Auth(KeyStore(), issuer=ISSUER)
    with pytest.raises(AuthError, match="expected authorization header format: Bearer <token>"):
        ath.authenticate("token")


def test_garbage_token():
    ath = Auth(KeyStore(), issuer=ISSUER)
    with pytest.raises(AuthError, match="error parsing token"):
        ath.authenticate("Bearer token")


def test_wrong_issuer_fails():
    ath = Auth(KeyStore(), issuer=ISSUER)
    claims = _claims(issuer=OTHER_ISSUER)
    signed = ath.generate_token(KID, claims)
    with pytest.raises(AuthError, match="authentication failed"):
        ath.authenticate("Bearer " + signed)


def test_expired_token_fails():
    ath = Auth(KeyStore(), issuer=ISSUER)
    signed = ath.generate_token(KID, _claims(expires_at=int(time.time()) - 60))
    with pytest.raises(AuthError, match="authentication failed"):
        ath.authenticate("Bearer " + signed)


def test_wrong_public_key_fails():
    other = _make_key().public_key().public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode()
    signer = Auth(KeyStore(), issuer=ISSUER)
    verifier = Auth(KeyStore(public_pem=other), issuer=ISSUER)
    signed = signer.generate_token(KID, _claims())
    with pytest.raises(AuthError, match="authentication failed"):
        verifier.authenticate("Bearer " + signed)


def test_missing_kid():
    ath = Auth(KeyStore(), issuer=ISSUER)
    signed = jwt.encode(_claims().to_dict(), PRIVATE, algorithm=ALGORITHM)
    with pytest.raises(AuthError, match="kid missing from header"):
        ath.authenticate("Bearer " + signed)


def test_unknown_kid():
    ath = Auth(KeyStore(), issuer=ISSUER)
    with pytest.raises(AuthError, match="private key"):
        ath.generate_token("other", _claims())


def test_bad_private_pem():
    ath = Auth(KeyStore(private_pem="placeholder"), issuer=ISSUER)
    with pytest.raises(AuthError, match="parsing private pem"):
        ath.generate_token(KID, _claims())


def test_disabled_user_rejected():
    ath = Auth(KeyStore(), issuer=ISSUER, user_bus=UserBus(enabled=False))
    signed = ath.generate_token(KID, _claims())
    with pytest.raises(AuthError, match="user disabled"):
        ath.authenticate("Bearer " + signed)


def test_enabled_user_accepted():
    ath = Auth(KeyStore(), issuer=ISSUER, user_bus=UserBus(enabled=True))
    claims = _claims()
    signed = ath.generate_token(KID, claims)
    assert ath.authenticate("Bearer " + signed).subject == claims.subject


def test_claims_dict_round_trip():
    claims = _claims(audience=["a", "b"], jwt_id="j1")
    assert Claims.from_dict(claims.to_dict()) == claims


def test_claims_single_audience_string():
    assert Claims.from_dict({"aud": "svc"}).audience == ["svc"]


@pytest.mark.parametrize(
    "rule, roles, expected",
    [
        (RULE_ANY, ["USER"], True),
        (RULE_ANY, ["ADMIN"], True),
        (RULE_ANY, [], False),
        (RULE_ADMIN_ONLY, ["USER"], False),
        (RULE_ADMIN_ONLY, ["ADMIN"], True),
        (RULE_USER_ONLY, ["USER"], True),
        (RULE_USER_ONLY, ["ADMIN"], False),
    ],
)
def test_evaluate_role_rules(rule, roles, expected):
    assert evaluate_rule(rule, Claims(roles=roles), uuid4()) is expected


def test_admin_or_subject():
    uid = uuid4()
    assert evaluate_rule(RULE_ADMIN_OR_SUBJECT, Claims(subject=str(uid), roles=["USER"]), uid)
    assert not evaluate_rule(RULE_ADMIN_OR_SUBJECT, Claims(subject=str(uid), roles=["USER"]), uuid4())
    assert evaluate_rule(RULE_ADMIN_OR_SUBJECT, Claims(subject=str(uid), roles=["ADMIN"]), uuid4())


def test_evaluate_unknown_rule():
    with pytest.raises(ValueError):
        evaluate_rule("nope", Claims(), None)


def test_authorize_denied_and_allowed():
    ath = Auth(KeyStore(), issuer=ISSUER)
    with pytest.raises(AuthError, match="rego evaluation failed"):
        ath.authorize(Claims(roles=["USER"]), uuid4(), RULE_ADMIN_ONLY)
    with pytest.raises(AuthError, match="rego evaluation failed"):
        ath.authorize(Claims(roles=["ADMIN"]), uuid4(), "nope")
    assert ath.authorize(Claims(roles=["ADMIN"]), uuid4(), RULE_ADMIN_ONLY) is None