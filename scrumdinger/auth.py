"""Authentication and authorization of API callers.

Authentication: you are who you say you are.
Authorization: you have permission to do what you are requesting to do.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

RULE_AUTHENTICATE = "auth"
RULE_ANY = "rule_any"
RULE_ADMIN_ONLY = "rule_admin_only"
RULE_USER_ONLY = "rule_user_only"
RULE_ADMIN_OR_SUBJECT = "rule_admin_or_subject"

ROLE_ADMIN = "ADMIN"
ROLE_USER = "USER"

_ALGORITHM = "RS256"

_log = logging.getLogger(__name__)


class AuthError(Exception):
    """Raised when a token cannot be produced, authenticated or authorized."""


@dataclass
class Claims:
    """Authorization claims carried in a JWT."""

    subject: str = ""
    issuer: str = ""
    audience: list[str] = field(default_factory=list)
    expires_at: int | None = None
    not_before: int | None = None
    issued_at: int | None = None
    jwt_id: str = ""
    roles: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.issuer:
            data["iss"] = self.issuer
        if self.subject:
            data["sub"] = self.subject
        if self.audience:
            data["aud"] = list(self.audience)
        if self.expires_at is not None:
            data["exp"] = self.expires_at
        if self.not_before is not None:
            data["nbf"] = self.not_before
        if self.issued_at is not None:
            data["iat"] = self.issued_at
        if self.jwt_id:
            data["jti"] = self.jwt_id
        data["roles"] = list(self.roles)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Claims":
        aud = data.get("aud") or []
        if isinstance(aud, str):
            aud = [aud]

        def _num(key: str) -> int | None:
            value = data.get(key)
            return None if value is None else int(value)

        return cls(
            subject=data.get("sub", "") or "",
            issuer=data.get("iss", "") or "",
            audience=list(aud),
            expires_at=_num("exp"),
            not_before=_num("nbf"),
            issued_at=_num("iat"),
            jwt_id=data.get("jti", "") or "",
            roles=list(data.get("roles") or []),
        )


class KeyLookup(Protocol):
    """Looks up PEM encoded keys by key id."""

    def private_key(self, kid: str) -> str:
        """Return the PEM encoded private key for kid."""

    def public_key(self, kid: str) -> str:
        """Return the PEM encoded public key for kid."""


def evaluate_rule(rule: str, claims: Claims, user_id: UUID | None) -> bool:
    """Tell whether the claims satisfy the named authorization rule."""
    roles = set(claims.roles)
    is_admin = ROLE_ADMIN in roles
    is_user = ROLE_USER in roles
    if rule == RULE_ANY:
        return is_admin or is_user
    if rule == RULE_ADMIN_ONLY:
        return is_admin
    if rule == RULE_USER_ONLY:
        return is_user
    if rule == RULE_ADMIN_OR_SUBJECT:
        subject_match = user_id is not None and claims.subject == str(user_id)
        return is_admin or (is_user and subject_match)
    raise ValueError(f"unknown rule {rule!r}")


class Auth:
    """Generates signed tokens for claims and recovers claims from tokens."""

    def __init__(
        self,
        key_lookup: KeyLookup,
        issuer: str = "",
        user_bus: Any = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._keys = key_lookup
        self.issuer = issuer
        self._user_bus = user_bus
        self._log = log or _log

    def generate_token(self, kid: str, claims: Claims) -> str:
        """Return a signed JWT representing the claims."""
        try:
            pem = self._keys.private_key(kid)
        except Exception as exc:
            raise AuthError(f"private key: {exc}") from exc

        try:
            key = serialization.load_pem_private_key(pem.encode(), password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise AuthError(f"parsing private pem: {exc}") from exc
        if not isinstance(key, rsa.RSAPrivateKey):
            raise AuthError("parsing private pem: key is not an RSA private key")

        try:
            return jwt.encode(claims.to_dict(), key, algorithm=_ALGORITHM, headers={"kid": kid})
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise AuthError(f"signing token: {exc}") from exc

    def authenticate(self, bearer_token: str) -> Claims:
        """Validate a "Bearer <token>" value and return its claims."""
        if not bearer_token.startswith("Bearer "):
            raise AuthError("expected authorization header format: Bearer <token>")
        token = bearer_token[7:]

        try:
            header = jwt.get_unverified_header(token)
            payload = jwt.decode(token, options={"verify_signature": False})
            claims = Claims.from_dict(payload)
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise AuthError(f"error parsing token: {exc}") from exc

        if "kid" not in header:
            raise AuthError("kid missing from header")
        kid = header["kid"]
        if not isinstance(kid, str):
            raise AuthError("kid malformed")

        try:
            pem = self._keys.public_key(kid)
        except Exception as exc:
            raise AuthError(f"failed to fetch public key: {exc}") from exc

        try:
            self._verify(token, pem)
        except AuthError as exc:
            self._log.info("**Authenticate-FAILED** token=%s", token)
            raise AuthError(f"authentication failed : {exc}") from exc

        try:
            self._check_user_enabled(claims)
        except AuthError as exc:
            raise AuthError(f"user not enabled : {exc}") from exc

        return claims

    def authorize(self, claims: Claims, user_id: UUID | None, rule: str) -> None:
        """Raise AuthError unless the claims satisfy the rule for user_id."""
        try:
            allowed = evaluate_rule(rule, claims, user_id)
        except ValueError as exc:
            raise AuthError(f"rego evaluation failed : {exc}") from exc
        if not allowed:
            raise AuthError(f"rego evaluation failed : rule[{rule}] roles{claims.roles} denied")

    def _verify(self, token: str, pem: str) -> None:
        try:
            payload = jwt.decode(token, pem, algorithms=[_ALGORITHM])
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise AuthError(str(exc)) from exc
        if payload.get("iss", "") != self.issuer:
            raise AuthError("issuer does not match")

    def _check_user_enabled(self, claims: Claims) -> None:
        if self._user_bus is None:
            return
        try:
            user_id = UUID(claims.subject)
        except ValueError as exc:
            raise AuthError(f"parse user: {exc}") from exc
        try:
            usr = self._user_bus.query_by_id(user_id)
        except Exception as exc:
            raise AuthError(f"query user: {exc}") from exc
        if not usr.enabled:
            raise AuthError("user disabled")