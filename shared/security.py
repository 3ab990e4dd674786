"""
Bearer-token helpers.

Tokens are HS256 JWTs carrying ``sub`` and a ``roles`` claim. The caller's
identity is resolved per request into a Principal and handed explicitly to
route handlers; nothing is stored in a global security context.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

import jwt
from fastapi import Request

from shared.exceptions import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

USER_ROLES = frozenset({"USERS", "ADMIN", "SUPERADMIN"})
ADMIN_ROLES = frozenset({"ADMIN", "SUPERADMIN"})


@dataclass(frozen=True)
class Principal:
    subject: str
    roles: frozenset[str] = field(default_factory=frozenset)

    def has_any_role(self, roles) -> bool:
        return bool(self.roles & set(roles))


def mint_token(
    secret: str,
    subject: str,
    roles: list[str],
    ttl_seconds: int,
) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": subject,
        "roles": list(roles),
        "iat": now,
        "exp": now + timedelta(seconds=ttl_seconds),
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def mint_service_token(secret: str, service_name: str, ttl_seconds: int = 300) -> str:
    """Short-lived token identifying a calling service, minted locally."""
    return mint_token(secret, service_name, ["ADMIN"], ttl_seconds)


def decode_token(secret: str, token: str) -> Principal:
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise UnauthorizedError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        logger.warning("JWT error: %s", exc)
        raise UnauthorizedError("Invalid token") from exc

    subject = claims.get("sub")
    if not subject:
        raise UnauthorizedError("Invalid token")
    roles = claims.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    if not isinstance(roles, list) or not all(isinstance(role, str) for role in roles):
        logger.warning("JWT error: malformed roles claim for %s", subject)
        raise UnauthorizedError("Invalid token")
    return Principal(subject=subject, roles=frozenset(roles))


def bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization")
    if not header or not header.startswith("Bearer "):
        raise UnauthorizedError()
    return header[len("Bearer "):]


def principal_dependency(
    secret_getter: Callable[[], str], allowed_roles=None
) -> Callable[[Request], Principal]:
    """
    Build a FastAPI dependency resolving the request's Principal.

    ``allowed_roles=None`` accepts any authenticated caller.
    """

    def _resolve(request: Request) -> Principal:
        principal = decode_token(secret_getter(), bearer_token(request))
        if allowed_roles is not None and not principal.has_any_role(allowed_roles):
            raise ForbiddenError()
        return principal

    return _resolve
