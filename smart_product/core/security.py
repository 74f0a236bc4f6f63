"""Caller identity resolved from the Authorization header"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from fastapi import Header, Request
from jose import JWTError, jwt

from smart_product.core.errors import AccessDeniedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ticket:
    """Authenticated caller: subject id and group memberships"""

    sub: str
    groups: List[str] = field(default_factory=list)

    def in_group(self, group: str) -> bool:
        return group in self.groups


def decode_ticket(token: str, settings) -> Ticket:
    """Validate a bearer token and build the caller's ticket"""
    options = {"verify_aud": settings.AUTH_AUDIENCE is not None}
    try:
        claims = jwt.decode(
            token,
            settings.AUTH_SECRET_KEY,
            algorithms=[settings.AUTH_ALGORITHM],
            audience=settings.AUTH_AUDIENCE,
            options=options,
        )
    except JWTError as e:
        logger.info(f"[AccessDeniedException] Token rejected: {e}")
        raise AccessDeniedError("Access denied: the authorization token is invalid.") from e

    sub = claims.get("sub")
    if not sub:
        raise AccessDeniedError("Access denied: the authorization token has no subject.")

    groups = claims.get("cognito:groups") or []
    if isinstance(groups, str):
        groups = [groups]
    return Ticket(sub=sub, groups=list(groups))


async def get_ticket(
    request: Request, authorization: Optional[str] = Header(None)
) -> Ticket:
    """FastAPI dependency resolving the caller's ticket"""
    if not authorization:
        raise AccessDeniedError("Access denied: missing authorization header.")

    token = authorization.strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    return decode_ticket(token, request.app.state.settings)
