"""
JWT Token Verification — HS256 shared secret

Tokens are issued by the account service and signed with HS256 using
settings.jwt_secret. This module only verifies them.

Claims:
  sub        user id (always present)
  tenant_id  optional; the owning tenant. Falls back to sub, so a
             single-user account is its own tenant.
  email      optional
  exp        required; expired tokens are rejected
  aud        checked only when settings.jwt_audience is set
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel

from ragchat.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# HTTP Bearer extractor
# ---------------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Verified token payload
# ---------------------------------------------------------------------------

class TokenPayload(BaseModel):
    """Parsed, validated JWT claims — passed to route handlers."""
    sub:       str
    email:     str = ""
    tenant_id: UUID
    exp:       int


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_tenant_id(claims: dict) -> UUID:
    raw = claims.get("tenant_id") or claims.get("sub")
    if not raw:
        raise _unauthorized("Token missing tenant_id claim")
    try:
        return UUID(str(raw))
    except ValueError:
        raise _unauthorized(f"Invalid tenant_id in token: {raw}")


# ---------------------------------------------------------------------------
# Main verification function
# ---------------------------------------------------------------------------

def verify_token(token: str) -> TokenPayload:
    """
    Verify a JWT token:
      1. Verify HS256 signature and expiry (audience when configured).
      2. Extract tenant_id (tenant_id claim, else sub).
      3. Return a typed TokenPayload.
    """
    options = {"verify_exp": True, "verify_aud": bool(settings.jwt_audience)}
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience or None,
            options=options,
        )
    except ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except JWTError as exc:
        logger.info("Rejected token: %s", exc)
        raise _unauthorized(f"Invalid token: {exc}")

    if not claims.get("sub") or "exp" not in claims:
        raise _unauthorized("Token missing required claims")

    return TokenPayload(
        sub=str(claims["sub"]),
        email=claims.get("email", ""),
        tenant_id=_extract_tenant_id(claims),
        exp=int(claims["exp"]),
    )


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> TokenPayload:
    """
    FastAPI dependency that extracts and validates the Bearer token.

        @router.get("/documents")
        async def list_docs(user: TokenPayload = Depends(get_current_user)):
            ...
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Access token required")
    return verify_token(credentials.credentials)
