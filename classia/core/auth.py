"""
Caller identity for the API.

Validates HS256 JWTs issued by the auth provider and extracts the account id
from the 'sub' claim. Falls back to the X-User-Id header when
ALLOW_HEADER_AUTH is enabled (development and tests).

The account id is resolved once here and passed explicitly into every core
operation.
"""
from fastapi import Header, Request
from typing import Optional
from classia.core.config import settings
from classia.core.errors import AuthError
import jwt
import logging

logger = logging.getLogger(__name__)


def verify_jwt(token: str) -> str:
    """
    Verify a bearer JWT and return its subject.

    Raises:
        AuthError: Invalid, expired or unverifiable token
    """
    if not settings.AUTH_JWT_SECRET:
        raise AuthError("Token authentication is not configured")

    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise AuthError("Invalid token")

    account_id = payload.get("sub")
    if not account_id:
        raise AuthError("Token has no subject")
    return str(account_id)


async def get_current_account_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Development fallback: caller account ID"),
) -> str:
    """
    Extract the caller's account id from the request.

    Priority:
    1. Bearer JWT from the Authorization header
    2. X-User-Id header (only when ALLOW_HEADER_AUTH is on)
    3. AuthError (401)
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        # An invalid token never falls through to the header
        return verify_jwt(auth_header[7:].strip())

    if x_user_id and x_user_id.strip() and settings.ALLOW_HEADER_AUTH:
        return x_user_id.strip()

    raise AuthError("Missing Authorization (Bearer JWT) or X-User-Id header")
