"""Bearer token auth dependency.

Tokens are HS256 JWTs whose `sub` claim is the caller's user id.
"""

import uuid
from typing import Annotated

import jwt
from fastapi import Depends, Header

from policyrag.config import Settings, get_settings
from policyrag.db.context import RequestContext
from policyrag.errors import Unauthorized


def decode_token(token: str, settings: Settings) -> RequestContext:
    """Verify a JWT and build the request context from its subject.

    Args:
        token: Encoded JWT
        settings: Settings carrying the signing secret and algorithm

    Returns:
        RequestContext for the token's subject

    Raises:
        Unauthorized: If the token is invalid, expired or has no UUID subject
    """
    secret = settings.jwt_secret.get_secret_value()
    if not secret:
        raise Unauthorized("Authentication is not configured")

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options={"require": ["sub"], "verify_aud": settings.jwt_audience is not None},
        )
    except jwt.ExpiredSignatureError as e:
        raise Unauthorized("Token expired") from e
    except jwt.InvalidTokenError as e:
        raise Unauthorized("Invalid token") from e

    try:
        user_id = uuid.UUID(str(payload["sub"]))
    except ValueError as e:
        raise Unauthorized("Invalid token subject") from e

    return RequestContext(user_id=user_id)


async def get_current_context(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: Annotated[str | None, Header()] = None,
) -> RequestContext:
    """Extract request context from the Authorization header.

    Args:
        settings: Application settings
        authorization: Authorization header (e.g., "Bearer <token>")

    Returns:
        RequestContext with user_id

    Raises:
        Unauthorized: If the header is missing or the token is invalid
    """
    if not authorization:
        raise Unauthorized("Missing bearer token")

    if not authorization.startswith("Bearer "):
        raise Unauthorized("Invalid authorization header format")

    token = authorization[7:]  # Strip "Bearer "
    return decode_token(token, settings)
