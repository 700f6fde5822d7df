"""Utility for issuing and verifying the bearer tokens the API accepts."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from docassist.settings import settings

ALGORITHM = "HS256"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller: who they are and which tenant they act for."""

    user_id: uuid.UUID
    tenant_id: uuid.UUID


def create_access_token(
    user_id: uuid.UUID | str,
    tenant_id: uuid.UUID | str,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """
    Creates a JWT for a user acting within a tenant.

    Args:
        user_id: The ID of the user, stored as the subject.
        tenant_id: The ID of the user's organization.
        expires_in: Lifetime of the token.

    Returns:
        str: The encoded JWT token.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "iat": now,
        "exp": now + expires_in,
        "aud": settings.JWT_AUDIENCE,
        "sub": str(user_id),
        "tenant_id": str(tenant_id),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Principal:
    """
    Verify a token and return its principal.

    Raises:
        jwt.InvalidTokenError: On a bad signature, expiry or audience.
        ValueError: If the subject or tenant claim is missing or not a UUID.
    """
    payload = jwt.decode(
        token, settings.JWT_SECRET, algorithms=[ALGORITHM], audience=settings.JWT_AUDIENCE
    )
    user_id = payload.get("sub")
    tenant_id = payload.get("tenant_id")
    if not user_id or not tenant_id:
        raise ValueError("Token missing required claims")
    return Principal(user_id=uuid.UUID(user_id), tenant_id=uuid.UUID(tenant_id))
