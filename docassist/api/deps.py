"""Dependencies for API endpoints."""

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from docassist.services.container import Services
from docassist.services.metrics import MetricsCollector
from docassist.utils.jwt_manager import Principal, decode_access_token
from docassist.utils.logging_config import logger

reusable_oauth2 = HTTPBearer(scheme_name="Bearer")


async def get_current_principal(
    token: HTTPAuthorizationCredentials = Depends(reusable_oauth2),
) -> Principal:
    """
    Dependency to resolve the caller from the bearer JWT. The tenant every
    downstream call is scoped to comes from this token and nowhere else.
    """
    try:
        return decode_access_token(token.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has expired."
        ) from None
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}"
        ) from e
    except ValueError as e:
        logger.warning(f"Malformed claims in token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
        ) from e


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Services are not initialized.",
        )
    return services


def get_metrics(request: Request) -> MetricsCollector:
    return request.app.state.metrics
