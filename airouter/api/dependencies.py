"""
FastAPI dependencies: shared services and admin authentication.
"""
import secrets
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from airouter.core.config import settings
from airouter.core.logger import get_logger
from airouter.services.health_check import HealthCheckService
from airouter.services.router import RoutingService

logger = get_logger(__name__)


def get_routing_service(request: Request) -> RoutingService:
    """Routing service built once at startup."""
    return request.app.state.routing


def get_health_check_service(request: Request) -> HealthCheckService:
    return request.app.state.health_checks


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def verify_admin_key(
    authorization: Optional[str] = Header(None),
    x_admin_key: Optional[str] = Header(None)
) -> str:
    """
    Require the admin key as a Bearer token or ``X-Admin-Key`` header.

    Raises:
        HTTPException: 401 when no key is supplied, 403 when it is wrong
    """
    supplied = _bearer_token(authorization) or x_admin_key

    if not supplied:
        logger.warning("Admin key missing in request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin key is required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not secrets.compare_digest(supplied.encode(), settings.admin_key.encode()):
        logger.warning("Invalid admin key attempted")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin key",
        )

    return supplied
