"""API Dependencies - Common dependencies for routes"""
from typing import Optional
from fastapi import Header, HTTPException, Request, status

from ..config.settings import settings
from ..domain.errors import AuthenticationError
from ..utils.logger import set_correlation_id
from ..utils.idgen import generate_correlation_id


async def get_correlation_id_dep(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-Id")
) -> str:
    """
    Get or generate correlation ID for request tracing

    If client provides X-Correlation-Id, use it.
    Otherwise generate a new one.
    """
    correlation_id = x_correlation_id or generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


async def get_actor_id_dep(request: Request) -> str:
    """
    Dependency to get the acting user id

    The gateway in front of the service has already verified the caller and
    asserts the user id in the configured header.

    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    actor_id = (request.headers.get(settings.actor_header) or "").strip()
    if not actor_id:
        error = AuthenticationError(f"{settings.actor_header} header is missing")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error.to_dict()
        )
    return actor_id


async def get_idempotency_key_dep(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")
) -> Optional[str]:
    """Optional client-chosen key that makes a process call replay-safe"""
    if idempotency_key is not None:
        idempotency_key = idempotency_key.strip() or None
    return idempotency_key
