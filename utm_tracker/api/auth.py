"""FastAPI authentication dependencies for the Gallabox webhook."""

import secrets
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from utm_tracker.core.context import AppContext, get_context
from utm_tracker.core.exceptions import AuthenticationFailure
from utm_tracker.core.logging import get_logger, log_fields

logger = get_logger("api.auth")

# Gallabox sends the shared secret configured on the webhook in this header
gallabox_token_header = APIKeyHeader(name="X-Gallabox-Token", auto_error=False)


def check_webhook_token(provided: Optional[str], expected: str) -> None:
    """Raise AuthenticationFailure unless `provided` equals the shared secret."""
    if not provided or not secrets.compare_digest(provided, expected):
        raise AuthenticationFailure("Invalid token")


async def verify_gallabox_token(
    token: Annotated[Optional[str], Security(gallabox_token_header)] = None,
    context: AppContext = Depends(get_context),
) -> None:
    """Reject webhook calls that do not carry the shared secret (401)."""
    try:
        check_webhook_token(token, context.secrets.gallabox_token)
    except AuthenticationFailure as e:
        logger.warning("Rejected webhook with invalid token", extra=log_fields(stage="auth"))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        ) from e
