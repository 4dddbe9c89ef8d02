import logging

from fastapi import HTTPException

logger = logging.getLogger(__name__)


def as_http_500(e: Exception) -> HTTPException:
    """Log exception and return a generic 500 HTTPException (no internal details leaked).
    Why available: Centralized error handling so the API never leaks stack traces or internal state to clients."""
    logger.error("unhandled_error", exc_info=(type(e), e, e.__traceback__))
    return HTTPException(status_code=500, detail="Internal server error")
