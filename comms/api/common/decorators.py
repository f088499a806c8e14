import logging
from functools import wraps

from fastapi import HTTPException, status

from comms.api.common.exceptions import handle_service_error
from comms.services.exceptions import (
    ConflictError,
    ConversationNotFoundError,
    InvalidRequestError,
    LogEntryNotFoundError,
    NotAuthorizedError,
    ServiceError,
    TemplateNotFoundError,
    UserNotFoundError,
)

logger = logging.getLogger(__name__)

# Expected outcomes of a request; logged without a traceback.
EXPECTED_SERVICE_ERRORS = (
    ConflictError,
    ConversationNotFoundError,
    InvalidRequestError,
    LogEntryNotFoundError,
    NotAuthorizedError,
    TemplateNotFoundError,
    UserNotFoundError,
)


def log_route_call(func):
    """Logs entry to and exit from a route, and any exception it raises."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        route_logger = logging.getLogger(func.__module__)

        logged_kwargs = {k: repr(v) for k, v in kwargs.items()}
        route_logger.info(f"Entering route: {func.__name__} (kwargs: {logged_kwargs})")
        try:
            result = await func(*args, **kwargs)
            route_logger.info(f"Successfully exited route: {func.__name__}")
            return result
        except Exception as e:
            route_logger.error(
                f"Error during route: {func.__name__}. "
                f"Exception: {type(e).__name__} - {e}",
                exc_info=False,
            )
            raise

    return wrapper


def handle_route_errors(func):
    """Translates service-layer exceptions into HTTP responses.

    Unknown exceptions become a generic 500 so internals never leak.
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except EXPECTED_SERVICE_ERRORS as e:
            logger.warning(f"Service error in {func.__name__} route: {e}")
            handle_service_error(e)
        except ServiceError as e:
            logger.error(
                f"Generic service error in {func.__name__} route: {e}", exc_info=True
            )
            handle_service_error(e)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(
                f"Unexpected error in {func.__name__} route: {e}", exc_info=True
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="An unexpected server error occurred.",
            )

    return wrapper
