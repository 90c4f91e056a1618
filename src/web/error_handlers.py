"""
Custom error handlers for the Article Insight API.

Provides user-friendly error messages and prevents technical details
from leaking to API clients.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import logging


logger = logging.getLogger(__name__)

# User-friendly error messages (don't expose technical details)
ERROR_MESSAGES = {
    # Entry errors
    "entry_not_found": "Article not found.",
    "missing_content": "This article has no content to analyze.",
    # Queue errors
    "job_not_found": "Analysis job not found.",
    "invalid_job_state": "This job can't be changed in its current state.",
    "max_retries": "This job has already used all of its retry attempts.",
    "queue_validation": "Please check the queue name and priority (1-10) and try again.",
    "queue_unavailable": "The analysis queue is temporarily unavailable. Please try again shortly.",
    # Feedback errors
    "feedback_validation": "Please include a rating, a verdict, tags, or a comment.",
    # Analysis errors
    "analysis_input": "Cannot analyze empty content.",
    # Generic errors
    "server_error": "Something went wrong on our end. Please try again in a few moments.",
    "validation_error": "Please check your input and try again.",
}


def get_friendly_message(exception: Exception) -> str:
    """
    Convert exception to user-friendly message.

    Args:
        exception: The exception that was raised

    Returns:
        User-friendly error message (no technical details)
    """
    exception_name = exception.__class__.__name__

    if exception_name == "EntryNotFoundError":
        return ERROR_MESSAGES["entry_not_found"]
    elif exception_name == "MissingContentError":
        return ERROR_MESSAGES["missing_content"]
    elif exception_name == "JobNotFoundError":
        return ERROR_MESSAGES["job_not_found"]
    elif exception_name == "InvalidJobStateError":
        error_str = str(exception).lower()
        if "attempts" in error_str:
            return ERROR_MESSAGES["max_retries"]
        return ERROR_MESSAGES["invalid_job_state"]
    elif exception_name == "QueueValidationError":
        return ERROR_MESSAGES["queue_validation"]
    elif exception_name == "QueueInfrastructureError":
        return ERROR_MESSAGES["queue_unavailable"]
    elif exception_name == "FeedbackValidationError":
        return ERROR_MESSAGES["feedback_validation"]
    elif exception_name == "AnalysisInputError":
        return ERROR_MESSAGES["analysis_input"]
    else:
        # Generic fallback
        return ERROR_MESSAGES["server_error"]


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all handler for unexpected errors.

    Logs the full traceback and returns only a generic message.
    """
    logger.error(
        f"Unhandled exception in {request.method} {request.url.path}",
        exc_info=exc,
        extra={"method": request.method, "path": request.url.path},
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": ERROR_MESSAGES["server_error"]},
    )


def _clean_error(error: dict) -> dict:
    clean = {
        "type": error.get("type"),
        "loc": error.get("loc"),
        "msg": error.get("msg"),
        "input": error.get("input"),
    }
    # ctx may hold exception instances, which JSON can't carry
    if "ctx" in error:
        clean["ctx"] = {
            key: value if isinstance(value, (str, int, float, bool, type(None))) else str(value)
            for key, value in error["ctx"].items()
        }
    return clean


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle request validation errors.

    Args:
        request: The FastAPI request
        exc: The validation error

    Returns:
        422 JSON response listing the invalid fields
    """
    logger.warning(f"Validation error in {request.method} {request.url.path}: {exc.errors()}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": [_clean_error(error) for error in exc.errors()]},
    )
