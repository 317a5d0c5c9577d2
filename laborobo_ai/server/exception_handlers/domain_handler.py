"""
Domain Error Handlers.

Maps ``LaboroboAIError`` subclasses raised by the service layer to HTTP
responses: missing resources to 404, state conflicts to 409.
"""

from typing import Dict, Type

from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from laborobo_ai.agent_core.errors import (
    InboxItemAlreadyDecided,
    InboxItemNotFound,
    LaboroboAIError,
    UnknownWorkflow,
    WorkflowNotPausedError,
    WorkflowStateNotFound,
    WorkflowStepFailed,
)
from laborobo_ai.core.logging_config import get_logger

logger = get_logger(__name__)

ERROR_STATUS: Dict[Type[LaboroboAIError], int] = {
    InboxItemNotFound: status.HTTP_404_NOT_FOUND,
    WorkflowStateNotFound: status.HTTP_404_NOT_FOUND,
    UnknownWorkflow: status.HTTP_404_NOT_FOUND,
    InboxItemAlreadyDecided: status.HTTP_409_CONFLICT,
    WorkflowNotPausedError: status.HTTP_409_CONFLICT,
    WorkflowStepFailed: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: LaboroboAIError) -> int:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


async def laborobo_error_handler(request: Request, exc: LaboroboAIError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error(f"{type(exc).__name__} in {request.method} {request.url.path}: {exc}", exc_info=exc)
    else:
        logger.info(f"{type(exc).__name__} in {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=code, content={"detail": str(exc), "error_type": type(exc).__name__})


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Invalid workflow input surfaced from the domain models."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors(include_url=False, include_context=False), "error_type": "ValidationError"},
    )
