"""
Uniform tool results.

Every tool returns ``{"success": bool, "error": str | None, ...}`` plus the
MCP ``content`` list (and ``isError`` on failure) so clients can either
branch on ``success`` or render the text content.
"""

import logging
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..database.errors import LibraryError, ValidationError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def success_response(message: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "success": True,
        "error": None,
        "content": [{"type": "text", "text": message}],
        "data": data or {},
    }


def error_response(message: str, error_type: str = "LibraryError") -> dict[str, Any]:
    return {
        "success": False,
        "error": message,
        "error_type": error_type,
        "isError": True,
        "content": [{"type": "text", "text": message}],
    }


def library_error_response(operation: str, error: LibraryError) -> dict[str, Any]:
    """Business-rule rejection: expected, logged at INFO."""
    logger.info("%s rejected - %s: %s", operation, type(error).__name__, error)
    return error_response(str(error), type(error).__name__)


def parse_arguments(
    model: type[M], arguments: dict[str, Any], operation: str
) -> tuple[M | None, dict[str, Any] | None]:
    """Validate raw tool arguments; returns (params, None) or (None, error result)."""
    try:
        return model.model_validate(arguments or {}), None
    except PydanticValidationError as e:
        logger.warning("Invalid %s parameters: %s", operation, e)
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}"
            for err in e.errors()
        )
        return None, error_response(
            f"Invalid {operation} parameters: {details}", ValidationError.__name__
        )


def unexpected_error_response(tool_name: str, error: Exception) -> dict[str, Any]:
    logger.exception("Unexpected error in %s tool", tool_name)
    return error_response(f"An unexpected error occurred: {error!s}", type(error).__name__)
