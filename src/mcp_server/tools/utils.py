"""Shared utilities for MCP MongoDB tools.

Key Features:
    - handle_tool_errors: uniform error payloads for every tool
    - tool_success: uniform success payloads
"""

import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any

from ..exceptions import MCPServerError, SecurityError, ValidationError, convert_to_mcp_exception
from .models import ErrorResponse

logger = logging.getLogger(__name__)


def tool_success(**payload: Any) -> dict[str, Any]:
    """Build a success payload."""
    return {"success": True, **payload}


def error_payload(error: MCPServerError, operation: str) -> dict[str, Any]:
    """Build the uniform error payload for an MCP exception."""
    return ErrorResponse(
        error=error.message,
        error_code=error.error_code,
        details=error.details or None,
        operation=operation,
    ).model_dump()


def handle_tool_errors(
    func: Callable[..., Awaitable[dict[str, Any]]],
) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Decorator for consistent error handling across tool operations.

    Any exception is converted to the MCP hierarchy and returned as an
    ErrorResponse payload. Client-side failures (validation, read-only
    violations) log at WARNING, everything else at ERROR.

    Example:
        @handle_tool_errors
        async def find(self, request):
            ...
    """

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> dict[str, Any]:
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            error = convert_to_mcp_exception(e, context={"operation": func.__name__})
            if isinstance(error, (ValidationError, SecurityError)):
                logger.warning(f"{func.__name__} rejected: {error.message}")
            else:
                logger.error(f"Error in {func.__name__}: {error}")
            return error_payload(error, func.__name__)

    return wrapper
