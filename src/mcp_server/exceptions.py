"""Exception hierarchy for the MongoDB MCP Server.

ARCHITECTURAL DECISION RECORD (ADR):
====================================

Problem:
--------
The server sits between MCP callers and a MongoDB driver. Failures come from
three very different places:
1. Configuration (no connection string to connect with)
2. The connection lifecycle (connect failed, connection lost, not connected)
3. Policy (a write or an unsafe aggregation stage on a read-only connection)

Callers need to tell these apart, and every tool needs to turn them into the
same error payload shape.

Solution:
---------
1. **Single Root Exception**: All server exceptions inherit from MCPServerError
2. **Domain Categories**:
   - DatabaseError: connection lifecycle and query execution failures
   - ValidationError: malformed tool input (pipelines, filters)
   - SecurityError: read-only policy violations
   - ConfigurationError: nothing to connect to
3. **Rich Error Context**: error_code, message, details, timestamp, request_id
4. **Serializable**: to_dict() feeds the uniform tool error payload

Implementation Notes:
---------------------
- Exceptions are frozen dataclasses so recorded faults cannot be mutated
  after they are stored in the connection state
- Error codes follow DOMAIN_SPECIFIC_ERROR naming

Usage Example:
--------------
```python
try:
    await client.admin.command("ping")
except pymongo.errors.ConnectionFailure as e:
    raise DatabaseConnectionError(
        message="Failed to connect to MongoDB",
        details={"error": str(e)},
        original_exception=e,
    ) from e
```
"""

import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

# =============================================================================
# BASE EXCEPTION CLASS
# =============================================================================


@dataclass(frozen=True)
class MCPServerError(Exception):
    """Base exception for all MCP server errors.

    Attributes:
    -----------
    message : str
        Human-readable error description for developers and logs
    error_code : str
        Machine-readable error identifier (e.g., "DB_NOT_CONNECTED")
    details : dict
        Additional context about the error (operation, database, stage, ...)
    timestamp : str
        ISO 8601 timestamp when error occurred
    request_id : str
        Unique identifier for this error occurrence
    http_status_code : int
        Status code used when the error is surfaced over HTTP transports
    original_exception : Optional[Exception]
        The underlying exception that caused this error

    Example:
    --------
    >>> raise MCPServerError(
    ...     message="Request failed",
    ...     error_code="INTERNAL_ERROR",
    ...     details={"tool": "find"},
    ... )
    """

    message: str
    error_code: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    request_id: str = field(default_factory=lambda: str(uuid4()))
    http_status_code: int = 500
    original_exception: Exception | None = None

    def __str__(self) -> str:
        """Human-readable error representation for logs."""
        error_msg = f"[{self.error_code}] {self.message}"
        if self.details:
            error_msg += f" | Details: {self.details}"
        if self.original_exception:
            error_msg += (
                f" | Caused by: {type(self.original_exception).__name__}: {self.original_exception}"
            )
        return error_msg

    def __repr__(self) -> str:
        """Developer-friendly representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"error_code='{self.error_code}', "
            f"message='{self.message}', "
            f"request_id='{self.request_id}', "
            f"timestamp='{self.timestamp}'"
            f")"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for JSON serialization.

        Returns:
        --------
        dict with keys: error, error_code, details, timestamp, request_id,
        http_status_code and, when chained, original_error

        Example:
        --------
        >>> NotConnectedError(message="Not connected to MongoDB").to_dict()["error_code"]
        'DB_NOT_CONNECTED'
        """
        error_dict = {
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details,
            "timestamp": self.timestamp,
            "request_id": self.request_id,
            "http_status_code": self.http_status_code,
        }

        if self.original_exception:
            error_dict["original_error"] = {
                "type": type(self.original_exception).__name__,
                "message": str(self.original_exception),
                "traceback": traceback.format_exception(
                    type(self.original_exception),
                    self.original_exception,
                    self.original_exception.__traceback__,
                ),
            }

        return error_dict


# =============================================================================
# DATABASE EXCEPTIONS
# =============================================================================
# Connection lifecycle failures are separated from query failures: the former
# say "reconnect", the latter say "fix the query".


@dataclass(frozen=True)
class DatabaseError(MCPServerError):
    """Base class for all database-related errors."""

    error_code: str = "DATABASE_ERROR"
    http_status_code: int = 503


@dataclass(frozen=True)
class DatabaseConnectionError(DatabaseError):
    """A connect attempt failed.

    Raised by ConnectionManager.connect() when the driver cannot reach or
    authenticate against the server. The driver error is kept in
    original_exception.

    Example:
    --------
    >>> raise DatabaseConnectionError(
    ...     message="Failed to connect to MongoDB",
    ...     details={"error": "No servers found yet"},
    ... )
    """

    error_code: str = "DB_CONNECTION_FAILED"
    http_status_code: int = 503


@dataclass(frozen=True)
class NotConnectedError(DatabaseError):
    """An operation needed a live connection while none exists.

    Raised synchronously to the caller of get_live_handle() / get_database()
    whenever the connection phase is not CONNECTED, including after the health
    monitor has torn a connection down on its own.
    """

    message: str = "Not connected to MongoDB. Please connect first."
    error_code: str = "DB_NOT_CONNECTED"
    http_status_code: int = 503


@dataclass(frozen=True)
class TransportFault(DatabaseError):
    """Connection loss observed by the health monitor.

    Never raised at detection time since no caller is waiting on it. It is
    recorded as the connection's last error and surfaces through
    get_connection_info().
    """

    error_code: str = "DB_TRANSPORT_FAULT"
    http_status_code: int = 503


@dataclass(frozen=True)
class QueryExecutionError(DatabaseError):
    """Query execution failures (OperationFailure from the server)."""

    error_code: str = "QUERY_EXECUTION_FAILED"
    http_status_code: int = 500


@dataclass(frozen=True)
class DatabaseTimeoutError(DatabaseError):
    """Database operation exceeded its server-side time limit."""

    error_code: str = "DB_TIMEOUT"
    http_status_code: int = 504


# =============================================================================
# VALIDATION EXCEPTIONS
# =============================================================================


@dataclass(frozen=True)
class ValidationError(MCPServerError):
    """Input validation failures. Client errors, never retried."""

    error_code: str = "VALIDATION_ERROR"
    http_status_code: int = 400


@dataclass(frozen=True)
class InvalidQueryError(ValidationError):
    """Malformed query or pipeline structure.

    Example:
    --------
    >>> raise InvalidQueryError(
    ...     message="Aggregation pipeline must be a list of stages",
    ...     details={"received_type": "dict"},
    ... )
    """

    error_code: str = "INVALID_QUERY"
    http_status_code: int = 400


# =============================================================================
# SECURITY EXCEPTIONS
# =============================================================================


@dataclass(frozen=True)
class SecurityError(MCPServerError):
    """Base class for policy errors."""

    error_code: str = "SECURITY_ERROR"
    http_status_code: int = 403


@dataclass(frozen=True)
class ReadOnlyViolation(SecurityError):
    """A write operation or unsafe aggregation stage was attempted read-only.

    The blocked operation or stage name is kept in details["operation"] so
    callers can assert on exactly what was rejected.

    Example:
    --------
    >>> err = ReadOnlyViolation.for_operation("insert_one")
    >>> err.operation
    'insert_one'
    """

    error_code: str = "READ_ONLY_VIOLATION"
    http_status_code: int = 403

    @classmethod
    def for_operation(cls, operation: str) -> "ReadOnlyViolation":
        return cls(
            message=f"Operation '{operation}' is not allowed in read-only mode",
            details={"operation": operation},
        )

    @classmethod
    def for_stage(cls, stage: str) -> "ReadOnlyViolation":
        return cls(
            message=f"Aggregation stage '{stage}' is not allowed in read-only mode",
            details={"operation": stage, "stage": stage},
        )

    @property
    def operation(self) -> str | None:
        return self.details.get("operation")


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================


@dataclass(frozen=True)
class ConfigurationError(MCPServerError):
    """Configuration errors, e.g. no resolvable connection string.

    Example:
    --------
    >>> raise ConfigurationError(
    ...     message="Connection string is required",
    ...     details={"env_var": "MONGODB_MCP_CONNECTION_STRING"},
    ... )
    """

    error_code: str = "CONFIGURATION_ERROR"
    http_status_code: int = 500


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def convert_to_mcp_exception(
    exception: Exception,
    default_message: str = "An unexpected error occurred",
    context: dict[str, Any] | None = None,
) -> MCPServerError:
    """Convert any exception to an appropriate MCP exception.

    Used at the tool boundary so every error payload has the same shape.

    Args:
    -----
    exception : Exception
        The original exception to convert
    default_message : str
        Fallback message if exception type is unknown
    context : dict, optional
        Additional context to include in error details

    Returns:
    --------
    MCPServerError or subclass
    """
    import pydantic
    import pymongo.errors

    context = context or {}

    if isinstance(exception, MCPServerError):
        return exception

    if isinstance(
        exception, (pymongo.errors.ConnectionFailure, pymongo.errors.ServerSelectionTimeoutError)
    ):
        return DatabaseConnectionError(
            message="Failed to connect to database",
            details={**context, "error": str(exception)},
            original_exception=exception,
        )

    # ExecutionTimeout inherits from OperationFailure, check it first
    if isinstance(exception, pymongo.errors.ExecutionTimeout):
        return DatabaseTimeoutError(
            message="Database operation timed out",
            details={**context, "error": str(exception)},
            original_exception=exception,
        )

    if isinstance(exception, pymongo.errors.OperationFailure):
        return QueryExecutionError(
            message="Database query failed",
            details={**context, "error": str(exception), "code": exception.code},
            original_exception=exception,
        )

    if isinstance(exception, pydantic.ValidationError):
        return ValidationError(
            message="Request validation failed",
            details={**context, "validation_errors": str(exception)},
            original_exception=exception,
        )

    return MCPServerError(
        message=default_message,
        error_code="INTERNAL_ERROR",
        details={**context, "error_type": type(exception).__name__, "error": str(exception)},
        original_exception=exception,
    )
