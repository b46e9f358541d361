"""Pydantic models for MCP tool requests and responses.

Using Pydantic provides automatic validation, serialization, and documentation
for the MongoDB tools registered on the server.

Key Components:
    - Request models for each tool
    - ErrorResponse, the uniform error payload returned by every tool
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class _DatabaseRequest(BaseModel):
    database: str | None = Field(
        None,
        description="Database name. Defaults to MONGODB_MCP_DEFAULT_DATABASE when omitted",
    )


class _CollectionRequest(_DatabaseRequest):
    collection: str = Field(..., min_length=1, description="Collection name")

    @field_validator("collection")
    @classmethod
    def validate_collection(cls, value: str) -> str:
        """Reject names MongoDB would refuse anyway, before touching the driver."""
        if "$" in value or "\x00" in value:
            raise ValueError("Collection name must not contain '$' or null characters")
        return value


# =============================================================================
# CONNECTION TOOLS MODELS
# =============================================================================


class ConnectRequest(BaseModel):
    """Request model for opening a MongoDB connection."""

    connection_string: str | None = Field(
        None,
        description=(
            "MongoDB connection string. When omitted, MONGODB_MCP_CONNECTION_STRING is used"
        ),
    )
    read_only: bool | None = Field(
        None,
        description="Open the connection read-only. Defaults to the server's read-only setting",
    )


class DisconnectRequest(BaseModel):
    """Request model for closing the MongoDB connection."""

    reason: str = Field("normal disconnect", description="Reason recorded for the disconnect")


# =============================================================================
# DATABASE TOOLS MODELS
# =============================================================================


class ListCollectionsRequest(_DatabaseRequest):
    """Request model for listing collections of a database."""


class DbStatsRequest(_DatabaseRequest):
    """Request model for database statistics."""

    scale: int = Field(1, ge=1, description="Scale factor for size values (e.g. 1024 for KiB)")


class CollectionIndexesRequest(_CollectionRequest):
    """Request model for listing indexes of a collection."""


class CollectionStorageSizeRequest(_CollectionRequest):
    """Request model for the storage size of a collection."""


class CollectionSchemaRequest(_CollectionRequest):
    """Request model for inferring a collection schema from sampled documents."""

    sample_size: int = Field(50, ge=1, description="Number of documents to sample")


class MongoDBLogsRequest(BaseModel):
    """Request model for reading recent server log entries."""

    log_type: Literal["global", "startupWarnings"] = Field(
        "global", description="Which server log to read"
    )
    limit: int = Field(50, ge=1, le=1024, description="Maximum number of log entries to return")


# =============================================================================
# QUERY TOOLS MODELS
# =============================================================================


class FindRequest(_CollectionRequest):
    """Request model for find queries.

    The in-memory result size is capped by the server's max_result_limit.
    """

    filter: dict[str, Any] = Field(
        default_factory=dict,
        description="Query filter, matching the syntax of db.collection.find()",
    )
    projection: dict[str, Any] | None = Field(None, description="Fields to include or exclude")
    sort: dict[str, int] | None = Field(
        None, description="Sort specification, e.g. {'created_at': -1}"
    )
    limit: int | None = Field(None, ge=1, description="Maximum number of documents to return")

    @field_validator("sort")
    @classmethod
    def validate_sort(cls, value: dict[str, int] | None) -> dict[str, int] | None:
        if value is not None:
            for key, direction in value.items():
                if direction not in (1, -1):
                    raise ValueError(f"Sort direction for '{key}' must be 1 or -1")
        return value


class CountRequest(_CollectionRequest):
    """Request model for counting documents."""

    filter: dict[str, Any] = Field(default_factory=dict, description="Query filter")


class AggregateRequest(_CollectionRequest):
    """Request model for aggregation pipelines."""

    pipeline: list[dict[str, Any]] = Field(
        ..., description="An array of aggregation stages to execute"
    )


class ExplainRequest(_CollectionRequest):
    """Request model for explaining a find, count or aggregate.

    arguments holds what the method itself takes: filter, projection, sort
    and limit for find, query for count, pipeline for aggregate.
    """

    method: Literal["find", "count", "aggregate"] = Field(..., description="Method to explain")
    arguments: dict[str, Any] = Field(
        default_factory=dict, description="Arguments of the explained method"
    )
    verbosity: Literal[
        "queryPlanner", "queryPlannerExtended", "executionStats", "allPlansExecution"
    ] = Field("queryPlanner", description="Explain verbosity mode")


# =============================================================================
# RESPONSES
# =============================================================================


class ErrorResponse(BaseModel):
    """Standard error response format."""

    success: bool = Field(False, description="Always false for errors")
    error: str = Field(..., description="Error message")
    error_code: str = Field("INTERNAL_ERROR", description="Machine-readable error code")
    details: dict[str, Any] | None = Field(None, description="Additional error details")
    operation: str | None = Field(None, description="Operation that failed")
