"""MongoDB MCP Server using FastMCP.

This module implements a Model Context Protocol (MCP) server exposing MongoDB
operations as tools. One ConnectionManager is created per server and shared
by every tool, so all tools see the same connection, the same health state
and the same read-only policy.

Architecture:
    - Connection Tools: connect, disconnect, connection_status, service_info
    - Database Tools: list_databases, list_collections, db_stats, collection_indexes,
      collection_storage_size, collection_schema, mongodb_logs
    - Query Tools: find, count, aggregate, explain

Usage:
    Run this module and connect MCP clients (Claude Desktop, etc.) over stdio.
"""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP

from src.config.settings import settings

from .database.connection import ConnectionManager
from .exceptions import MCPServerError
from .tools import ConnectionTools, DatabaseTools, QueryTools

# stdout carries MCP stdio traffic, logs go to stderr
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

SERVER_INSTRUCTIONS = (
    "You are connected to a MongoDB deployment. Call service_info first to check the "
    "connection status. If has_connection_string is true, connect() can be called "
    "without parameters. In read-only mode, write operations and $out/$merge "
    "aggregation stages are rejected."
)


def create_server(manager: ConnectionManager | None = None) -> FastMCP:
    """Create and configure the FastMCP server with all MongoDB tools.

    Args:
        manager: Connection manager to share across tools. A new one built
            from settings is used when omitted

    Returns:
        Configured FastMCP server instance
    """
    manager = manager or ConnectionManager(settings)

    @asynccontextmanager
    async def lifespan(_server: FastMCP) -> AsyncIterator[None]:
        if settings.mongodb_auto_connect:
            logger.info("Auto-connecting to MongoDB...")
            try:
                await manager.connect(read_only=settings.mongodb_read_only)
            except MCPServerError as e:
                # Recorded in connection state, visible through connection_status
                logger.error(f"Failed to auto-connect to MongoDB: {e.message}")
        try:
            yield
        finally:
            await manager.disconnect("server shutdown")

    server = FastMCP(
        name=settings.mcp_server_name, instructions=SERVER_INSTRUCTIONS, lifespan=lifespan
    )

    connection_tools = ConnectionTools(manager)
    database_tools = DatabaseTools(manager)
    query_tools = QueryTools(manager)

    # =============================================================================
    # CONNECTION TOOLS REGISTRATION
    # =============================================================================

    @server.tool()
    async def service_info() -> dict[str, Any]:
        """Get MongoDB service information and current connection status."""
        return await connection_tools.service_info()

    @server.tool()
    async def connect(
        connection_string: str | None = None, read_only: bool | None = None
    ) -> dict[str, Any]:
        """Establish a connection to MongoDB.

        Call service_info first. If it reports has_connection_string=true, connect can be
        called without parameters to use the configured connection string.
        """
        return await connection_tools.connect(
            {"connection_string": connection_string, "read_only": read_only}
        )

    @server.tool()
    async def disconnect() -> dict[str, Any]:
        """Disconnect from MongoDB. Use connection_status afterwards to check the state."""
        return await connection_tools.disconnect()

    @server.tool()
    async def connection_status() -> dict[str, Any]:
        """Report whether MongoDB is connected, why not, and the last connection error."""
        return await connection_tools.connection_status()

    # =============================================================================
    # DATABASE TOOLS REGISTRATION
    # =============================================================================

    @server.tool()
    async def list_databases() -> dict[str, Any]:
        """List all databases in the MongoDB instance."""
        return await database_tools.list_databases()

    @server.tool()
    async def list_collections(database: str | None = None) -> dict[str, Any]:
        """List all collections in a database."""
        return await database_tools.list_collections({"database": database})

    @server.tool()
    async def db_stats(database: str | None = None, scale: int = 1) -> dict[str, Any]:
        """Get statistics for a database (collections, objects, data and storage sizes)."""
        return await database_tools.db_stats({"database": database, "scale": scale})

    @server.tool()
    async def collection_indexes(collection: str, database: str | None = None) -> dict[str, Any]:
        """Describe the indexes defined on a collection."""
        return await database_tools.collection_indexes(
            {"database": database, "collection": collection}
        )

    @server.tool()
    async def collection_storage_size(
        collection: str, database: str | None = None
    ) -> dict[str, Any]:
        """Get the data size of a collection, raw and human readable."""
        return await database_tools.collection_storage_size(
            {"database": database, "collection": collection}
        )

    @server.tool()
    async def collection_schema(
        collection: str, database: str | None = None, sample_size: int = 50
    ) -> dict[str, Any]:
        """Infer the schema of a collection from a sample of its documents."""
        return await database_tools.collection_schema(
            {"database": database, "collection": collection, "sample_size": sample_size}
        )

    @server.tool()
    async def mongodb_logs(log_type: str = "global", limit: int = 50) -> dict[str, Any]:
        """Read recent entries of the server log ("global" or "startupWarnings")."""
        return await database_tools.mongodb_logs({"log_type": log_type, "limit": limit})

    # =============================================================================
    # QUERY TOOLS REGISTRATION
    # =============================================================================

    @server.tool()
    async def find(
        collection: str,
        database: str | None = None,
        filter: dict[str, Any] | None = None,
        projection: dict[str, Any] | None = None,
        sort: dict[str, int] | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        """Run a find query against a MongoDB collection."""
        return await query_tools.find(
            {
                "database": database,
                "collection": collection,
                "filter": filter or {},
                "projection": projection,
                "sort": sort,
                "limit": limit,
            }
        )

    @server.tool()
    async def count(
        collection: str, database: str | None = None, filter: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Count documents in a collection matching a filter."""
        return await query_tools.count(
            {"database": database, "collection": collection, "filter": filter or {}}
        )

    @server.tool()
    async def aggregate(
        collection: str, pipeline: list[dict[str, Any]], database: str | None = None
    ) -> dict[str, Any]:
        """Run an aggregation pipeline against a MongoDB collection."""
        return await query_tools.aggregate(
            {"database": database, "collection": collection, "pipeline": pipeline}
        )

    @server.tool()
    async def explain(
        collection: str,
        method: str,
        arguments: dict[str, Any] | None = None,
        database: str | None = None,
        verbosity: str = "queryPlanner",
    ) -> dict[str, Any]:
        """Explain the query plan of a find, count or aggregate on a collection.

        arguments are those of the explained method: filter, projection, sort
        and limit for find, query for count, pipeline for aggregate.
        """
        return await query_tools.explain(
            {
                "database": database,
                "collection": collection,
                "method": method,
                "arguments": arguments or {},
                "verbosity": verbosity,
            }
        )

    return server


def main() -> None:
    """Main entry point for the MCP server."""
    try:
        logger.info("Starting MongoDB MCP Server...")
        settings.validate_configuration()

        server = create_server()

        logger.info("MongoDB MCP Server initialized successfully")
        server.run()

    except KeyboardInterrupt:
        logger.info("Server shutdown requested by user")
    except Exception as e:
        logger.error(f"Failed to start server: {e}")
        raise


if __name__ == "__main__":
    main()
