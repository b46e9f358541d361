"""MongoDB MCP Tools Package.

Available Tool Classes:
    - ConnectionTools: connect, disconnect, connection status, service info
    - DatabaseTools: databases, collections, database stats, indexes
    - QueryTools: find, count, aggregate

All tool classes take the server's ConnectionManager and share one error
handling pattern: failures are returned as ErrorResponse payloads.
"""

from .connection_tools import ConnectionTools
from .database_tools import DatabaseTools
from .query_tools import QueryTools

__all__ = [
    "ConnectionTools",
    "DatabaseTools",
    "QueryTools",
]
