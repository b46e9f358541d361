"""Base tool class for manager-backed database access.

Every tool class receives the server's ConnectionManager at construction
and reaches the database only through it, so a lost or closed connection
fails fast with NotConnectedError and read-only connections hand out
read-only handles.

Example:
    >>> class MyTool(BaseTool):
    ...     async def count_orders(self):
    ...         db = self.get_database("shop")
    ...         return await db["orders"].count_documents({})
"""

import logging
from typing import Any

from ..database.connection import ConnectionManager

logger = logging.getLogger(__name__)


class BaseTool:
    """Base class for all MCP tools.

    Args:
        manager: The connection manager owning the MongoDB connection
    """

    def __init__(self, manager: ConnectionManager) -> None:
        self.manager = manager
        logger.debug(f"Initialized {self.__class__.__name__}")

    def get_database(self, name: str | None = None) -> Any:
        """Database handle for the current connection.

        Raises:
            NotConnectedError: If there is no live connection
        """
        return self.manager.get_database(name)

    def get_client(self) -> Any:
        """Top-level client, for admin operations spanning databases.

        Raises:
            NotConnectedError: If there is no live connection
        """
        return self.manager.get_live_handle()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
