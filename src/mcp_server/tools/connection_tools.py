"""Connection lifecycle tools: connect, disconnect, status and service info.

These tools are thin wrappers over ConnectionManager. They never raise:
failures come back as ErrorResponse payloads.
"""

import logging
from typing import Any

from ..version import __version__
from .base_tool import BaseTool
from .models import ConnectRequest, DisconnectRequest
from .utils import handle_tool_errors, tool_success

logger = logging.getLogger(__name__)


class ConnectionTools(BaseTool):
    """Tools managing the server's MongoDB connection."""

    @handle_tool_errors
    async def connect(self, request: ConnectRequest | dict[str, Any]) -> dict[str, Any]:
        """Connect to MongoDB, reusing the live connection when nothing changes."""
        request = ConnectRequest.model_validate(request)
        settings = self.manager.settings
        target = request.connection_string or settings.mongodb_connection_string
        wants_read_only = (
            request.read_only if request.read_only is not None else self.manager.is_read_only()
        )

        if (
            self.manager.is_connected()
            and target is not None
            and self.manager.connection_target == target
            and self.manager.is_read_only() == wants_read_only
        ):
            return tool_success(
                message="Already connected to MongoDB with the same connection string",
                is_connected=True,
                read_only=self.manager.is_read_only(),
            )

        await self.manager.connect(request.connection_string, read_only=request.read_only)

        message = (
            "Connected to MongoDB successfully"
            if request.connection_string
            else "Connected to MongoDB successfully using MONGODB_MCP_CONNECTION_STRING"
        )
        return tool_success(
            message=message, is_connected=True, read_only=self.manager.is_read_only()
        )

    @handle_tool_errors
    async def disconnect(
        self, request: DisconnectRequest | dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Disconnect from MongoDB, reporting why when already disconnected."""
        request = DisconnectRequest.model_validate(request or {})

        if not self.manager.is_connected():
            info = self.manager.get_connection_info()
            # Releases a client left behind by a monitor-driven disconnect
            await self.manager.disconnect(request.reason)
            return tool_success(
                message="Already disconnected from MongoDB",
                is_connected=False,
                disconnect_reason=info.get("disconnect_reason", "not connected"),
            )

        await self.manager.disconnect(request.reason)
        return tool_success(
            message="Disconnected from MongoDB successfully",
            is_connected=False,
            disconnect_reason=request.reason,
        )

    @handle_tool_errors
    async def connection_status(self) -> dict[str, Any]:
        """Current connection snapshot, including any recorded fault."""
        return tool_success(
            **self.manager.get_connection_info(), read_only=self.manager.is_read_only()
        )

    @handle_tool_errors
    async def service_info(self) -> dict[str, Any]:
        """Service metadata and connection status."""
        settings = self.manager.settings
        return tool_success(
            name=settings.mcp_server_name,
            version=__version__,
            is_connected=self.manager.is_connected(),
            has_connection_string=settings.has_connection_string,
            read_only=self.manager.is_read_only(),
            default_database=settings.mongodb_mcp_default_database,
        )
