"""MongoDB Connection Manager with health monitoring and read-only enforcement.

This module owns the server's single MongoDB connection. The manager is
constructed once at startup and passed to whatever needs database access;
there is no module-level singleton.

Key Features:
    - One live client at a time: connecting again closes the previous session
    - Connection state (phase, target, last disconnect reason, last error)
      kept in one ConnectionState object
    - Health monitor listeners attached before the client connects, so
      server-side connection loss is folded into state without a caller
    - Read-only policy fixed per connection: get_database() wraps handles
      in the read-only interceptor when the connection is read-only
    - Fail-fast access: get_live_handle() and get_database() raise
      NotConnectedError instead of letting the driver hang

State machine:
    DISCONNECTED --connect ok-->   CONNECTED
    DISCONNECTED --connect fail--> DISCONNECTED
    CONNECTED    --disconnect-->   DISCONNECTED
    CONNECTED    --fault-->        DISCONNECTED   (health monitor)
    CONNECTED    --connect-->      DISCONNECTED --> CONNECTED

All state mutation happens on the asyncio event loop. Health signals raised
on pymongo threads are marshalled onto the loop by the monitor.

Example:
    >>> manager = ConnectionManager()
    >>> await manager.connect("mongodb://localhost:27017", read_only=True)
    >>> db = manager.get_database("shop")
    >>> await db["orders"].count_documents({})
    >>> await manager.disconnect()
"""

import asyncio
import inspect
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from src.config.settings import Settings, settings as default_settings

from ..exceptions import (
    ConfigurationError,
    DatabaseConnectionError,
    MCPServerError,
    NotConnectedError,
    TransportFault,
)
from .health_monitor import ConnectionHealthMonitor, HealthEvent
from .readonly import ReadOnlyDatabase

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., Any]


class ConnectionPhase(str, Enum):
    """Lifecycle phase of the owned connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class ConnectionState:
    """Single source of truth for the connection.

    Attributes:
        phase: Current lifecycle phase
        connection_target: Connection string, set only while CONNECTED
        read_only: Policy of the current (or last) connection
        last_disconnect_reason: Why the phase last left CONNECTED
        last_error: Last observed fault, independent of phase
    """

    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    connection_target: str | None = None
    read_only: bool = True
    last_disconnect_reason: str | None = None
    last_error: Exception | None = None


def describe_error(error: Exception) -> str:
    """Message used when a recorded fault is reported to callers."""
    if isinstance(error, MCPServerError):
        return error.message
    return str(error)


class ConnectionManager:
    """Owner of the one permitted MongoDB connection.

    Args:
        config: Settings providing the default connection string, default
            read-only flag and driver options
        client_factory: Callable building the driver client, called as
            client_factory(target, event_listeners=[...], **options)

    Attributes:
        DEFAULT_DISCONNECT_REASON: Reason recorded for intentional disconnects
    """

    DEFAULT_DISCONNECT_REASON: str = "normal disconnect"

    def __init__(
        self,
        config: Settings | None = None,
        client_factory: ClientFactory = AsyncIOMotorClient,
    ) -> None:
        self._settings = config or default_settings
        self._client_factory = client_factory
        self._next_read_only = self._settings.mongodb_read_only
        self._state = ConnectionState(read_only=self._next_read_only)
        self._client: Any | None = None
        self._monitor: ConnectionHealthMonitor | None = None
        self._session_id: int | None = None
        self._session_ids = itertools.count(1)
        self._lifecycle_lock = asyncio.Lock()

        logger.debug("ConnectionManager initialized")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, target: str | None = None, read_only: bool | None = None) -> None:
        """Open a connection, replacing any existing one.

        Args:
            target: Connection string. Falls back to
                MONGODB_MCP_CONNECTION_STRING when omitted
            read_only: Policy for this connection. Falls back to the value
                last given to set_read_only(), initially MONGODB_READ_ONLY

        Raises:
            ConfigurationError: If no connection string can be resolved
            DatabaseConnectionError: If the server cannot be reached
        """
        resolved = target or self._settings.mongodb_connection_string
        if not resolved:
            raise ConfigurationError(
                message=(
                    "Connection string is required. Either pass it explicitly or set "
                    "MONGODB_MCP_CONNECTION_STRING environment variable."
                ),
                details={"env_var": "MONGODB_MCP_CONNECTION_STRING"},
            )

        policy = self._next_read_only if read_only is None else read_only

        async with self._lifecycle_lock:
            if self._state.phase is ConnectionPhase.CONNECTED:
                logger.info("Already connected to MongoDB, closing current session first")
                await self._disconnect(self.DEFAULT_DISCONNECT_REASON)
            await self._release_client()

            self._state.phase = ConnectionPhase.CONNECTING
            session_id = next(self._session_ids)
            # Listeners go in before the first command so no event is missed
            monitor = ConnectionHealthMonitor(
                session_id, self._apply_health_event, asyncio.get_running_loop()
            )
            self._monitor = monitor
            self._session_id = session_id

            logger.info(f"Connecting to MongoDB (session {session_id}, read_only={policy})...")

            try:
                self._client = self._client_factory(
                    resolved,
                    event_listeners=monitor.listeners(),
                    **self._settings.client_options(),
                )
                await self._client.admin.command("ping")

            except Exception as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                await self._release_client()
                error = DatabaseConnectionError(
                    message=f"Failed to connect to MongoDB: {e}",
                    details={"error_type": type(e).__name__},
                    original_exception=e,
                )
                self._state.phase = ConnectionPhase.DISCONNECTED
                self._state.connection_target = None
                self._state.last_error = error
                raise error from e

            self._state.phase = ConnectionPhase.CONNECTED
            self._state.connection_target = resolved
            self._state.read_only = policy
            self._state.last_disconnect_reason = None
            self._state.last_error = None

            logger.info(f"Successfully connected to MongoDB (session {session_id})")

    async def disconnect(self, reason: str = DEFAULT_DISCONNECT_REASON) -> None:
        """Close the connection and record why.

        Does nothing to state when already disconnected. A client left open
        by a monitor-driven disconnect is still released.

        Args:
            reason: Recorded as the last disconnect reason
        """
        async with self._lifecycle_lock:
            if self._state.phase is not ConnectionPhase.CONNECTED:
                logger.debug("Not connected to MongoDB, nothing to disconnect")
                await self._release_client()
                return
            await self._disconnect(reason)

    async def _disconnect(self, reason: str) -> None:
        logger.info(f"Disconnecting from MongoDB ({reason})...")
        await self._release_client()
        self._state.phase = ConnectionPhase.DISCONNECTED
        self._state.connection_target = None
        self._state.last_disconnect_reason = reason
        # An intentional disconnect wins over a stale fault
        self._state.last_error = None
        logger.info("Successfully disconnected from MongoDB")

    async def _release_client(self) -> None:
        """Detach the monitor and close the client, if any. Leaves state alone."""
        monitor, client = self._monitor, self._client
        self._monitor = None
        self._client = None
        self._session_id = None

        if monitor is not None:
            monitor.detach()
        if client is not None:
            result = client.close()
            if inspect.isawaitable(result):
                await result

    # ------------------------------------------------------------------
    # Health monitor callback
    # ------------------------------------------------------------------

    def _apply_health_event(self, event: HealthEvent) -> None:
        """Fold a health signal into state. Runs on the event loop."""
        if event.session_id != self._session_id:
            logger.debug(f"Ignoring {event.signal.name} from superseded session {event.session_id}")
            return
        if self._state.phase is not ConnectionPhase.CONNECTED:
            return

        self._state.last_error = TransportFault(
            message=event.message,
            details={"signal": event.signal.value, "session_id": event.session_id},
            original_exception=event.cause,
        )
        self._state.last_disconnect_reason = event.signal.value

        if event.signal.disconnects:
            self._state.phase = ConnectionPhase.DISCONNECTED
            self._state.connection_target = None
            logger.error(f"MongoDB connection lost ({event.signal.value}): {event.message}")
        else:
            logger.warning(f"MongoDB connection degraded ({event.signal.value}): {event.message}")

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def _require_connected(self, operation: str) -> Any:
        if self._state.phase is not ConnectionPhase.CONNECTED or self._client is None:
            error = NotConnectedError(details={"operation": operation})
            # Never overwrite a real fault with the generic one
            if self._state.last_error is None:
                self._state.last_error = error
            raise error
        return self._client

    def get_live_handle(self) -> Any:
        """Return the top-level driver client.

        Raises:
            NotConnectedError: If there is no live connection
        """
        return self._require_connected("get_live_handle")

    def get_database(self, name: str | None = None) -> AsyncIOMotorDatabase | ReadOnlyDatabase:
        """Return a database handle, read-only wrapped if the connection is.

        Args:
            name: Database name. Falls back to MONGODB_MCP_DEFAULT_DATABASE

        Raises:
            NotConnectedError: If there is no live connection
            ConfigurationError: If no database name can be resolved
        """
        client = self._require_connected("get_database")

        database_name = name or self._settings.mongodb_mcp_default_database
        if not database_name:
            raise ConfigurationError(
                message=(
                    "Database name is required. Either pass it explicitly or set "
                    "MONGODB_MCP_DEFAULT_DATABASE environment variable."
                ),
                details={"env_var": "MONGODB_MCP_DEFAULT_DATABASE"},
            )

        database = client[database_name]
        if self._state.read_only:
            return ReadOnlyDatabase(database)
        return database

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self._settings

    def get_connection_info(self) -> dict[str, Any]:
        """Snapshot of connection status for callers and diagnostics.

        Returns:
            Dict with is_connected, plus disconnect_reason when disconnected
            with a recorded reason, plus connection_error when a fault is
            recorded (regardless of phase)
        """
        is_connected = self.is_connected()
        info: dict[str, Any] = {"is_connected": is_connected}

        if not is_connected and self._state.last_disconnect_reason:
            info["disconnect_reason"] = self._state.last_disconnect_reason

        if self._state.last_error is not None:
            info["connection_error"] = describe_error(self._state.last_error)

        return info

    def is_connected(self) -> bool:
        return self._state.phase is ConnectionPhase.CONNECTED

    @property
    def phase(self) -> ConnectionPhase:
        return self._state.phase

    @property
    def connection_target(self) -> str | None:
        return self._state.connection_target

    @property
    def state(self) -> ConnectionState:
        """Copy of the current state. Mutating it has no effect."""
        return replace(self._state)

    def is_read_only(self) -> bool:
        """Policy of the live connection, or of the next one when disconnected."""
        if self.is_connected():
            return self._state.read_only
        return self._next_read_only

    def set_read_only(self, read_only: bool) -> None:
        """Set the policy applied by the next connect().

        The live connection keeps the policy it was opened with; changing
        policy mid-connection is not supported.
        """
        self._next_read_only = read_only
        if self.is_connected() and read_only != self._state.read_only:
            logger.info(
                f"Read-only mode set to {read_only}; takes effect on the next connect"
            )
