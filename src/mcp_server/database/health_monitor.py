"""Connection health monitoring through pymongo's event listener API.

The monitor turns driver lifecycle events into health signals for the
connection manager. Four signal categories are watched:

    server closed       ServerListener.closed
    heartbeat failed    ServerHeartbeatListener.failed
    connection closed   ConnectionPoolListener.connection_closed (reason "error")
    connection error    CommandListener.failed with a network-class failure

pymongo publishes these events on its own monitor and worker threads. The
monitor never touches connection state itself: every signal is handed to the
manager's event loop with call_soon_threadsafe, so state changes only happen
on the loop thread, interleaved with request handling at await points.

A monitor belongs to exactly one client session. Once detached (on disconnect
or reconnect) it drops every further event, so a closing client cannot fault
the session that replaced it.
"""

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from pymongo import monitoring

logger = logging.getLogger(__name__)

# errtype values pymongo reports in CommandFailedEvent.failure for network errors
NETWORK_ERROR_TYPES = frozenset({"AutoReconnect", "NetworkTimeout", "ConnectionFailure"})


class HealthSignal(str, Enum):
    """Connection health signals, valued by the disconnect reason they record."""

    SERVER_CLOSED = "server closed connection"
    HEARTBEAT_FAILED = "heartbeat failed"
    CONNECTION_CLOSED = "connection closed"
    CONNECTION_ERROR = "connection error"

    @property
    def disconnects(self) -> bool:
        """Whether the signal tears the session down.

        Heartbeat failure only degrades the session: the fault is recorded
        but the phase stays CONNECTED, since heartbeat loss is often transient.
        """
        return self is not HealthSignal.HEARTBEAT_FAILED


@dataclass(frozen=True)
class HealthEvent:
    """One observed health signal, tagged with the session it belongs to."""

    signal: HealthSignal
    message: str
    session_id: int
    cause: Exception | None = None


class ConnectionHealthMonitor:
    """Bridges pymongo monitoring events into the manager's event loop.

    Args:
        session_id: Identifier of the client session this monitor watches
        dispatch: Callback run on the event loop for every signal
        loop: Event loop owning the connection state

    Example:
        >>> monitor = ConnectionHealthMonitor(1, manager._apply_health_event, loop)
        >>> client = AsyncIOMotorClient(uri, event_listeners=monitor.listeners())
    """

    def __init__(
        self,
        session_id: int,
        dispatch: Callable[[HealthEvent], None],
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.session_id = session_id
        self._dispatch = dispatch
        self._loop = loop
        self._attached = True
        self._lock = threading.Lock()

    @property
    def attached(self) -> bool:
        return self._attached

    def listeners(self) -> list:
        """Listener instances to pass as the client's event_listeners."""
        return [
            _ServerClosedListener(self),
            _HeartbeatListener(self),
            _PoolListener(self),
            _CommandFailureListener(self),
        ]

    def detach(self) -> None:
        """Stop forwarding events. Idempotent."""
        with self._lock:
            if self._attached:
                logger.debug(f"Health monitor for session {self.session_id} detached")
            self._attached = False

    def report(
        self, signal: HealthSignal, message: str, cause: Exception | None = None
    ) -> None:
        """Forward a signal to the event loop. Safe to call from any thread."""
        with self._lock:
            if not self._attached:
                return

        event = HealthEvent(signal=signal, message=message, session_id=self.session_id, cause=cause)

        if _running_loop() is self._loop:
            self._dispatch(event)
            return

        try:
            self._loop.call_soon_threadsafe(self._dispatch, event)
        except RuntimeError:
            # Loop already closed: the process is shutting down
            logger.debug(f"Dropped {signal.name} signal, event loop is closed")


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


# =============================================================================
# PYMONGO LISTENERS
# =============================================================================
# pymongo's listener base classes raise NotImplementedError for every hook,
# so each subclass implements the full interface.


class _ServerClosedListener(monitoring.ServerListener):
    def __init__(self, monitor: ConnectionHealthMonitor) -> None:
        self._monitor = monitor

    def opened(self, event: monitoring.ServerOpeningEvent) -> None:
        pass

    def description_changed(self, event: monitoring.ServerDescriptionChangedEvent) -> None:
        pass

    def closed(self, event: monitoring.ServerClosedEvent) -> None:
        self._monitor.report(
            HealthSignal.SERVER_CLOSED,
            f"MongoDB server {_format_address(event.server_address)} closed connection",
        )


class _HeartbeatListener(monitoring.ServerHeartbeatListener):
    def __init__(self, monitor: ConnectionHealthMonitor) -> None:
        self._monitor = monitor

    def started(self, event: monitoring.ServerHeartbeatStartedEvent) -> None:
        pass

    def succeeded(self, event: monitoring.ServerHeartbeatSucceededEvent) -> None:
        pass

    def failed(self, event: monitoring.ServerHeartbeatFailedEvent) -> None:
        cause = event.reply if isinstance(event.reply, Exception) else None
        self._monitor.report(
            HealthSignal.HEARTBEAT_FAILED,
            f"MongoDB heartbeat failed - connection lost: {event.reply}",
            cause,
        )


class _PoolListener(monitoring.ConnectionPoolListener):
    def __init__(self, monitor: ConnectionHealthMonitor) -> None:
        self._monitor = monitor

    def pool_created(self, event: monitoring.PoolCreatedEvent) -> None:
        pass

    def pool_ready(self, event: monitoring.PoolReadyEvent) -> None:
        pass

    def pool_cleared(self, event: monitoring.PoolClearedEvent) -> None:
        pass

    def pool_closed(self, event: monitoring.PoolClosedEvent) -> None:
        pass

    def connection_created(self, event: monitoring.ConnectionCreatedEvent) -> None:
        pass

    def connection_ready(self, event: monitoring.ConnectionReadyEvent) -> None:
        pass

    def connection_closed(self, event: monitoring.ConnectionClosedEvent) -> None:
        # Idle and stale connections are closed by routine pool maintenance
        if event.reason != monitoring.ConnectionClosedReason.ERROR:
            return
        self._monitor.report(
            HealthSignal.CONNECTION_CLOSED,
            f"MongoDB connection to {_format_address(event.address)} closed",
        )

    def connection_check_out_started(
        self, event: monitoring.ConnectionCheckOutStartedEvent
    ) -> None:
        pass

    def connection_check_out_failed(self, event: monitoring.ConnectionCheckOutFailedEvent) -> None:
        pass

    def connection_checked_out(self, event: monitoring.ConnectionCheckedOutEvent) -> None:
        pass

    def connection_checked_in(self, event: monitoring.ConnectionCheckedInEvent) -> None:
        pass


class _CommandFailureListener(monitoring.CommandListener):
    def __init__(self, monitor: ConnectionHealthMonitor) -> None:
        self._monitor = monitor

    def started(self, event: monitoring.CommandStartedEvent) -> None:
        pass

    def succeeded(self, event: monitoring.CommandSucceededEvent) -> None:
        pass

    def failed(self, event: monitoring.CommandFailedEvent) -> None:
        failure = event.failure or {}
        if failure.get("errtype") not in NETWORK_ERROR_TYPES:
            return
        self._monitor.report(
            HealthSignal.CONNECTION_ERROR,
            f"MongoDB connection error during {event.command_name}: {failure.get('errmsg')}",
        )


def _format_address(address: tuple[str, int] | None) -> str:
    if not address:
        return "<unknown>"
    host, port = address
    return f"{host}:{port}"
