"""Pytest configuration and shared fixtures for MongoDB MCP Server tests.

TESTING STRATEGY:
=================

Unit tests never touch a real MongoDB. The connection manager takes a
client factory, so tests hand it a factory producing MagicMock clients and
keep the health monitor listeners the manager attaches. Firing those
listeners from a test is how driver events (server closed, heartbeat
failed, ...) are simulated.

Test Organization:
-------------------
tests/
├── unit/
│   ├── test_exceptions.py          # Exception hierarchy
│   ├── test_settings.py            # Settings and driver options
│   ├── test_query_validation.py    # Aggregation stage validator
│   ├── test_readonly.py            # Read-only interceptor
│   ├── test_health_monitor.py      # Driver event listeners
│   ├── test_connection_manager.py  # Lifecycle and state machine
│   ├── test_tools.py               # Tool payloads
│   └── test_server.py              # Tool registration
└── conftest.py                     # This file - shared fixtures

Example Usage:
--------------
```python
async def test_connect(manager, client_factory):
    await manager.connect()
    assert manager.is_connected()
    assert client_factory.clients[0].admin.command.await_count == 1
```
"""

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase

from src.config.settings import Settings
from src.mcp_server.database.connection import ConnectionManager

TEST_CONNECTION_STRING = "mongodb://localhost:27017"
TEST_DATABASE = "shop"

# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Register custom markers.

    - @pytest.mark.unit: Fast, isolated unit tests
    - @pytest.mark.integration: Tests requiring a real MongoDB
    """
    config.addinivalue_line("markers", "unit: Fast unit tests with mocked dependencies")
    config.addinivalue_line("markers", "integration: Integration tests with real dependencies")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location.

    - tests/unit/* → @pytest.mark.unit
    - tests/integration/* → @pytest.mark.integration
    """
    for item in items:
        test_path = Path(item.fspath)

        if "unit" in test_path.parts:
            item.add_marker(pytest.mark.unit)
        elif "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)


# =============================================================================
# FAKE DRIVER
# =============================================================================


class FakeClientFactory:
    """Stand-in for AsyncIOMotorClient construction.

    Records every client it builds together with the event listeners and
    options it was given. events logs ("build", n) and ("close", n) in the
    order clients are opened and closed. Set ping_error to make the next
    clients fail their initial ping. Each client returns the same database
    mock per name, and each database the same collection mock per name.
    """

    def __init__(self) -> None:
        self.clients: list[MagicMock] = []
        self.calls: list[SimpleNamespace] = []
        self.ping_error: Exception | None = None
        self.events: list[tuple[str, int]] = []

    def __call__(self, target, event_listeners=(), **options):
        client = MagicMock(spec=AsyncIOMotorClient)
        client.admin = MagicMock()
        client.admin.command = AsyncMock(
            side_effect=self.ping_error, return_value={"ok": 1.0}
        )
        index = len(self.clients)
        client.close = MagicMock(side_effect=lambda: self.events.append(("close", index)))
        databases: dict[str, MagicMock] = {}

        def get_database(name, *args, **kwargs):
            if name not in databases:
                databases[name] = make_motor_database(name)
            return databases[name]

        client.__getitem__.side_effect = get_database
        client.get_database.side_effect = get_database

        self.clients.append(client)
        self.events.append(("build", index))
        self.calls.append(
            SimpleNamespace(target=target, listeners=list(event_listeners), options=options)
        )
        return client

    @property
    def last_client(self) -> MagicMock:
        return self.clients[-1]

    @property
    def last_listeners(self) -> list:
        return self.calls[-1].listeners

    def listener(self, kind: type, index: int = -1):
        """Listener of the given pymongo listener type attached to a client."""
        for listener in self.calls[index].listeners:
            if isinstance(listener, kind):
                return listener
        raise LookupError(f"No {kind.__name__} attached")


def make_cursor(documents: list[dict]) -> MagicMock:
    """Motor-style cursor whose chained modifiers return itself."""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=documents)
    return cursor


def make_motor_collection(name: str = "orders") -> MagicMock:
    """MagicMock passing isinstance checks for AsyncIOMotorCollection."""
    collection = MagicMock(spec=AsyncIOMotorCollection)
    collection.name = name
    collection.count_documents = AsyncMock(return_value=0)
    collection.find_one = AsyncMock(return_value=None)
    collection.index_information = AsyncMock(return_value={})
    return collection


def make_motor_database(name: str = TEST_DATABASE) -> MagicMock:
    """MagicMock passing isinstance checks for AsyncIOMotorDatabase.

    Item access returns the same collection mock per name, so tests can
    configure db["orders"] and see it used by the code under test.
    """
    db = MagicMock(spec=AsyncIOMotorDatabase)
    db.name = name
    collections: dict[str, MagicMock] = {}

    def get_collection(collection_name, *args, **kwargs):
        if collection_name not in collections:
            collections[collection_name] = make_motor_collection(collection_name)
        return collections[collection_name]

    db.__getitem__.side_effect = get_collection
    db.get_collection.side_effect = get_collection
    db.list_collection_names = AsyncMock(return_value=[])
    db.command = AsyncMock(return_value={"ok": 1.0})
    return db


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a configured connection string and default database."""
    return Settings(
        _env_file=None,
        mongodb_mcp_connection_string=TEST_CONNECTION_STRING,
        mongodb_mcp_default_database=TEST_DATABASE,
    )


@pytest.fixture
def client_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture
def manager(test_settings: Settings, client_factory: FakeClientFactory) -> ConnectionManager:
    """Disconnected manager wired to the fake driver."""
    return ConnectionManager(test_settings, client_factory=client_factory)


@pytest.fixture
async def connected_manager(manager: ConnectionManager) -> ConnectionManager:
    """Manager holding a live read-only connection to the fake driver."""
    await manager.connect()
    return manager


@pytest.fixture
def mock_database() -> MagicMock:
    """Mocked Motor database for interceptor tests."""
    return make_motor_database()
