"""Unit tests for the MCP tool classes.

Tools never raise: every test asserts on the returned payload, success or
ErrorResponse.
"""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from bson import ObjectId
from pymongo import monitoring
from pymongo.errors import OperationFailure

from src.mcp_server.database.connection import ConnectionManager
from src.mcp_server.tools import ConnectionTools, DatabaseTools, QueryTools
from src.mcp_server.tools.database_tools import format_bytes
from src.mcp_server.version import __version__
from tests.conftest import TEST_CONNECTION_STRING, make_cursor

OTHER_TARGET = "mongodb://replica.example.com:27017"


def orders(client_factory):
    """The collection mock behind shop.orders on the live client."""
    return client_factory.last_client["shop"]["orders"]


# =============================================================================
# CONNECTION TOOLS
# =============================================================================


@pytest.mark.unit
class TestConnectionTools:
    """connect, disconnect, connection_status and service_info."""

    @pytest.fixture
    def tools(self, manager) -> ConnectionTools:
        return ConnectionTools(manager)

    async def test_connect_with_configured_string(self, tools, manager):
        result = await tools.connect({})

        assert result["success"] is True
        assert "MONGODB_MCP_CONNECTION_STRING" in result["message"]
        assert result["read_only"] is True
        assert manager.connection_target == TEST_CONNECTION_STRING

    async def test_connect_explicit_string(self, tools, manager):
        result = await tools.connect({"connection_string": OTHER_TARGET, "read_only": False})

        assert result["message"] == "Connected to MongoDB successfully"
        assert result["read_only"] is False
        assert manager.connection_target == OTHER_TARGET

    async def test_connect_same_target_is_reused(self, tools, client_factory):
        await tools.connect({})

        result = await tools.connect({"connection_string": TEST_CONNECTION_STRING})

        assert "Already connected" in result["message"]
        assert len(client_factory.clients) == 1

    async def test_connect_new_policy_reconnects(self, tools, client_factory):
        await tools.connect({})

        result = await tools.connect({"read_only": False})

        assert result["read_only"] is False
        assert len(client_factory.clients) == 2
        client_factory.clients[0].close.assert_called_once()

    async def test_connect_failure_payload(self, tools, client_factory):
        client_factory.ping_error = OSError("connection refused")

        result = await tools.connect({"connection_string": "mongodb://nowhere:1"})

        assert result["success"] is False
        assert result["error_code"] == "DB_CONNECTION_FAILED"
        assert result["operation"] == "connect"
        assert "connection refused" in result["error"]

    async def test_disconnect(self, tools):
        await tools.connect({})

        result = await tools.disconnect()

        assert result["message"] == "Disconnected from MongoDB successfully"
        assert result["disconnect_reason"] == "normal disconnect"

    async def test_disconnect_when_already_disconnected(self, tools):
        await tools.connect({})
        await tools.disconnect({"reason": "maintenance"})

        result = await tools.disconnect()

        assert result["message"] == "Already disconnected from MongoDB"
        assert result["disconnect_reason"] == "maintenance"

    async def test_disconnect_never_connected(self, tools):
        result = await tools.disconnect()

        assert result["disconnect_reason"] == "not connected"

    async def test_connection_status_after_fault(self, tools, client_factory):
        await tools.connect({})
        client_factory.listener(monitoring.ServerListener).closed(
            SimpleNamespace(server_address=("localhost", 27017))
        )

        result = await tools.connection_status()

        assert result["is_connected"] is False
        assert result["disconnect_reason"] == "server closed connection"
        assert "closed connection" in result["connection_error"]

    async def test_service_info(self, tools):
        result = await tools.service_info()

        assert result == {
            "success": True,
            "name": "mongodb-mcp",
            "version": __version__,
            "is_connected": False,
            "has_connection_string": True,
            "read_only": True,
            "default_database": "shop",
        }


# =============================================================================
# DATABASE TOOLS
# =============================================================================


@pytest.mark.unit
class TestDatabaseTools:
    """Introspection, schema and log tools."""

    @pytest.fixture
    def tools(self, connected_manager) -> DatabaseTools:
        return DatabaseTools(connected_manager)

    async def test_not_connected_payload(self, manager):
        result = await DatabaseTools(manager).list_collections()

        assert result["success"] is False
        assert result["error_code"] == "DB_NOT_CONNECTED"
        assert result["error"] == "Not connected to MongoDB. Please connect first."

    async def test_list_databases(self, tools, client_factory):
        async def command(name, *args, **kwargs):
            return {
                "databases": [
                    {"name": "admin", "sizeOnDisk": 40960, "empty": False},
                    {"name": "shop", "sizeOnDisk": 81920, "empty": False},
                ],
                "ok": 1.0,
            }

        client_factory.last_client.admin.command.side_effect = command

        result = await tools.list_databases()

        assert result["total"] == 2
        assert result["databases"][1] == {"name": "shop", "size_on_disk": 81920, "empty": False}

    async def test_list_collections_sorted(self, tools, client_factory):
        client_factory.last_client["shop"].list_collection_names.return_value = [
            "users",
            "orders",
        ]

        result = await tools.list_collections({"database": "shop"})

        assert result["collections"] == ["orders", "users"]
        assert result["database"] == "shop"

    async def test_db_stats(self, tools, client_factory):
        db = client_factory.last_client["shop"]
        db.command.return_value = {"db": "shop", "collections": 2, "ok": 1.0}

        result = await tools.db_stats({"scale": 1024})

        db.command.assert_awaited_once_with("dbStats", scale=1024)
        assert result["stats"]["collections"] == 2

    async def test_collection_indexes(self, tools, client_factory):
        orders(client_factory).index_information.return_value = {
            "_id_": {"key": [("_id", 1)], "v": 2}
        }

        result = await tools.collection_indexes({"collection": "orders"})

        assert result["total"] == 1
        assert result["indexes"][0]["name"] == "_id_"

    async def test_invalid_collection_name(self, tools):
        result = await tools.collection_indexes({"collection": "$cmd"})

        assert result["success"] is False
        assert result["error_code"] == "VALIDATION_ERROR"

    async def test_collection_storage_size(self, tools, client_factory):
        db = client_factory.last_client["shop"]
        db.command.return_value = {"ns": "shop.orders", "size": 1536, "storageSize": 4096}

        result = await tools.collection_storage_size({"collection": "orders"})

        db.command.assert_awaited_once_with("collStats", "orders")
        assert result["size"] == 1536
        assert result["size_formatted"] == "1.5 KB"

    async def test_collection_storage_size_falls_back_to_storage_size(
        self, tools, client_factory
    ):
        client_factory.last_client["shop"].command.return_value = {"storageSize": 3 * 1024**2}

        result = await tools.collection_storage_size({"collection": "orders"})

        assert result["size_formatted"] == "3 MB"

    @pytest.mark.parametrize(
        ("size", "expected"),
        [(0, "0 Bytes"), (512, "512 Bytes"), (1024, "1 KB"), (123456789, "117.74 MB")],
    )
    def test_format_bytes(self, size, expected):
        assert format_bytes(size) == expected

    async def test_collection_schema(self, tools, client_factory):
        cursor = make_cursor(
            [
                {"_id": ObjectId(), "status": "A", "qty": 1, "placed": datetime.now(timezone.utc)},
                {"_id": ObjectId(), "status": "B", "qty": 2.5, "note": None},
            ]
        )
        orders(client_factory).find.return_value = cursor

        result = await tools.collection_schema({"collection": "orders", "sample_size": 2})

        cursor.limit.assert_called_once_with(2)
        schema = result["schema"]
        assert result["sample_size"] == 2
        assert schema["properties"]["_id"] == {"type": "objectId"}
        assert schema["properties"]["qty"] == {"type": "number"}
        assert schema["properties"]["placed"] == {"type": "date"}
        assert schema["properties"]["note"] == {"type": "null"}
        assert schema["required"] == ["_id", "status", "qty", "placed"]

    async def test_collection_schema_mixed_types(self, tools, client_factory):
        orders(client_factory).find.return_value = make_cursor(
            [{"code": "X1"}, {"code": 7}, {"code": {"part": "a"}}]
        )

        result = await tools.collection_schema({"collection": "orders"})

        assert result["schema"]["properties"]["code"] == {
            "anyOf": [
                {"type": "string"},
                {"type": "integer"},
                {"type": "object", "properties": {"part": {"type": "string"}}, "required": ["part"]},
            ]
        }

    async def test_collection_schema_merges_nested_documents(self, tools, client_factory):
        orders(client_factory).find.return_value = make_cursor(
            [{"address": {"city": "Oslo"}}, {"address": {"zip": "0150"}}]
        )

        result = await tools.collection_schema({"collection": "orders"})

        address = result["schema"]["properties"]["address"]
        assert set(address["properties"]) == {"city", "zip"}

    async def test_collection_schema_empty_collection(self, tools, client_factory):
        orders(client_factory).find.return_value = make_cursor([])

        result = await tools.collection_schema({"collection": "orders"})

        assert result["success"] is True
        assert result["sample_size"] == 0
        assert result["schema"]["properties"] == {}
        assert result["message"] == "No documents found in the collection to infer schema"

    async def test_mongodb_logs(self, tools, client_factory):
        async def command(name, *args, **kwargs):
            return {"totalLinesWritten": 3, "log": ["one", "two", "three"], "ok": 1.0}

        admin = client_factory.last_client.admin
        admin.command.side_effect = command

        result = await tools.mongodb_logs({"limit": 2, "log_type": "startupWarnings"})

        admin.command.assert_awaited_with("getLog", "startupWarnings")
        assert result["logs"] == ["two", "three"]
        assert result["total"] == 3
        assert result["log_type"] == "startupWarnings"

    async def test_mongodb_logs_rejects_unknown_log(self, tools):
        result = await tools.mongodb_logs({"log_type": "audit"})

        assert result["error_code"] == "VALIDATION_ERROR"


# =============================================================================
# QUERY TOOLS
# =============================================================================


@pytest.mark.unit
class TestQueryTools:
    """find, count, aggregate and explain."""

    @pytest.fixture
    def tools(self, connected_manager) -> QueryTools:
        return QueryTools(connected_manager)

    async def test_find_default_limit(self, tools, client_factory):
        cursor = make_cursor([{"_id": ObjectId("507f1f77bcf86cd799439011"), "total": 5}])
        orders(client_factory).find.return_value = cursor

        result = await tools.find({"collection": "orders", "filter": {"status": "A"}})

        assert result["success"] is True
        assert result["limit"] == 10
        assert result["documents"] == [
            {"_id": {"$oid": "507f1f77bcf86cd799439011"}, "total": 5}
        ]
        orders(client_factory).find.assert_called_once_with({"status": "A"}, None)
        cursor.limit.assert_called_once_with(10)

    async def test_find_limit_is_capped(self, tools, client_factory):
        cursor = make_cursor([])
        orders(client_factory).find.return_value = cursor

        result = await tools.find({"collection": "orders", "limit": 50000})

        assert result["limit"] == 1000
        cursor.to_list.assert_awaited_once_with(length=1000)

    async def test_find_sort(self, tools, client_factory):
        cursor = make_cursor([])
        orders(client_factory).find.return_value = cursor

        await tools.find({"collection": "orders", "sort": {"created_at": -1}})

        cursor.sort.assert_called_once_with([("created_at", -1)])

    async def test_find_invalid_sort(self, tools):
        result = await tools.find({"collection": "orders", "sort": {"created_at": 2}})

        assert result["error_code"] == "VALIDATION_ERROR"

    async def test_count(self, tools, client_factory):
        orders(client_factory).count_documents.return_value = 42

        result = await tools.count({"collection": "orders", "filter": {"status": "A"}})

        assert result["count"] == 42

    async def test_aggregate_appends_limit(self, tools, client_factory):
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        orders(client_factory).aggregate.return_value = make_cursor(
            [{"_id": "A", "latest": created}]
        )

        result = await tools.aggregate(
            {"collection": "orders", "pipeline": [{"$group": {"_id": "$status"}}]}
        )

        pipeline = orders(client_factory).aggregate.call_args.args[0]
        assert pipeline == [{"$group": {"_id": "$status"}}, {"$limit": 1000}]
        assert result["count"] == 1
        assert result["has_more_results"] is False
        assert result["results"][0]["latest"] == {"$date": "2024-01-01T00:00:00Z"}

    async def test_aggregate_reports_more_results(self, client_factory, test_settings):
        manager = ConnectionManager(
            test_settings.model_copy(update={"aggregate_result_limit": 2}),
            client_factory=client_factory,
        )
        await manager.connect()
        orders(client_factory).aggregate.return_value = make_cursor([{"n": 1}, {"n": 2}])

        result = await QueryTools(manager).aggregate({"collection": "orders", "pipeline": []})

        assert result["has_more_results"] is True
        assert orders(client_factory).aggregate.call_args.args[0] == [{"$limit": 2}]

    async def test_aggregate_out_rejected_in_read_only(self, tools, client_factory):
        result = await tools.aggregate(
            {
                "collection": "orders",
                "pipeline": [{"$match": {"a": 1}}, {"$out": "archive"}],
            }
        )

        assert result["success"] is False
        assert result["error_code"] == "READ_ONLY_VIOLATION"
        assert result["details"]["operation"] == "$out"
        assert orders(client_factory).aggregate.call_count == 0

    async def test_aggregate_out_allowed_when_writable(self, manager, client_factory):
        await manager.connect(read_only=False)
        orders(client_factory).aggregate.return_value = make_cursor([])

        result = await QueryTools(manager).aggregate(
            {"collection": "orders", "pipeline": [{"$out": "archive"}]}
        )

        assert result["success"] is True
        assert orders(client_factory).aggregate.call_args.args[0] == [{"$out": "archive"}]

    async def test_aggregate_not_connected_takes_precedence(self, manager):
        result = await QueryTools(manager).aggregate(
            {"collection": "orders", "pipeline": [{"$out": "archive"}]}
        )

        assert result["error_code"] == "DB_NOT_CONNECTED"

    async def test_explain_find(self, tools, client_factory):
        db = client_factory.last_client["shop"]
        db.command.return_value = {"queryPlanner": {"winningPlan": {"stage": "COLLSCAN"}}}

        result = await tools.explain(
            {
                "collection": "orders",
                "method": "find",
                "arguments": {"filter": {"status": "A"}, "limit": 5},
                "verbosity": "executionStats",
            }
        )

        db.command.assert_awaited_once_with(
            {
                "explain": {"find": "orders", "filter": {"status": "A"}, "limit": 5},
                "verbosity": "executionStats",
            }
        )
        assert result["method"] == "find"
        assert result["explain_result"]["queryPlanner"]["winningPlan"]["stage"] == "COLLSCAN"

    async def test_explain_count(self, tools, client_factory):
        db = client_factory.last_client["shop"]

        await tools.explain(
            {"collection": "orders", "method": "count", "arguments": {"query": {"qty": 1}}}
        )

        explained = db.command.call_args.args[0]
        assert explained["explain"] == {"count": "orders", "query": {"qty": 1}}
        assert explained["verbosity"] == "queryPlanner"

    async def test_explain_aggregate_out_rejected_in_read_only(self, tools, client_factory):
        result = await tools.explain(
            {
                "collection": "orders",
                "method": "aggregate",
                "arguments": {"pipeline": [{"$match": {}}, {"$out": "archive"}]},
            }
        )

        assert result["error_code"] == "READ_ONLY_VIOLATION"
        assert result["details"]["operation"] == "$out"
        assert client_factory.last_client["shop"].command.await_count == 0

    async def test_explain_aggregate_out_allowed_when_writable(self, manager, client_factory):
        await manager.connect(read_only=False)

        result = await QueryTools(manager).explain(
            {
                "collection": "orders",
                "method": "aggregate",
                "arguments": {"pipeline": [{"$out": "archive"}]},
            }
        )

        assert result["success"] is True
        explained = client_factory.last_client["shop"].command.call_args.args[0]
        assert explained["explain"]["pipeline"] == [{"$out": "archive"}]

    async def test_explain_malformed_pipeline(self, tools):
        result = await tools.explain(
            {"collection": "orders", "method": "aggregate", "arguments": {"pipeline": {"$match": {}}}}
        )

        assert result["error_code"] == "INVALID_QUERY"

    async def test_explain_unknown_method(self, tools):
        result = await tools.explain({"collection": "orders", "method": "distinct"})

        assert result["error_code"] == "VALIDATION_ERROR"

    async def test_server_error_payload(self, tools, client_factory):
        orders(client_factory).count_documents.side_effect = OperationFailure(
            "unknown top level operator: $foo", code=2
        )

        result = await tools.count({"collection": "orders", "filter": {"$foo": 1}})

        assert result["error_code"] == "QUERY_EXECUTION_FAILED"
        assert result["operation"] == "count"

    async def test_lost_connection_payload(self, tools, client_factory):
        client_factory.listener(monitoring.ConnectionPoolListener).connection_closed(
            SimpleNamespace(
                address=("localhost", 27017), reason=monitoring.ConnectionClosedReason.ERROR
            )
        )

        result = await tools.find({"collection": "orders"})

        assert result["error_code"] == "DB_NOT_CONNECTED"
