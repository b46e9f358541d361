"""Database introspection tools: databases, collections, stats, indexes, schema and logs."""

import logging
from typing import Any

from ._core import infer_schema, to_json_compatible
from .base_tool import BaseTool
from .models import (
    CollectionIndexesRequest,
    CollectionSchemaRequest,
    CollectionStorageSizeRequest,
    DbStatsRequest,
    ListCollectionsRequest,
    MongoDBLogsRequest,
)
from .utils import handle_tool_errors, tool_success

logger = logging.getLogger(__name__)

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def format_bytes(size: float) -> str:
    """Human readable size in 1024 steps, e.g. 1536 -> "1.5 KB"."""
    if size <= 0:
        return "0 Bytes"
    unit = 0
    while size >= 1024 and unit < len(_SIZE_UNITS) - 1:
        size /= 1024
        unit += 1
    return f"{round(size, 2):g} {_SIZE_UNITS[unit]}"


class DatabaseTools(BaseTool):
    """Read-only introspection of the connected deployment."""

    @handle_tool_errors
    async def list_databases(self) -> dict[str, Any]:
        """List all databases with their on-disk size."""
        client = self.get_client()
        result = await client.admin.command("listDatabases")
        databases = [
            {
                "name": entry["name"],
                "size_on_disk": entry.get("sizeOnDisk"),
                "empty": entry.get("empty"),
            }
            for entry in result.get("databases", [])
        ]
        return tool_success(databases=databases, total=len(databases))

    @handle_tool_errors
    async def list_collections(
        self, request: ListCollectionsRequest | dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """List collection names of a database, sorted."""
        request = ListCollectionsRequest.model_validate(request or {})
        db = self.get_database(request.database)
        names = sorted(await db.list_collection_names())
        return tool_success(database=db.name, collections=names, total=len(names))

    @handle_tool_errors
    async def db_stats(
        self, request: DbStatsRequest | dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Run the dbStats command."""
        request = DbStatsRequest.model_validate(request or {})
        db = self.get_database(request.database)
        stats = await db.command("dbStats", scale=request.scale)
        return tool_success(database=db.name, stats=to_json_compatible(stats))

    @handle_tool_errors
    async def collection_indexes(
        self, request: CollectionIndexesRequest | dict[str, Any]
    ) -> dict[str, Any]:
        """Describe the indexes of a collection."""
        request = CollectionIndexesRequest.model_validate(request)
        db = self.get_database(request.database)
        information = await db[request.collection].index_information()
        indexes = [{"name": name, **spec} for name, spec in information.items()]
        return tool_success(
            database=db.name,
            collection=request.collection,
            indexes=to_json_compatible(indexes),
            total=len(indexes),
        )

    @handle_tool_errors
    async def collection_storage_size(
        self, request: CollectionStorageSizeRequest | dict[str, Any]
    ) -> dict[str, Any]:
        """Report the data size of a collection from collStats."""
        request = CollectionStorageSizeRequest.model_validate(request)
        db = self.get_database(request.database)
        stats = await db.command("collStats", request.collection)
        size = stats.get("size") or stats.get("storageSize") or 0
        return tool_success(
            database=db.name,
            collection=request.collection,
            size=size,
            size_formatted=format_bytes(size),
        )

    @handle_tool_errors
    async def collection_schema(
        self, request: CollectionSchemaRequest | dict[str, Any]
    ) -> dict[str, Any]:
        """Infer a collection schema from up to sample_size documents.

        The sample is capped at the configured maximum result limit.
        """
        request = CollectionSchemaRequest.model_validate(request)
        sample_size = min(request.sample_size, self.manager.settings.max_result_limit)
        db = self.get_database(request.database)

        cursor = db[request.collection].find({}).limit(sample_size)
        documents = await cursor.to_list(length=sample_size)

        if not documents:
            return tool_success(
                database=db.name,
                collection=request.collection,
                sample_size=0,
                schema=infer_schema([]),
                message="No documents found in the collection to infer schema",
            )

        logger.debug(f"Inferring schema of {request.collection} from {len(documents)} documents")
        return tool_success(
            database=db.name,
            collection=request.collection,
            sample_size=len(documents),
            schema=infer_schema(documents),
        )

    @handle_tool_errors
    async def mongodb_logs(
        self, request: MongoDBLogsRequest | dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Return the most recent entries of a server log via getLog."""
        request = MongoDBLogsRequest.model_validate(request or {})
        client = self.get_client()
        result = await client.admin.command("getLog", request.log_type)
        entries = result.get("log", [])
        return tool_success(
            logs=entries[-request.limit :],
            total=len(entries),
            limit=request.limit,
            log_type=request.log_type,
        )
