"""Query tools: find, count, aggregate and explain.

Results are returned in memory, so every tool bounds the number of documents
it materialises: find through the default and maximum result limits,
aggregate by appending a $limit stage.
"""

import logging
from typing import Any

from ..database.query_validation import WRITE_STAGES, get_stage_name, validate_pipeline_stages
from ._core import to_json_compatible
from .base_tool import BaseTool
from .models import AggregateRequest, CountRequest, ExplainRequest, FindRequest
from .utils import handle_tool_errors, tool_success

logger = logging.getLogger(__name__)


class QueryTools(BaseTool):
    """Document queries against a single collection."""

    @handle_tool_errors
    async def find(self, request: FindRequest | dict[str, Any]) -> dict[str, Any]:
        """Run a find query, capped at the configured maximum result limit."""
        request = FindRequest.model_validate(request)
        settings = self.manager.settings
        limit = min(request.limit or settings.result_limit, settings.max_result_limit)

        collection = self.get_database(request.database)[request.collection]
        cursor = collection.find(request.filter, request.projection)
        if request.sort:
            cursor = cursor.sort(list(request.sort.items()))
        cursor = cursor.limit(limit)

        documents = await cursor.to_list(length=limit)
        logger.debug(f"find on {request.collection} returned {len(documents)} documents")

        return tool_success(
            database=request.database,
            collection=request.collection,
            documents=to_json_compatible(documents),
            count=len(documents),
            limit=limit,
        )

    @handle_tool_errors
    async def count(self, request: CountRequest | dict[str, Any]) -> dict[str, Any]:
        """Count documents matching a filter."""
        request = CountRequest.model_validate(request)
        collection = self.get_database(request.database)[request.collection]
        total = await collection.count_documents(request.filter)
        return tool_success(
            database=request.database, collection=request.collection, count=total
        )

    @handle_tool_errors
    async def aggregate(self, request: AggregateRequest | dict[str, Any]) -> dict[str, Any]:
        """Run an aggregation pipeline and return at most aggregate_result_limit documents.

        On a read-only connection the collection handle rejects a pipeline
        containing $out or $merge before a cursor is opened.
        """
        request = AggregateRequest.model_validate(request)
        collection = self.get_database(request.database)[request.collection]

        max_docs = self.manager.settings.aggregate_result_limit
        pipeline = list(request.pipeline)
        # $out and $merge must stay the last stage
        if not pipeline or get_stage_name(pipeline[-1]) not in WRITE_STAGES:
            pipeline.append({"$limit": max_docs})

        documents = await collection.aggregate(pipeline).to_list(length=None)

        return tool_success(
            database=request.database,
            collection=request.collection,
            results=to_json_compatible(documents),
            count=len(documents),
            has_more_results=len(documents) >= max_docs,
        )

    @handle_tool_errors
    async def explain(self, request: ExplainRequest | dict[str, Any]) -> dict[str, Any]:
        """Return the query plan of a find, count or aggregate.

        The explain command is sent through the database handle, so on a
        read-only connection an explained aggregate containing $out or $merge
        is rejected like a real one.
        """
        request = ExplainRequest.model_validate(request)
        db = self.get_database(request.database)
        command = _explained_command(request.collection, request.method, request.arguments)

        result = await db.command({"explain": command, "verbosity": request.verbosity})

        return tool_success(
            database=db.name,
            collection=request.collection,
            method=request.method,
            verbosity=request.verbosity,
            explain_result=to_json_compatible(result),
        )


def _explained_command(collection: str, method: str, arguments: dict[str, Any]) -> dict[str, Any]:
    if method == "find":
        command: dict[str, Any] = {"find": collection, "filter": arguments.get("filter") or {}}
        for option in ("projection", "sort", "limit"):
            if arguments.get(option) is not None:
                command[option] = arguments[option]
        return command

    if method == "count":
        return {"count": collection, "query": arguments.get("query") or {}}

    pipeline = arguments.get("pipeline", [])
    # Shape only, write stages are left to the read-only handle
    validate_pipeline_stages(pipeline, disallowed=())
    return {"aggregate": collection, "pipeline": pipeline, "cursor": {}}
