"""Read-only interception for Motor client, database and collection handles.

A read-only handle behaves like the handle it wraps for reads and rejects
writes before they reach the driver. Interception is structural: any
attribute not on a blocklist is forwarded to the real handle, so read
methods added by future driver versions keep working without changes here.

Rules applied on attribute access (every level):
    - Blocked name: returns a callable that raises ReadOnlyViolation when
      called, naming the operation. The real method is never touched.
    - Pipeline entry point (aggregate, watch, ...): returns a wrapper that
      validates the pipeline before forwarding.
    - Sub-handle factory (get_collection, with_options, ...): the returned
      handle is wrapped again.
    - Attribute that is itself a client, database or collection (db.users,
      coll.database, db.client): wrapped again.
    - Anything else: returned as-is, bound to the real handle.

Item access (db["users"], coll["sub"]) always yields a read-only collection,
and client["shop"] a read-only database. db.client is a read-only client, so
walking back up the handle tree never reaches a writable handle.

Example:
    >>> db = ReadOnlyDatabase(client["shop"])
    >>> await db["orders"].find_one({})
    >>> await db["orders"].insert_one({})
    Traceback (most recent call last):
    ...
    ReadOnlyViolation: [READ_ONLY_VIOLATION] Operation 'insert_one' is not allowed ...
"""

import functools
import logging
from collections.abc import Callable, Mapping
from typing import Any, ClassVar

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from ..exceptions import ReadOnlyViolation
from .query_validation import validate_pipeline_stages

logger = logging.getLogger(__name__)

_CLIENT_TYPES = (AsyncIOMotorClient, MongoClient)
_DATABASE_TYPES = (AsyncIOMotorDatabase, Database)
_COLLECTION_TYPES = (AsyncIOMotorCollection, Collection)

# Document-mutating operations shared by both handle levels
_DOCUMENT_WRITES = frozenset(
    {
        "insert_one",
        "insert_many",
        "update_one",
        "update_many",
        "replace_one",
        "delete_one",
        "delete_many",
        "find_one_and_replace",
        "find_one_and_update",
        "find_one_and_delete",
        "bulk_write",
    }
)

# Server commands that modify data or schema
WRITE_COMMANDS = frozenset(
    {
        "insert",
        "update",
        "delete",
        "findandmodify",
        "create",
        "drop",
        "dropdatabase",
        "createindexes",
        "dropindexes",
        "renamecollection",
        "collmod",
        "createuser",
        "dropuser",
        "updateuser",
        "dropallusersfromdatabase",
        "createrole",
        "droprole",
        "clonecollectionascapped",
        "converttocapped",
        "compact",
        "applyops",
    }
)


# Keyword arguments of Database.command() consumed by the driver, not sent
_COMMAND_OPTIONS = frozenset(
    {"value", "check", "allowable_errors", "read_preference", "codec_options", "session"}
)


def _command_document(command: Any, args: tuple, kwargs: dict) -> Mapping | None:
    """The command document the server would receive for a command() call.

    A string command is sent as {command: value} merged with the extra
    keyword arguments, so db.command("aggregate", "orders", pipeline=[...])
    carries its pipeline in kwargs.
    """
    if isinstance(command, str):
        value = args[0] if args else kwargs.get("value", 1)
        extra = {key: val for key, val in kwargs.items() if key not in _COMMAND_OPTIONS}
        return {command: value, **extra}
    if isinstance(command, Mapping):
        return command
    return None


def _is_inline_output(out: Any) -> bool:
    return isinstance(out, Mapping) and dict(out) == {"inline": 1}


def _check_command(document: Mapping) -> None:
    name = next(iter(document), None)
    if not isinstance(name, str):
        return
    lowered = name.lower()

    if lowered in WRITE_COMMANDS:
        logger.warning(f"Blocked write command in read-only mode: {name}")
        raise ReadOnlyViolation.for_operation(name)
    if lowered == "aggregate":
        validate_pipeline_stages(document.get("pipeline", []))
    elif lowered == "mapreduce" and not _is_inline_output(document.get("out")):
        logger.warning("Blocked mapReduce with collection output in read-only mode")
        raise ReadOnlyViolation.for_operation(name)
    elif lowered == "explain" and isinstance(document[name], Mapping):
        _check_command(document[name])


class _ReadOnlyHandle:
    """Shared interception logic for database and collection handles."""

    BLOCKED_OPERATIONS: ClassVar[frozenset[str]] = frozenset()
    PIPELINE_OPERATIONS: ClassVar[frozenset[str]] = frozenset()
    # Factory method name -> wrapper class for the handle it returns
    HANDLE_FACTORIES: ClassVar[dict[str, str]] = {}

    __slots__ = ("_target",)

    def __init__(self, target: Any) -> None:
        object.__setattr__(self, "_target", target)

    @property
    def wrapped(self) -> Any:
        """The underlying driver handle."""
        return self._target

    def __getattr__(self, name: str) -> Any:
        if name in self.BLOCKED_OPERATIONS:
            return _blocked(name)

        value = getattr(self._target, name)

        if name in self.PIPELINE_OPERATIONS and callable(value):
            return _pipeline_guard(value)

        if name == "command" and callable(value):
            return _command_guard(value)

        factory = self.HANDLE_FACTORIES.get(name)
        if factory is not None and callable(value):
            return _rewrap_result(value, _WRAPPERS[factory])

        return wrap_handle(value)

    def __getitem__(self, name: str) -> "ReadOnlyCollection":
        return ReadOnlyCollection(self._target[name])

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, _ReadOnlyHandle):
            return self._target == other._target
        return self._target == other

    def __hash__(self) -> int:
        return hash(self._target)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._target!r})"


class ReadOnlyDatabase(_ReadOnlyHandle):
    """Database handle that rejects schema and data mutations."""

    BLOCKED_OPERATIONS = _DOCUMENT_WRITES | frozenset(
        {
            "create_collection",
            "drop_collection",
            "drop_database",
            "rename_collection",
            "create_index",
            "create_indexes",
            "drop_index",
            "drop_indexes",
            "add_user",
            "remove_user",
        }
    )
    PIPELINE_OPERATIONS = frozenset({"aggregate", "watch"})
    HANDLE_FACTORIES = {"get_collection": "collection", "with_options": "database"}

    __slots__ = ()


class ReadOnlyCollection(_ReadOnlyHandle):
    """Collection handle that rejects document, index and collection mutations."""

    BLOCKED_OPERATIONS = _DOCUMENT_WRITES | frozenset(
        {
            "create_index",
            "create_indexes",
            "drop_index",
            "drop_indexes",
            "create_search_index",
            "create_search_indexes",
            "drop_search_index",
            "update_search_index",
            "drop",
            "rename",
        }
    )
    PIPELINE_OPERATIONS = frozenset({"aggregate", "aggregate_raw_batches", "watch"})
    HANDLE_FACTORIES = {"with_options": "collection"}

    __slots__ = ()


class ReadOnlyClient(_ReadOnlyHandle):
    """Client handle whose databases are all read-only."""

    BLOCKED_OPERATIONS = frozenset({"drop_database", "bulk_write"})
    PIPELINE_OPERATIONS = frozenset({"watch"})
    HANDLE_FACTORIES = {"get_database": "database", "get_default_database": "database"}

    __slots__ = ()

    def __getitem__(self, name: str) -> ReadOnlyDatabase:
        return ReadOnlyDatabase(self._target[name])


_WRAPPERS: dict[str, type[_ReadOnlyHandle]] = {
    "database": ReadOnlyDatabase,
    "collection": ReadOnlyCollection,
}


def wrap_handle(value: Any) -> Any:
    """Wrap driver clients, databases and collections, pass anything else through."""
    if isinstance(value, _ReadOnlyHandle):
        return value
    if isinstance(value, _CLIENT_TYPES):
        return ReadOnlyClient(value)
    if isinstance(value, _COLLECTION_TYPES):
        return ReadOnlyCollection(value)
    if isinstance(value, _DATABASE_TYPES):
        return ReadOnlyDatabase(value)
    return value


def _blocked(operation: str) -> Callable[..., Any]:
    def blocked(*args: Any, **kwargs: Any) -> Any:
        logger.warning(f"Blocked write operation in read-only mode: {operation}")
        raise ReadOnlyViolation.for_operation(operation)

    blocked.__name__ = operation
    return blocked


def _pipeline_guard(method: Callable[..., Any]) -> Callable[..., Any]:
    @functools.wraps(method)
    def guarded(pipeline: Any = None, *args: Any, **kwargs: Any) -> Any:
        # watch() takes an optional pipeline, aggregate() requires one
        if pipeline is not None:
            validate_pipeline_stages(pipeline)
        return method(pipeline, *args, **kwargs)

    return guarded


def _command_guard(method: Callable[..., Any]) -> Callable[..., Any]:
    @functools.wraps(method)
    def guarded(command: Any, *args: Any, **kwargs: Any) -> Any:
        document = _command_document(command, args, kwargs)
        if document is not None:
            _check_command(document)
        return method(command, *args, **kwargs)

    return guarded


def _rewrap_result(
    method: Callable[..., Any], wrapper: type[_ReadOnlyHandle]
) -> Callable[..., Any]:
    @functools.wraps(method)
    def rewrapped(*args: Any, **kwargs: Any) -> _ReadOnlyHandle:
        return wrapper(method(*args, **kwargs))

    return rewrapped
