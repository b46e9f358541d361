"""Schema inference from a sample of collection documents.

Each sampled document contributes its top-level fields. A field seen with
one type keeps that type, a field seen with several types lists them under
anyOf, and nested documents are merged field by field. A field is required
once any sampled document holds a non-null value for it.

Example:
    >>> infer_schema([{"name": "a", "qty": 1}, {"name": "b", "qty": 2.5}])
    {'type': 'object', 'properties': {'name': {'type': 'string'},
     'qty': {'type': 'number'}}, 'required': ['name', 'qty']}
"""

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from bson import Binary, Decimal128, ObjectId, Regex, Timestamp

# Type pairs that collapse into a single, more general type
_GENERALISATIONS = {
    frozenset({"integer", "number"}): "number",
}


def value_type(value: Any) -> str:
    """Schema type name of a single BSON value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "date" if _looks_like_date(value) else "string"
    if isinstance(value, datetime):
        return "date"
    if isinstance(value, ObjectId):
        return "objectId"
    if isinstance(value, Decimal128):
        return "decimal128"
    if isinstance(value, Binary):
        return "binary"
    if isinstance(value, Regex):
        return "regex"
    if isinstance(value, Timestamp):
        return "timestamp"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__.lower()


def _looks_like_date(value: str) -> bool:
    # ISO dates only, so plain numeric strings stay strings
    if len(value) < 10 or value[4] != "-":
        return False
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def _field_schema(value: Any) -> dict[str, Any]:
    kind = value_type(value)
    if kind == "object":
        return infer_schema([value])
    if kind == "array":
        items = [_field_schema(item) for item in value]
        schema: dict[str, Any] = {"type": "array"}
        if items:
            merged = items[0]
            for item in items[1:]:
                merged = _merge(merged, item)
            schema["items"] = merged
        return schema
    return {"type": kind}


def _types_of(schema: dict[str, Any]) -> list[dict[str, Any]]:
    return list(schema["anyOf"]) if "anyOf" in schema else [schema]


def _merge(existing: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    if existing.get("type") == incoming.get("type") == "object":
        return infer_schema([], base=(existing, incoming))
    if existing == incoming:
        return existing

    general = _GENERALISATIONS.get(frozenset({existing.get("type"), incoming.get("type")}))
    if general is not None:
        return {"type": general}

    variants = _types_of(existing)
    for candidate in _types_of(incoming):
        if candidate not in variants:
            variants.append(candidate)
    return {"anyOf": variants}


def infer_schema(
    documents: Iterable[Mapping[str, Any]],
    base: tuple[dict[str, Any], ...] = (),
) -> dict[str, Any]:
    """Infer an object schema covering every document in the sample.

    Args:
        documents: Sampled documents
        base: Object schemas already inferred, merged in before the documents

    Returns:
        {"type": "object", "properties": {...}, "required": [...]}
    """
    properties: dict[str, dict[str, Any]] = {}
    required: list[str] = []

    def add(name: str, schema: dict[str, Any], present: bool) -> None:
        properties[name] = _merge(properties[name], schema) if name in properties else schema
        if present and name not in required:
            required.append(name)

    for schema in base:
        for name, field in schema.get("properties", {}).items():
            add(name, field, name in schema.get("required", ()))

    for document in documents:
        for name, value in document.items():
            add(name, _field_schema(value), value is not None)

    return {"type": "object", "properties": properties, "required": required}
