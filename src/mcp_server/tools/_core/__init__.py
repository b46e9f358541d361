"""Core helpers shared by every MongoDB tool."""

from .result_serialization import (
    serialize_mongodb_result,
    to_json_compatible,
)
from .schema_inference import infer_schema, value_type

__all__ = [
    "infer_schema",
    "serialize_mongodb_result",
    "to_json_compatible",
    "value_type",
]
