"""Result serialization for converting MongoDB results to JSON.

Tool results travel as JSON. BSON-specific types (ObjectId, datetime,
Decimal128, Binary, ...) are converted with bson.json_util in relaxed mode so
plain values stay plain and extended types keep a lossless representation.
"""

import json
import logging
from typing import Any

from bson import json_util
from bson.json_util import RELAXED_JSON_OPTIONS

logger = logging.getLogger(__name__)


def serialize_mongodb_result(data: Any) -> str:
    """Serialize MongoDB query results to a JSON string with BSON type support.

    Args:
        data: MongoDB result data (dict, list, or BSON types)

    Returns:
        JSON formatted string

    Raises:
        TypeError: If data contains non-serializable types

    Example:
        >>> serialize_mongodb_result({"_id": ObjectId("507f1f77bcf86cd799439011")})
        '{"_id": {"$oid": "507f1f77bcf86cd799439011"}}'
    """
    try:
        return json_util.dumps(data, json_options=RELAXED_JSON_OPTIONS)

    except TypeError as e:
        logger.error(f"Failed to serialize MongoDB result: {e}")
        raise


def to_json_compatible(data: Any) -> Any:
    """Convert MongoDB results into plain JSON-compatible Python objects.

    Example:
        >>> to_json_compatible({"n": 1, "at": datetime(2024, 1, 1, tzinfo=timezone.utc)})
        {'n': 1, 'at': {'$date': '2024-01-01T00:00:00Z'}}
    """
    return json.loads(serialize_mongodb_result(data))

