"""Aggregation pipeline validation for read-only connections.

The read-only interceptor runs every pipeline through validate_pipeline_stages()
before it reaches the driver. Tools may call it directly to reject a pipeline
before opening a cursor.

Only top-level stage names are inspected. Stages nested inside $lookup,
$facet or $unionWith sub-pipelines are not scanned.

Example:
    >>> validate_pipeline_stages([{"$match": {"a": 1}}, {"$group": {"_id": "$a"}}])
    >>> validate_pipeline_stages([{"$match": {"a": 1}}, {"$out": "x"}])
    Traceback (most recent call last):
    ...
    ReadOnlyViolation: [READ_ONLY_VIOLATION] Aggregation stage '$out' is not allowed ...
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ..exceptions import InvalidQueryError, ReadOnlyViolation

logger = logging.getLogger(__name__)

# Stages that write their results into a collection
WRITE_STAGES: frozenset[str] = frozenset({"$out", "$merge"})


def get_stage_name(stage: Any) -> str | None:
    """Return the operator name of a single pipeline stage.

    Args:
        stage: A stage specifier such as {"$match": {...}}

    Returns:
        The first key of the stage, or None for an empty stage

    Raises:
        InvalidQueryError: If the stage is not a mapping
    """
    if not isinstance(stage, Mapping):
        raise InvalidQueryError(
            message="Aggregation stage must be a document",
            details={"received_type": type(stage).__name__},
        )
    for name in stage:
        return name
    return None


def validate_pipeline_stages(
    pipeline: Any, disallowed: Iterable[str] = WRITE_STAGES
) -> None:
    """Reject a pipeline containing a disallowed top-level stage.

    Stages are scanned in order and the first disallowed one fails the whole
    pipeline. An empty pipeline passes.

    Args:
        pipeline: Ordered sequence of single-key stage documents
        disallowed: Stage names to reject, $out and $merge by default

    Raises:
        InvalidQueryError: If the pipeline is not a list of documents
        ReadOnlyViolation: If a disallowed stage is found, naming that stage
    """
    if isinstance(pipeline, (str, bytes, Mapping)) or not isinstance(pipeline, Sequence):
        raise InvalidQueryError(
            message="Aggregation pipeline must be an array/list of stages",
            details={"received_type": type(pipeline).__name__},
        )

    blocked = frozenset(disallowed)
    for index, stage in enumerate(pipeline):
        name = get_stage_name(stage)
        if name in blocked:
            logger.warning(f"Rejected aggregation stage {name} at position {index}")
            raise ReadOnlyViolation.for_stage(name)
