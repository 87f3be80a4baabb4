"""
Metadata filters.

A filter is a dict mapping a metadata field to either a plain value
(equality) or an operator dict such as {"$gte": 3, "$lt": 10}. Supported
operators: $eq, $ne, $gt, $gte, $lt, $lte, $in, $contains.
"""

import logging
from typing import Any, Dict, List, Optional

from hybrid_query.errors import ValidationError
from hybrid_query.models import QueryFilter

logger = logging.getLogger(__name__)

OPERATORS = {"$eq", "$ne", "$gt", "$gte", "$lt", "$lte", "$in", "$contains"}


def build_filter(filters: Optional[List[QueryFilter]]) -> Optional[Dict[str, Any]]:
    """
    Compile query filters into the metadata filter dict used by backends.

    Several filters on the same field are combined (all must hold).
    """
    if not filters:
        return None

    compiled: Dict[str, Dict[str, Any]] = {}
    for query_filter in filters:
        conditions = compiled.setdefault(query_filter.field, {})
        operator = f"${query_filter.operator}"
        value = query_filter.value
        if operator == "$in" and not isinstance(value, (list, tuple, set)):
            value = [value]
        elif operator == "$in":
            value = list(value)
        if operator in conditions:
            raise ValidationError(
                f"Filter operator '{query_filter.operator}' given twice for field '{query_filter.field}'"
            )
        conditions[operator] = value

    return compiled


def normalize_filter(filter: Optional[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Expand equality shorthand and reject unknown operators."""
    if not filter:
        return {}

    normalized = {}
    for field, condition in filter.items():
        if isinstance(condition, dict):
            unknown = set(condition) - OPERATORS
            if unknown:
                raise ValidationError(
                    f"Unsupported filter operator(s) for '{field}': {', '.join(sorted(unknown))}"
                )
            normalized[field] = dict(condition)
        else:
            normalized[field] = {"$eq": condition}
    return normalized


def _compare(actual: Any, operator: str, expected: Any) -> bool:
    try:
        if operator == "$gt":
            return actual > expected
        if operator == "$gte":
            return actual >= expected
        if operator == "$lt":
            return actual < expected
        if operator == "$lte":
            return actual <= expected
    except TypeError:
        return False
    return False


def _check(actual: Any, operator: str, expected: Any) -> bool:
    if operator == "$eq":
        if isinstance(actual, list):
            return expected in actual
        return actual == expected
    if operator == "$ne":
        if isinstance(actual, list):
            return expected not in actual
        return actual != expected
    if operator == "$in":
        if isinstance(actual, list):
            return any(item in expected for item in actual)
        return actual in expected
    if operator == "$contains":
        if isinstance(actual, list):
            return any(str(expected).lower() == str(item).lower() for item in actual)
        if actual is None:
            return False
        return str(expected).lower() in str(actual).lower()
    if actual is None:
        return False
    return _compare(actual, operator, expected)


def matches_filter(metadata: Dict[str, Any], filter: Optional[Dict[str, Any]]) -> bool:
    """Evaluate a metadata filter in-process."""
    for field, conditions in normalize_filter(filter).items():
        actual = metadata.get(field)
        for operator, expected in conditions.items():
            if not _check(actual, operator, expected):
                return False
    return True
