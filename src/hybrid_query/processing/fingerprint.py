"""
Query fingerprints.

A fingerprint is a pure function of (normalized text, context, filters):
identical inputs always produce the same cache key, regardless of query
id, user or timestamp.
"""

import hashlib
import json

from hybrid_query.models import Query

CACHE_KEY_PREFIX = "query:"


def normalize_text(text: str) -> str:
    """Lowercase and collapse whitespace."""
    return " ".join(text.lower().split())


def fingerprint(query: Query) -> str:
    filters = sorted(
        (f.model_dump(mode="json") for f in query.filters or []),
        key=lambda f: json.dumps(f, sort_keys=True, default=str),
    )
    payload = {
        "text": normalize_text(query.text),
        "context": query.context or {},
        "filters": filters,
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def cache_key(query_fingerprint: str) -> str:
    return f"{CACHE_KEY_PREFIX}{query_fingerprint}"
