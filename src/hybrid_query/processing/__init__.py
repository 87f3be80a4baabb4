"""
Query processing: admission control, fan-out, merge, confidence, caching.
"""

from hybrid_query.processing.admission import AdmissionGate
from hybrid_query.processing.confidence import calculate_confidence
from hybrid_query.processing.fingerprint import cache_key, fingerprint, normalize_text
from hybrid_query.processing.merge import merge_results, to_search_results
from hybrid_query.processing.processor import DATA_SOURCE_BRANCH, VECTOR_BRANCH, QueryProcessor
from hybrid_query.processing.single_flight import SingleFlight
from hybrid_query.processing.tasks import QueryHandle
from hybrid_query.processing.warming import CacheWarmer, QueryUsage, UsageTracker

__all__ = [
    "QueryProcessor",
    "QueryHandle",
    "AdmissionGate",
    "SingleFlight",
    "CacheWarmer",
    "UsageTracker",
    "QueryUsage",
    "calculate_confidence",
    "fingerprint",
    "cache_key",
    "normalize_text",
    "merge_results",
    "to_search_results",
    "VECTOR_BRANCH",
    "DATA_SOURCE_BRANCH",
]
