"""
Merging fan-out branch results into one ranked list.
"""

import logging
from typing import Dict, List, Sequence, Set, Tuple

from hybrid_query.models import RankedResult, SearchResult

logger = logging.getLogger(__name__)

EXCERPT_CHARS = 200


def to_search_results(
    ranked: Sequence[RankedResult], source_id: str, source_name: str
) -> List[SearchResult]:
    """Attribute vector index hits to the vector source."""
    results = []
    for hit in ranked:
        metadata = hit.metadata
        text = metadata.get("excerpt") or metadata.get("text") or metadata.get("content") or ""
        results.append(
            SearchResult(
                content_id=str(metadata.get("content_id") or metadata.get("contentId") or hit.id),
                source_id=str(metadata.get("source_id") or metadata.get("sourceId") or source_id),
                source_name=str(metadata.get("source_name") or metadata.get("sourceName") or source_name),
                title=str(metadata.get("title") or "Untitled"),
                excerpt=str(text)[:EXCERPT_CHARS],
                relevance_score=hit.final_score,
                metadata=dict(metadata),
            )
        )
    return results


def merge_results(
    branches: Sequence[Sequence[SearchResult]],
    min_confidence_threshold: float,
    max_results_per_source: int,
    max_results: int,
) -> List[SearchResult]:
    """
    Merge branch outputs deterministically.

    Branches must be passed in declared order: relevance ties keep that
    order, so the output never depends on which branch finished first.

    1. Round relevance to 3 decimals and drop results under the threshold
    2. Stable sort by relevance descending
    3. Deduplicate by (source_id, content_id), keeping the best
    4. Cap each source at max_results_per_source, then the total at max_results
    """
    candidates: List[SearchResult] = []
    for branch in branches:
        for result in branch:
            score = round(result.relevance_score, 3)
            if score < min_confidence_threshold:
                continue
            candidates.append(result.model_copy(update={"relevance_score": score}))

    candidates.sort(key=lambda r: -r.relevance_score)

    seen: Set[Tuple[str, str]] = set()
    per_source: Dict[str, int] = {}
    merged: List[SearchResult] = []
    for result in candidates:
        identity = (result.source_id, result.content_id)
        if identity in seen:
            continue
        seen.add(identity)

        if per_source.get(result.source_id, 0) >= max_results_per_source:
            continue
        per_source[result.source_id] = per_source.get(result.source_id, 0) + 1

        merged.append(result)
        if len(merged) >= max_results:
            break

    logger.debug(f"Merged {len(candidates)} candidates into {len(merged)} results")
    return merged
