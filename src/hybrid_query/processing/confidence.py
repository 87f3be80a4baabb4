"""
Confidence calculation for query results.

Confidence summarizes how much the merged results can be trusted:
higher average relevance and more contributing sources raise it; very
short aggregate content, low relevance and failed branches lower it.
The coefficients are tunable (ConfidenceConfig); only the direction of
each factor is fixed.
"""

import logging
from typing import Optional, Sequence

from hybrid_query.config import ConfidenceConfig
from hybrid_query.models import SearchResult

logger = logging.getLogger(__name__)

# Each penalty can at most halve the score, so a non-empty result never
# reports zero confidence.
MIN_PENALTY_FACTOR = 0.5


def calculate_confidence(
    results: Sequence[SearchResult],
    failed_branches: int = 0,
    config: Optional[ConfidenceConfig] = None,
) -> float:
    """
    Calculate confidence for a merged result list.

    Args:
        results: Merged results (relevance already rounded)
        failed_branches: Number of fan-out branches that failed or timed out
        config: Coefficients (defaults when None)

    Returns:
        Confidence score between 0.0 and 1.0 (0.0 for no results)
    """
    if not results:
        return 0.0

    config = config or ConfidenceConfig()

    average = sum(r.relevance_score for r in results) / len(results)

    # More contributing sources raise confidence
    sources = {r.source_id for r in results}
    source_bonus = min(config.max_source_bonus, config.source_bonus * (len(sources) - 1))

    factor = 1.0
    content_chars = sum(len(r.excerpt) + len(r.title) for r in results)
    if content_chars < config.short_content_chars:
        factor *= max(MIN_PENALTY_FACTOR, 1.0 - config.short_content_penalty)
    if average < config.low_relevance_threshold:
        factor *= max(MIN_PENALTY_FACTOR, 1.0 - config.low_relevance_penalty)
    if failed_branches:
        factor *= max(MIN_PENALTY_FACTOR, 1.0 - config.failed_branch_penalty * failed_branches)

    confidence = max(0.0, min(1.0, (average + source_bonus) * factor))

    logger.debug(
        f"Confidence calculation: results={len(results)}, sources={len(sources)}, "
        f"average={average:.3f}, bonus={source_bonus:.2f}, factor={factor:.2f}, "
        f"final={confidence:.3f}"
    )
    return round(confidence, 3)
