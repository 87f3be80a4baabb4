"""
Ranking-factor and keyword scoring helpers.

Every factor returns a value already scaled to its contribution, so the
engine composes final scores by plain addition:

    final = min(1.0, semantic + metadata + recency)
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

import dateparser

from hybrid_query.models import RankedResult

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "is", "are", "was", "were", "be", "been", "have",
        "has", "had", "do", "does", "did", "will", "would", "could", "should",
    }
)  # fmt: skip

TIMESTAMP_FIELDS = ("modifiedAt", "modified_at", "createdAt", "created_at")

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> List[str]:
    return _TOKEN_RE.findall(text.lower())


def extract_keywords(text: str) -> List[str]:
    """Lowercased tokens longer than two characters, stop words removed, first occurrence order."""
    keywords: List[str] = []
    for token in tokenize(text):
        if len(token) <= 2 or token in STOP_WORDS or token in keywords:
            continue
        keywords.append(token)
    return keywords


def metadata_text(metadata: Dict[str, Any], fields: Iterable[str]) -> str:
    parts = []
    for field in fields:
        value = metadata.get(field)
        if value is None:
            continue
        if isinstance(value, (list, tuple, set)):
            parts.extend(str(item) for item in value)
        else:
            parts.append(str(value))
    return " ".join(parts)


def metadata_bonus(
    keywords: Sequence[str],
    metadata: Dict[str, Any],
    fields: Iterable[str],
    max_bonus: float,
) -> float:
    """
    Bonus for query keywords found in descriptive metadata.

    Scales max_bonus by the share of query keywords present in the
    metadata fields (token-set intersection ratio).
    """
    query_tokens = set(keywords)
    if not query_tokens:
        return 0.0

    metadata_tokens = set(tokenize(metadata_text(metadata, fields)))
    overlap = len(query_tokens & metadata_tokens) / len(query_tokens)
    return max_bonus * overlap


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a metadata timestamp into an aware datetime.

    Accepts datetimes, epoch seconds or milliseconds, ISO 8601 strings, and
    anything else dateparser understands. ISO strings skip dateparser, which
    is slow enough to matter when scoring a full candidate list. Naive values
    are taken as UTC.
    """
    if value is None or isinstance(value, bool):
        return None

    parsed: Optional[datetime]
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 1e11 else float(value)
        try:
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            parsed = dateparser.parse(value)
    else:
        return None

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def recency_bonus(
    metadata: Dict[str, Any],
    now: datetime,
    half_life_days: float,
    max_bonus: float,
) -> float:
    """
    Exponentially decaying bonus: max_bonus at age 0, half of it after
    half_life_days. Missing or unparsable timestamps give 0.
    """
    timestamp = None
    for field in TIMESTAMP_FIELDS:
        timestamp = parse_timestamp(metadata.get(field))
        if timestamp is not None:
            break
    if timestamp is None:
        return 0.0

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    age_days = max(0.0, (now - timestamp).total_seconds() / 86400.0)
    return max_bonus * 0.5 ** (age_days / half_life_days)


def keyword_score(
    query_text: str,
    keywords: Sequence[str],
    metadata: Dict[str, Any],
    fields: Iterable[str],
    keyword_boost: Optional[Dict[str, float]] = None,
) -> float:
    """
    Lexical relevance of a document's text fields to the query, in [0, 1].

    The whole query appearing verbatim scores 1.0; otherwise the score is
    the boost-weighted share of query keywords present in the text.
    """
    if not keywords:
        return 0.0

    document_tokens = tokenize(metadata_text(metadata, fields))
    if not document_tokens:
        return 0.0

    phrase = " ".join(tokenize(query_text))
    if len(keywords) > 1 and phrase and phrase in " ".join(document_tokens):
        return 1.0

    boost = {key.lower(): weight for key, weight in (keyword_boost or {}).items()}
    present: Set[str] = set(document_tokens)
    total = sum(max(0.0, boost.get(keyword, 1.0)) for keyword in keywords)
    if total <= 0:
        return 0.0

    matched = sum(max(0.0, boost.get(keyword, 1.0)) for keyword in keywords if keyword in present)
    return min(1.0, matched / total)


def normalize_scores(scores: Sequence[float]) -> List[float]:
    """
    Bring a result set's scores into [0, 1].

    Scores are clamped at 0 and divided by the set maximum only when it
    exceeds 1, so sets already in range are left untouched.
    """
    clamped = [max(0.0, score) for score in scores]
    if not clamped:
        return []
    peak = max(clamped)
    if peak > 1.0:
        return [score / peak for score in clamped]
    return clamped


def _diversity_key(result: RankedResult):
    metadata = result.metadata
    return metadata.get("source_id", metadata.get("sourceId")), metadata.get("category")


def rerank_for_diversity(results: List[RankedResult], top_k: int) -> List[RankedResult]:
    """
    Prefer results whose source and category differ from those already
    picked, then backfill the remaining slots in score order.
    """
    picked: List[RankedResult] = []
    used: Set[str] = set()
    seen_sources: Set[Any] = set()
    seen_categories: Set[Any] = set()

    for result in results:
        if len(picked) >= top_k:
            break
        source, category = _diversity_key(result)
        if picked and (
            (source is not None and source in seen_sources)
            or (category is not None and category in seen_categories)
        ):
            continue
        picked.append(result)
        used.add(result.id)
        if source is not None:
            seen_sources.add(source)
        if category is not None:
            seen_categories.add(category)

    for result in results:
        if len(picked) >= top_k:
            break
        if result.id not in used:
            picked.append(result)
            used.add(result.id)

    return picked
