"""
Configuration for the query engine.

All configuration objects are pydantic models validated at construction.
Settings.from_env() assembles them from environment variables (after
loading a .env file), so deployments never need a config file.
"""

import logging
import os
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

from hybrid_query.errors import ConfigurationError

logger = logging.getLogger(__name__)

Provider = Literal["flat", "remote-collection", "managed"]
Metric = Literal["cosine", "l2", "dot"]


class VectorIndexConfig(BaseModel):
    """Backend selection and connection details for one vector index"""

    provider: Provider = "flat"
    dimension: int = Field(..., gt=0)
    index_name: str = "default"
    connection_string: Optional[str] = None
    api_key: Optional[str] = None
    environment: Optional[str] = None
    namespace: Optional[str] = None
    metric: Metric = "cosine"
    batch_size: int = Field(default=100, gt=0)
    timeout: float = Field(default=30.0, gt=0)


class RankingConfig(BaseModel):
    metadata_max_bonus: float = Field(default=0.15, ge=0.0, le=1.0)
    recency_max_bonus: float = Field(default=0.1, ge=0.0, le=1.0)
    recency_half_life_days: float = Field(default=30.0, gt=0)
    metadata_fields: List[str] = Field(default_factory=lambda: ["title", "category", "tags"])
    text_fields: List[str] = Field(
        default_factory=lambda: ["title", "content", "text", "excerpt", "category", "tags"]
    )
    keyword_candidate_multiplier: int = Field(default=5, ge=1)


class ConfidenceConfig(BaseModel):
    """Tunable coefficients for QueryResult.confidence"""

    source_bonus: float = Field(default=0.05, ge=0.0)
    max_source_bonus: float = Field(default=0.15, ge=0.0)
    short_content_chars: int = Field(default=100, ge=0)
    short_content_penalty: float = Field(default=0.1, ge=0.0)
    low_relevance_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    low_relevance_penalty: float = Field(default=0.1, ge=0.0)
    failed_branch_penalty: float = Field(default=0.1, ge=0.0, le=1.0)


class QueryProcessorConfig(BaseModel):
    max_concurrent_queries: int = Field(default=10, gt=0)
    default_timeout: float = Field(default=30.0, gt=0, description="Seconds")
    enable_parallel_search: bool = True
    cache_enabled: bool = True
    cache_ttl: int = Field(default=3600, gt=0, description="Seconds")
    min_confidence_threshold: float = Field(default=0.1, ge=0.0, le=1.0)
    max_results_per_source: int = Field(default=50, gt=0)
    max_results: int = Field(default=100, gt=0)
    vector_weight: float = Field(default=0.7, ge=0.0)
    keyword_weight: float = Field(default=0.3, ge=0.0)
    vector_source_id: str = "vector-index"
    vector_source_name: str = "Vector Index"
    single_flight: bool = True
    max_tracked_handles: int = Field(default=1000, gt=0)

    @model_validator(mode="after")
    def _weights_not_both_zero(self):
        if self.vector_weight == 0 and self.keyword_weight == 0:
            raise ValueError("vector_weight and keyword_weight cannot both be zero")
        return self


class CacheConfig(BaseModel):
    backend: Literal["memory", "redis"] = "memory"
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    key_prefix: str = "hybrid_query:"
    max_entries: int = Field(default=10000, gt=0)
    default_ttl: int = Field(default=3600, gt=0)


class Settings(BaseModel):
    index: VectorIndexConfig
    ranking: RankingConfig = Field(default_factory=RankingConfig)
    processor: QueryProcessorConfig = Field(default_factory=QueryProcessorConfig)
    confidence: ConfidenceConfig = Field(default_factory=ConfidenceConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)

    @classmethod
    def from_env(cls, prefix: str = "HYBRID_QUERY_", env_file: Optional[str] = None) -> "Settings":
        """
        Build settings from environment variables.

        Variables are named <prefix><SECTION>_<FIELD>, e.g.
        HYBRID_QUERY_INDEX_PROVIDER=remote-collection or
        HYBRID_QUERY_PROCESSOR_DEFAULT_TIMEOUT=2.5. Unset fields keep
        their defaults.

        Raises:
            ConfigurationError: If a value fails validation
        """
        load_dotenv(env_file)

        sections = {
            "index": VectorIndexConfig,
            "ranking": RankingConfig,
            "processor": QueryProcessorConfig,
            "confidence": ConfidenceConfig,
            "cache": CacheConfig,
        }
        data = {}
        for section, model in sections.items():
            values = {}
            for field_name, field in model.model_fields.items():
                raw = os.getenv(f"{prefix}{section}_{field_name}".upper())
                if raw is None:
                    continue
                if field.annotation in (List[str],):
                    values[field_name] = [item.strip() for item in raw.split(",") if item.strip()]
                else:
                    values[field_name] = raw
            data[section] = values

        try:
            settings = cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration from environment: {e}") from e

        logger.info(
            f"Settings loaded from environment (provider={settings.index.provider}, "
            f"cache={settings.cache.backend})"
        )
        return settings
