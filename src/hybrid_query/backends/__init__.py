"""
Vector index backends.

One protocol, several providers. The provider is picked from
VectorIndexConfig.provider at runtime:

- "flat": FlatIndexBackend, in-process numpy index
- "remote-collection": QdrantIndexBackend
- "managed": ManagedIndexBackend, hosted index service over REST
"""

import logging
from typing import Any

from hybrid_query.backends.filters import build_filter, matches_filter
from hybrid_query.backends.flat import FlatIndexBackend
from hybrid_query.backends.protocol import VectorIndexBackend
from hybrid_query.config import VectorIndexConfig
from hybrid_query.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "VectorIndexBackend",
    "FlatIndexBackend",
    "build_filter",
    "matches_filter",
    "create_backend",
    "open_backend",
]

try:
    from hybrid_query.backends.qdrant import QdrantIndexBackend  # noqa: F401

    __all__.append("QdrantIndexBackend")
except ImportError:
    pass

try:
    from hybrid_query.backends.managed import ManagedIndexBackend  # noqa: F401

    __all__.append("ManagedIndexBackend")
except ImportError:
    pass


def create_backend(config: VectorIndexConfig, **kwargs: Any) -> VectorIndexBackend:
    """
    Build the backend for config.provider without connecting it.

    Extra keyword arguments go to the provider constructor (for example
    client= for Qdrant or transport= for the managed service).

    Raises:
        ConfigurationError: If the provider is unknown or its SDK is not installed
    """
    if config.provider == "flat":
        return FlatIndexBackend(**kwargs)

    if config.provider == "remote-collection":
        try:
            from hybrid_query.backends.qdrant import QdrantIndexBackend
        except ImportError as e:
            raise ConfigurationError(
                "qdrant-client is required for the remote-collection provider"
            ) from e
        return QdrantIndexBackend(**kwargs)

    if config.provider == "managed":
        try:
            from hybrid_query.backends.managed import ManagedIndexBackend
        except ImportError as e:
            raise ConfigurationError("httpx is required for the managed provider") from e
        return ManagedIndexBackend(**kwargs)

    raise ConfigurationError(f"Unknown vector index provider: {config.provider}")


async def open_backend(config: VectorIndexConfig, **kwargs: Any) -> VectorIndexBackend:
    """Create and initialize a backend in one step."""
    backend = create_backend(config, **kwargs)
    await backend.initialize(config)
    logger.info(f"Opened {config.provider} backend for index {config.index_name}")
    return backend
