"""Configuration loading for the cache-sync pipeline.

Configuration is loaded from ``config/config.yaml`` (or an explicit path).

Main Functions
--------------

    - load_config(): Load configuration from YAML
    - get_config(): Get or load singleton config instance
    - set_config(): Replace the singleton (tests)
    - reset_config(): Reset singleton config instance

Usage Examples
--------------

    >>> from config import load_config
    >>> config = load_config()
    >>> config.redis.host
    'localhost'

Configuration Priority
----------------------

1. Environment variables (REDIS_HOST, REDIS_PORT, REDIS_CLUSTER_MODE,
   ENRICHMENT_API_URL, CACHE_SYNC_TEST_MODE)
2. YAML configuration file (with ${VAR} expansion)
3. Dataclass defaults
"""

from config.config import (
    ApiConfig,
    AuditConfig,
    CacheSyncConfig,
    CollectionsConfig,
    RedisConfig,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    # Functions
    "load_config",
    "get_config",
    "set_config",
    "reset_config",
    # Classes
    "CacheSyncConfig",
    "ApiConfig",
    "RedisConfig",
    "AuditConfig",
    "CollectionsConfig",
]
