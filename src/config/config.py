"""Cache-sync configuration from YAML file.

Loads from config/config.yaml with all settings in one place:
- Enrichment API endpoints and timeouts
- Redis cache store connection
- Failure audit sink
- Collection routing (activity, profile, test collections)
- Server, logging and delivery settings

Environment variables ARE supported using ${VAR_NAME} syntax in YAML files.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# Default config file: config/config.yaml in src/ directory
DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"

DEFAULT_ACTIVITY_COLLECTIONS = ["feedEvents", "diaperEvents", "sleepEvents", "pumpingEvents"]
DEFAULT_PROFILE_COLLECTIONS = ["child_profile", "child_questionnaire"]
DEFAULT_TEST_COLLECTIONS = ["testEvents"]


@dataclass
class ApiConfig:
    """Enrichment API endpoints. Paths are formatted with parent_id / child_id."""

    base_url: str = ""
    timeout_seconds: float = 10.0
    time_zone: str = "America/Los_Angeles"
    summary_mode: str = "ML"
    token_path: str = "/token/{parent_id}"
    summary_path: str = "/summary"
    current_logs_path: str = "/current-logs"
    profile_path: str = "/profile/{child_id}"


@dataclass
class RedisConfig:
    host: str = ""
    port: int = 6379
    cluster_mode: bool = False
    connect_timeout_seconds: float = 10.0
    socket_timeout_seconds: Optional[float] = None


@dataclass
class AuditConfig:
    storage_path: str = "./data/audit"
    collection: str = "failure_audit"


@dataclass
class CollectionsConfig:
    activity: List[str] = field(default_factory=lambda: list(DEFAULT_ACTIVITY_COLLECTIONS))
    profile: List[str] = field(default_factory=lambda: list(DEFAULT_PROFILE_COLLECTIONS))
    test: List[str] = field(default_factory=lambda: list(DEFAULT_TEST_COLLECTIONS))


@dataclass
class CacheSyncConfig:
    """Change-event pipeline configuration.

    Configuration structure:
        cache_sync:
          test_mode: false
          test_key_prefix: TEST_
          max_delivery_attempts: 5
          server: {host, port, metrics_port}
          logging: {log_dir, log_to_stdout, json}
          api: {...}            # ApiConfig
          redis: {...}          # RedisConfig
          audit: {...}          # AuditConfig
          collections: {...}    # CollectionsConfig
    """

    api: ApiConfig = field(default_factory=ApiConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    collections: CollectionsConfig = field(default_factory=CollectionsConfig)

    test_mode: bool = False
    test_key_prefix: str = "TEST_"
    # Broker redelivery limit before dead-lettering; informational here
    max_delivery_attempts: int = 5

    server_host: str = "0.0.0.0"
    server_port: int = 8080
    metrics_port: Optional[int] = None

    log_dir: str = "logs"
    log_to_stdout: bool = False
    json_logs: bool = True

    def validate(self) -> None:
        """Validate configuration for correctness and constraints."""
        if not self.api.base_url:
            raise ValueError("api.base_url is required (or set ENRICHMENT_API_URL)")
        if not self.api.base_url.startswith(("http://", "https://")):
            raise ValueError(
                f"api.base_url must start with http:// or https://, got: {self.api.base_url!r}"
            )
        if not self.redis.host:
            raise ValueError("redis.host is required (or set REDIS_HOST)")

        self._validate_min("api.timeout_seconds", self.api.timeout_seconds, 0, inclusive=False)
        self._validate_min(
            "redis.connect_timeout_seconds",
            self.redis.connect_timeout_seconds,
            0,
            inclusive=False,
        )
        self._validate_min("redis.port", self.redis.port, 1, inclusive=True)
        self._validate_min("max_delivery_attempts", self.max_delivery_attempts, 1, inclusive=True)

        overlap = set(self.collections.activity) & set(self.collections.profile)
        if overlap:
            raise ValueError(
                f"collections listed as both activity and profile: {sorted(overlap)}"
            )

    @staticmethod
    def _validate_min(key: str, value: float, min_value: float, inclusive: bool) -> None:
        if inclusive and value < min_value:
            raise ValueError(f"{key} must be >= {min_value}, got {value}")
        if not inclusive and value <= min_value:
            raise ValueError(f"{key} must be > {min_value}, got {value}")


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _build_api_config(section: Dict[str, Any]) -> ApiConfig:
    defaults = ApiConfig()
    return ApiConfig(
        base_url=(os.getenv("ENRICHMENT_API_URL") or section.get("base_url", "")).rstrip("/"),
        timeout_seconds=float(section.get("timeout_seconds", defaults.timeout_seconds)),
        time_zone=section.get("time_zone", defaults.time_zone),
        summary_mode=section.get("summary_mode", defaults.summary_mode),
        token_path=section.get("token_path", defaults.token_path),
        summary_path=section.get("summary_path", defaults.summary_path),
        current_logs_path=section.get("current_logs_path", defaults.current_logs_path),
        profile_path=section.get("profile_path", defaults.profile_path),
    )


def _build_redis_config(section: Dict[str, Any]) -> RedisConfig:
    defaults = RedisConfig()
    socket_timeout = section.get("socket_timeout_seconds")
    return RedisConfig(
        host=os.getenv("REDIS_HOST") or section.get("host", ""),
        port=int(os.getenv("REDIS_PORT") or section.get("port", defaults.port)),
        cluster_mode=_as_bool(os.getenv("REDIS_CLUSTER_MODE") or section.get("cluster_mode", False)),
        connect_timeout_seconds=float(
            section.get("connect_timeout_seconds", defaults.connect_timeout_seconds)
        ),
        socket_timeout_seconds=float(socket_timeout) if socket_timeout is not None else None,
    )


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
    validate: bool = True,
) -> CacheSyncConfig:
    """Load cache-sync configuration from config.yaml file.

    Environment variables ARE supported using ${VAR_NAME} syntax in YAML files.
    REDIS_HOST, REDIS_PORT, REDIS_CLUSTER_MODE, ENRICHMENT_API_URL and
    CACHE_SYNC_TEST_MODE take precedence over the file.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from file: {config_path}")
    yaml_data = _expand_env_vars(load_yaml(config_path))

    if "cache_sync" not in yaml_data:
        raise ValueError("Invalid config file: missing 'cache_sync:' section")

    section = yaml_data["cache_sync"] or {}
    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        section = _deep_merge(section, overrides)

    server = section.get("server", {})
    log_settings = section.get("logging", {})
    audit = section.get("audit", {})
    collections = section.get("collections", {})

    test_mode_env = os.getenv("CACHE_SYNC_TEST_MODE")
    metrics_port = server.get("metrics_port")

    config = CacheSyncConfig(
        api=_build_api_config(section.get("api", {})),
        redis=_build_redis_config(section.get("redis", {})),
        audit=AuditConfig(
            storage_path=audit.get("storage_path", AuditConfig.storage_path),
            collection=audit.get("collection", AuditConfig.collection),
        ),
        collections=CollectionsConfig(
            activity=list(collections.get("activity", DEFAULT_ACTIVITY_COLLECTIONS)),
            profile=list(collections.get("profile", DEFAULT_PROFILE_COLLECTIONS)),
            test=list(collections.get("test", DEFAULT_TEST_COLLECTIONS)),
        ),
        test_mode=_as_bool(test_mode_env if test_mode_env is not None else section.get("test_mode", False)),
        test_key_prefix=section.get("test_key_prefix", "TEST_"),
        max_delivery_attempts=int(section.get("max_delivery_attempts", 5)),
        server_host=server.get("host", "0.0.0.0"),
        server_port=int(server.get("port", 8080)),
        metrics_port=int(metrics_port) if metrics_port not in (None, "") else None,
        log_dir=log_settings.get("log_dir", "logs"),
        log_to_stdout=_as_bool(log_settings.get("log_to_stdout", False)),
        json_logs=_as_bool(log_settings.get("json", True)),
    )

    logger.debug(
        "Configuration loaded",
        extra={
            "redis_host": config.redis.host,
            "redis_port": config.redis.port,
            "cluster_mode": config.redis.cluster_mode,
        },
    )

    if validate:
        config.validate()

    return config


_config: Optional[CacheSyncConfig] = None


def get_config() -> CacheSyncConfig:
    """Get or load the singleton config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: CacheSyncConfig) -> None:
    """Set the singleton config instance (useful for testing)."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the singleton config instance (forces reload on next get_config() call)."""
    global _config
    _config = None
