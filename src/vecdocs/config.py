"""
Configuration loader for the vector document store.

Loads an optional YAML file, then applies environment variable overrides.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

try:
    import yaml
except ImportError:
    yaml = None

from .core.exceptions import VectorStoreConfigError
from .store.scoping import MembershipTables
from .utils.retry import RetryConfig


logger = logging.getLogger(__name__)


SUPPORTED_BACKENDS = ("sqlserver", "sqlite")

DEFAULT_CONFIG: Dict[str, Any] = {
    "backend": "sqlserver",
    # text-embedding-3-small
    "dimensions": 1536,
    "sqlserver": {
        "connection_string": None,
        "host": "localhost",
        "port": 1433,
        "database": "Recipes",
        "username": "sa",
        "password": None,
        "driver": "ODBC Driver 18 for SQL Server",
        "schema": "vector",
        "trust_server_certificate": True,
        "query_timeout_seconds": 30,
    },
    "sqlite": {
        "path": "local/vector/vector_documents.db",
        "timeout_seconds": 30.0,
    },
    "scoping": {},
    "search": {
        "default_limit": 10,
        "default_threshold": 0.3,
    },
    "retry": {
        "max_attempts": 3,
        "initial_delay_ms": 250.0,
        "max_delay_ms": 1000.0,
    },
}

# env var -> dotted config key, with a converter
ENV_OVERRIDES = (
    ("VECTOR_DB_BACKEND", "backend", str.lower),
    ("VECTOR_EMBEDDING_DIMENSIONS", "dimensions", int),
    ("VECTOR_SQLSERVER_CONN_STR", "sqlserver.connection_string", str),
    ("VECTOR_SQLSERVER_HOST", "sqlserver.host", str),
    ("VECTOR_SQLSERVER_PORT", "sqlserver.port", int),
    ("VECTOR_SQLSERVER_DATABASE", "sqlserver.database", str),
    ("VECTOR_SQLSERVER_USER", "sqlserver.username", str),
    ("VECTOR_SQLSERVER_PASSWORD", "sqlserver.password", str),
    ("VECTOR_SQLSERVER_DRIVER", "sqlserver.driver", str),
    ("VECTOR_SQLSERVER_SCHEMA", "sqlserver.schema", str),
    ("VECTOR_SQLITE_PATH", "sqlite.path", str),
)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class VectorStoreConfig:
    """
    Configuration for the vector document store.

    Example:
        >>> config = VectorStoreConfig(Path("config/vector_store.yaml"))
        >>> config.backend
        'sqlserver'
        >>> config.get("sqlserver.schema")
        'vector'
    """

    def __init__(
        self,
        config_path: Optional[Union[str, Path]] = None,
        overrides: Optional[Dict[str, Any]] = None,
        environ: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize configuration.

        Args:
            config_path: Path to YAML config file (optional)
            overrides: Values merged over the file, before env overrides
            environ: Environment mapping (defaults to os.environ)
        """
        self.config_path = Path(config_path) if config_path else None
        self._environ = os.environ if environ is None else environ

        loaded = self._load_config() if self.config_path else {}
        self.config = _deep_merge(DEFAULT_CONFIG, loaded)
        if overrides:
            self.config = _deep_merge(self.config, overrides)
        self._apply_env_overrides()
        self._validate()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if yaml is None:
            raise ImportError(
                "pyyaml is required for config loading. "
                "Install with: pip install pyyaml"
            )

        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        logger.info(f"Loading config from: {self.config_path}")

        with open(self.config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)

        if config is not None and not isinstance(config, dict):
            raise VectorStoreConfigError(
                f"Config file must contain a mapping: {self.config_path}"
            )
        return config or {}

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        for env_name, key, convert in ENV_OVERRIDES:
            raw = self._environ.get(env_name)
            if raw is None or raw == "":
                continue
            try:
                value = convert(raw)
            except ValueError as e:
                raise VectorStoreConfigError(f"Invalid {env_name}={raw!r}: {e}") from e
            self._set(key, value)

        # Shared SA password used by local Docker setups
        if not self.get("sqlserver.password"):
            sa_password = self._environ.get("MSSQL_SA_PASSWORD")
            if sa_password:
                self._set("sqlserver.password", sa_password)

    def _validate(self) -> None:
        if self.backend not in SUPPORTED_BACKENDS:
            raise VectorStoreConfigError(
                f"Unknown backend: {self.backend}. "
                f"Supported backends: {', '.join(SUPPORTED_BACKENDS)}"
            )
        dimensions = self.config.get("dimensions")
        if not isinstance(dimensions, int) or isinstance(dimensions, bool) or dimensions <= 0:
            raise VectorStoreConfigError(f"dimensions must be a positive integer, got {dimensions!r}")

    def _set(self, key: str, value: Any) -> None:
        keys = key.split(".")
        target = self.config
        for k in keys[:-1]:
            target = target.setdefault(k, {})
        target[keys[-1]] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key."""
        value = self.config
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
        return value if value is not None else default

    @property
    def backend(self) -> str:
        return str(self.config.get("backend", "sqlserver")).lower()

    @property
    def dimensions(self) -> int:
        return self.config["dimensions"]

    def get_sqlserver_config(self) -> Dict[str, Any]:
        """Get SQL Server connection settings."""
        return dict(self.config.get("sqlserver", {}))

    def get_sqlite_config(self) -> Dict[str, Any]:
        """Get SQLite settings."""
        return dict(self.config.get("sqlite", {}))

    def get_membership_tables(self) -> MembershipTables:
        """Get the scoping relation names."""
        return MembershipTables.from_dict(self.config.get("scoping") or {})

    def get_retry_config(self) -> RetryConfig:
        """Get retry settings for writers."""
        retry = self.config.get("retry") or {}
        return RetryConfig(
            max_attempts=int(retry.get("max_attempts", 3)),
            initial_delay_ms=float(retry.get("initial_delay_ms", 250.0)),
            max_delay_ms=float(retry.get("max_delay_ms", 1000.0)),
        )

    @property
    def default_limit(self) -> int:
        return int(self.get("search.default_limit", 10))

    @property
    def default_threshold(self) -> float:
        return float(self.get("search.default_threshold", 0.3))
