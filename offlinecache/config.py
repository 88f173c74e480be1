"""Configuration loader with type-safe dataclasses."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import yaml


class ConfigError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


# Pages proactively stored in the precache partition at install time.
DEFAULT_ROUTES_TO_CACHE = (
    "/",
    "/dashboard",
    "/dashboard/parceiros",
    "/dashboard/produtos",
    "/dashboard/leads",
    "/dashboard/pedidos",
    "/dashboard/financeiro",
    "/dashboard/calendario",
    "/dashboard/chat",
    "/dashboard/analise",
    "/dashboard/equipe",
    "/dashboard/usuarios",
    "/dashboard/configuracoes",
    "/offline",
)

DEFAULT_CACHE_VERSION = "v2"
DEFAULT_NAMESPACE = "offline-app-"

SYNC_TAG = "sync-pedidos"
SYNC_MESSAGE_TYPE = "SYNC_PEDIDOS"
SYNC_MESSAGE = "Iniciando sincronização de pedidos"

# In-memory storage sentinel, same convention as sqlite3.
MEMORY_STORAGE_PATH = ":memory:"


@dataclass(frozen=True)
class CacheConfig:
    """Partition names and the precache route list."""

    version: str = DEFAULT_CACHE_VERSION
    namespace: str = DEFAULT_NAMESPACE
    routes: tuple[str, ...] = DEFAULT_ROUTES_TO_CACHE
    offline_route: str = "/offline"
    pages_partition: str = "pages-cache"
    static_partition: str = "static-cache"
    api_partition: str = "api-cache"

    def __post_init__(self) -> None:
        if not self.version:
            raise ConfigError("Cache version cannot be empty")
        if not self.namespace:
            raise ConfigError("Cache namespace cannot be empty")
        for route in self.routes:
            if not route.startswith("/"):
                raise ConfigError(f"Precache route must start with '/', got '{route}'")
        if not self.offline_route.startswith("/"):
            raise ConfigError(f"Offline route must start with '/', got '{self.offline_route}'")
        runtime = (self.pages_partition, self.static_partition, self.api_partition)
        if len(set(runtime)) != len(runtime):
            raise ConfigError(f"Partition names must be distinct: {runtime}")
        # Runtime partitions are unversioned; inside the namespace they would be evicted
        for name in runtime:
            if not name:
                raise ConfigError("Partition names cannot be empty")
            if name.startswith(self.namespace):
                raise ConfigError(f"Partition '{name}' must not use the precache namespace '{self.namespace}'")

    @property
    def precache_partition(self) -> str:
        """Versioned name of the precache partition."""
        return f"{self.namespace}{self.version}"


@dataclass(frozen=True)
class ClassifierRules:
    """Path prefixes and fetch destinations used to classify requests."""

    asset_prefixes: tuple[str, ...] = ("/_next/",)
    api_prefixes: tuple[str, ...] = ("/api/",)
    static_destinations: tuple[str, ...] = ("style", "script", "image")
    excluded_schemes: tuple[str, ...] = ("chrome-extension",)

    def __post_init__(self) -> None:
        for prefix in self.asset_prefixes + self.api_prefixes:
            if not prefix.startswith("/"):
                raise ConfigError(f"Path prefix must start with '/', got '{prefix}'")


@dataclass(frozen=True)
class UpstreamConfig:
    """Configuration for the origin the proxy fronts."""

    origin: str = "http://localhost:3000"
    timeout: int = 10  # seconds per network fetch
    connectivity_cache_seconds: int = 5

    def __post_init__(self) -> None:
        if not self.origin.startswith(("http://", "https://")):
            raise ConfigError(f"Upstream origin must start with http:// or https://, got '{self.origin}'")
        if not urlparse(self.origin).hostname:
            raise ConfigError(f"Upstream origin has no host: '{self.origin}'")
        if self.timeout < 1:
            raise ConfigError(f"Upstream timeout must be at least 1 second, got {self.timeout}")
        if self.connectivity_cache_seconds < 0:
            raise ConfigError(
                f"Connectivity cache seconds must be non-negative, got {self.connectivity_cache_seconds}"
            )


def _get_default_storage_path() -> str:
    """Get the default storage path using XDG-compliant directory."""
    home = Path.home()
    return str(home / ".local" / "share" / "offlinecache" / "partitions.db")


DEFAULT_STORAGE_PATH = _get_default_storage_path()


@dataclass(frozen=True)
class StorageConfig:
    """Configuration for the partition store."""

    path: str = DEFAULT_STORAGE_PATH

    def __post_init__(self) -> None:
        if not self.path:
            raise ConfigError("Storage path cannot be empty")

    @property
    def in_memory(self) -> bool:
        return self.path == MEMORY_STORAGE_PATH


@dataclass(frozen=True)
class ProxyConfig:
    """Configuration for the local reverse proxy."""

    port: int = 8080

    def __post_init__(self) -> None:
        if self.port < 1 or self.port > 65535:
            raise ConfigError(f"Proxy port must be between 1 and 65535, got {self.port}")


@dataclass(frozen=True)
class SyncConfig:
    """Background sync tag and the notification posted to clients."""

    tag: str = SYNC_TAG
    message_type: str = SYNC_MESSAGE_TYPE
    message: str = SYNC_MESSAGE

    def __post_init__(self) -> None:
        if not self.tag:
            raise ConfigError("Sync tag cannot be empty")
        if not self.message_type:
            raise ConfigError("Sync message type cannot be empty")


@dataclass(frozen=True)
class Config:
    """Main configuration container."""

    cache: CacheConfig = field(default_factory=CacheConfig)
    classifier: ClassifierRules = field(default_factory=ClassifierRules)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)


def _as_str_tuple(value: object, name: str) -> tuple[str, ...]:
    """Normalize a YAML list of strings into a tuple."""
    if not isinstance(value, list):
        raise ConfigError(f"'{name}' must be a list")
    return tuple(str(item) for item in value)


def _section(data: dict, name: str) -> dict | None:
    value = data.get(name)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' section must be a dictionary")
    return value


def _parse_cache_config(data: dict | None) -> CacheConfig:
    """Parse cache configuration section."""
    if data is None:
        return CacheConfig()

    routes = data.get("routes")
    return CacheConfig(
        version=str(data.get("version", DEFAULT_CACHE_VERSION)),
        namespace=str(data.get("namespace", DEFAULT_NAMESPACE)),
        routes=_as_str_tuple(routes, "cache.routes") if routes is not None else DEFAULT_ROUTES_TO_CACHE,
        offline_route=str(data.get("offline_route", "/offline")),
        pages_partition=str(data.get("pages_partition", "pages-cache")),
        static_partition=str(data.get("static_partition", "static-cache")),
        api_partition=str(data.get("api_partition", "api-cache")),
    )


def _parse_classifier_rules(data: dict | None) -> ClassifierRules:
    """Parse classifier configuration section."""
    if data is None:
        return ClassifierRules()

    defaults = ClassifierRules()
    kwargs = {}
    for key in ("asset_prefixes", "api_prefixes", "static_destinations", "excluded_schemes"):
        if data.get(key) is not None:
            kwargs[key] = _as_str_tuple(data[key], f"classifier.{key}")
        else:
            kwargs[key] = getattr(defaults, key)
    return ClassifierRules(**kwargs)


def _parse_upstream_config(data: dict | None) -> UpstreamConfig:
    """Parse upstream configuration section."""
    if data is None:
        return UpstreamConfig()

    return UpstreamConfig(
        origin=str(data.get("origin", "http://localhost:3000")).rstrip("/"),
        timeout=int(data.get("timeout", 10)),
        connectivity_cache_seconds=int(data.get("connectivity_cache_seconds", 5)),
    )


def _parse_storage_config(data: dict | None) -> StorageConfig:
    """Parse storage configuration section."""
    if data is None:
        return StorageConfig()

    return StorageConfig(path=str(data.get("path", DEFAULT_STORAGE_PATH)))


def _parse_proxy_config(data: dict | None) -> ProxyConfig:
    """Parse proxy configuration section."""
    if data is None:
        return ProxyConfig()

    return ProxyConfig(port=int(data.get("port", 8080)))


def _parse_sync_config(data: dict | None) -> SyncConfig:
    """Parse sync configuration section."""
    if data is None:
        return SyncConfig()

    return SyncConfig(
        tag=str(data.get("tag", SYNC_TAG)),
        message_type=str(data.get("message_type", SYNC_MESSAGE_TYPE)),
        message=str(data.get("message", SYNC_MESSAGE)),
    )


def _apply_env_overrides(config_data: dict) -> dict:
    """Apply environment variable overrides to configuration.

    Supported overrides:
    - OFFLINECACHE_CACHE_VERSION: Override cache.version
    - OFFLINECACHE_UPSTREAM_ORIGIN: Override upstream.origin
    - OFFLINECACHE_PROXY_PORT: Override proxy.port
    - OFFLINECACHE_STORAGE_PATH: Override storage.path
    """
    for section in ("cache", "upstream", "proxy", "storage"):
        if config_data.get(section) is None:
            config_data[section] = {}

    cache_version = os.environ.get("OFFLINECACHE_CACHE_VERSION")
    if cache_version is not None:
        config_data["cache"]["version"] = cache_version

    origin = os.environ.get("OFFLINECACHE_UPSTREAM_ORIGIN")
    if origin is not None:
        config_data["upstream"]["origin"] = origin

    proxy_port = os.environ.get("OFFLINECACHE_PROXY_PORT")
    if proxy_port is not None:
        try:
            config_data["proxy"]["port"] = int(proxy_port)
        except ValueError:
            raise ConfigError(f"OFFLINECACHE_PROXY_PORT must be an integer, got '{proxy_port}'")

    storage_path = os.environ.get("OFFLINECACHE_STORAGE_PATH")
    if storage_path is not None:
        config_data["storage"]["path"] = storage_path

    return config_data


def load_config(config_path: str) -> Config:
    """Load and validate configuration from a YAML file.

    A missing file is accepted only when OFFLINECACHE_UPSTREAM_ORIGIN is set,
    in which case defaults plus environment overrides are used.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If the file cannot be read or configuration is invalid.
    """
    path = Path(config_path)

    if not path.exists():
        if os.environ.get("OFFLINECACHE_UPSTREAM_ORIGIN") is None:
            raise ConfigError(f"Configuration file not found: {config_path}")
        data: object = {}
    else:
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML configuration: {e}")
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file: {e}")

        if data is None:
            raise ConfigError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a YAML dictionary")

    # Validate section types before overrides mutate them
    for name in ("cache", "classifier", "upstream", "storage", "proxy", "sync"):
        _section(data, name)

    data = _apply_env_overrides(data)

    try:
        return Config(
            cache=_parse_cache_config(_section(data, "cache")),
            classifier=_parse_classifier_rules(_section(data, "classifier")),
            upstream=_parse_upstream_config(_section(data, "upstream")),
            storage=_parse_storage_config(_section(data, "storage")),
            proxy=_parse_proxy_config(_section(data, "proxy")),
            sync=_parse_sync_config(_section(data, "sync")),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}")
