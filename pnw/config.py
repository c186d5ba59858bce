"""YAML configuration file loading."""

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".pnw"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"
DEFAULT_DB_PATH = str(DEFAULT_CONFIG_DIR / "pnw.db")


@dataclass
class PnwConfig:
    """Top-level configuration for the pnw tool.

    Every field has a default so the tool can talk to a locally running
    proxy without any config file.

    Attributes:
        db_path: Path to the SQLite database holding history snapshots.
        proxy_url: URL of the pRPC proxy accepting ``get-pods-with-stats``.
        credits_devnet_url: Credits API endpoint for devnet pods.
        credits_mainnet_url: Credits API endpoint for mainnet pods.
        maxmind_city_db: Path to GeoLite2-City.mmdb, or None if not configured.
        rpc_timeout: Timeout in seconds for a single proxy request.
        credits_timeout: Timeout in seconds for a single credits request.
        max_attempts: Maximum number of proxy requests per fetch.
        backoff_base: Delay in seconds before the first retry.
        backoff_cap: Upper bound in seconds on any retry delay.
        poll_interval: Seconds between poll cycles in watch mode.
        summary_ttl: Seconds a generated network summary stays cached.
        snapshot_retention_days: Snapshots older than this are pruned.
        llm_api_url: OpenAI-compatible chat completions endpoint.
        llm_api_key: Bearer token for the chat endpoint; None disables it.
        llm_model: Model name sent to the chat endpoint.
    """

    db_path: str = DEFAULT_DB_PATH
    proxy_url: str = "http://localhost:3000/api/prpc"
    credits_devnet_url: str = "https://podcredits.xandeum.network/api/pods-credits"
    credits_mainnet_url: str = (
        "https://podcredits.xandeum.network/api/mainnet-pod-credits"
    )
    maxmind_city_db: str | None = None
    rpc_timeout: float = 30.0
    credits_timeout: float = 10.0
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_cap: float = 8.0
    poll_interval: int = 60
    summary_ttl: int = 3600
    snapshot_retention_days: int = 30
    llm_api_url: str = "https://api.longcat.chat/openai/v1/chat/completions"
    llm_api_key: str | None = None
    llm_model: str = "LongCat-Flash-Chat"


# Keys in the YAML file that map to PnwConfig fields.
_YAML_KEY_TO_FIELD: dict[str, str] = {
    "db_path": "db_path",
    "proxy_url": "proxy_url",
    "credits_devnet_url": "credits_devnet_url",
    "credits_mainnet_url": "credits_mainnet_url",
    "maxmind_city_db": "maxmind_city_db",
    "rpc_timeout": "rpc_timeout",
    "credits_timeout": "credits_timeout",
    "max_attempts": "max_attempts",
    "backoff_base": "backoff_base",
    "backoff_cap": "backoff_cap",
    "poll_interval": "poll_interval",
    "summary_ttl": "summary_ttl",
    "snapshot_retention_days": "snapshot_retention_days",
    "llm_api_url": "llm_api_url",
    "llm_api_key": "llm_api_key",
    "llm_model": "llm_model",
}

# Numeric fields and the type their YAML values are coerced to.
_NUMERIC_FIELDS: dict[str, type] = {
    "rpc_timeout": float,
    "credits_timeout": float,
    "max_attempts": int,
    "backoff_base": float,
    "backoff_cap": float,
    "poll_interval": int,
    "summary_ttl": int,
    "snapshot_retention_days": int,
}


def load_config(path: Path | str | None = None) -> PnwConfig:
    """Load configuration from a YAML file.

    Args:
        path: Explicit path to a YAML config file.  If ``None``, the
            default location (``~/.pnw/config.yaml``) is tried.  If the
            default file doesn't exist, a ``PnwConfig`` with all defaults
            is returned silently.

    Returns:
        A populated ``PnwConfig`` instance.

    Raises:
        FileNotFoundError: If an explicit *path* was given but doesn't exist.
        ConfigError: If the file contains invalid YAML, has an unexpected
            top-level structure, or holds an unusable value.
    """
    resolved = _resolve_path(path)

    if resolved is None:
        logger.debug("No config file found; using defaults")
        return PnwConfig()

    logger.debug("Loading config from %s", resolved)
    text = resolved.read_text(encoding="utf-8")

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {resolved}: {exc}") from exc

    if raw is None:
        # Empty file, treat as all-defaults.
        return PnwConfig()

    if not isinstance(raw, dict):
        raise ConfigError(
            f"Expected a YAML mapping at the top level in {resolved}, "
            f"got {type(raw).__name__}"
        )

    return _build_config(raw, source=resolved)


class ConfigError(Exception):
    """Raised when a configuration file is malformed or unreadable."""


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _resolve_path(path: Path | str | None) -> Path | None:
    """Return a concrete ``Path`` to read, or ``None`` if nothing to read.

    Raises:
        FileNotFoundError: If the caller supplied an explicit path that
            doesn't exist on disk.
    """
    if path is not None:
        p = Path(path).expanduser()
        if not p.is_file():
            raise FileNotFoundError(f"Config file not found: {p}")
        return p

    # Try the default location.
    default = DEFAULT_CONFIG_PATH.expanduser()
    if default.is_file():
        return default
    return None


def _build_config(raw: dict, source: Path) -> PnwConfig:
    """Map raw YAML dict to a ``PnwConfig``, ignoring unknown keys."""
    kwargs: dict[str, object] = {}

    for yaml_key, field_name in _YAML_KEY_TO_FIELD.items():
        if yaml_key in raw:
            kwargs[field_name] = _coerce(field_name, raw[yaml_key], source)

    unknown = set(raw) - set(_YAML_KEY_TO_FIELD)
    if unknown:
        logger.warning(
            "Ignoring unknown config keys in %s: %s",
            source,
            ", ".join(sorted(unknown)),
        )

    cfg = PnwConfig(**kwargs)
    if cfg.max_attempts < 1:
        raise ConfigError(
            f"max_attempts must be at least 1 in {source}, got {cfg.max_attempts}"
        )
    return cfg


def _coerce(field_name: str, value: object, source: Path) -> object:
    """Convert numeric fields to their declared type; pass others through."""
    kind = _NUMERIC_FIELDS.get(field_name)
    if kind is None:
        return value
    if isinstance(value, bool):
        raise ConfigError(f"{field_name} must be a number in {source}, got {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(
            f"{field_name} must be a number in {source}, got {value!r}"
        ) from exc
