"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from case_tracker.core.exceptions import ConfigError

DEFAULT_PRICE_ENDPOINT = "https://steamcommunity.com/market/priceoverview/"


class MarketConfig(BaseModel):
    """Market price endpoint access configuration."""

    model_config = ConfigDict(frozen=True)

    price_endpoint: str = DEFAULT_PRICE_ENDPOINT
    appid: int = 730
    currency: int = 1
    user_agent: str = "case-tracker/0.1"
    request_timeout: float = 15.0
    base_delay_ms: int = 1000
    max_retries: int = 5
    rate_limit: float = 1.0
    max_concurrent_fetches: int = 1

    @field_validator("price_endpoint")
    @classmethod
    def endpoint_is_http(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("price_endpoint must be an http(s) URL")
        return v

    @field_validator("base_delay_ms")
    @classmethod
    def base_delay_positive(cls, v: int) -> int:
        if v < 0:
            raise ValueError("base_delay_ms must be >= 0")
        return v

    @field_validator("max_retries")
    @classmethod
    def max_retries_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_retries must be >= 1")
        return v

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("rate_limit must be > 0")
        return v

    @field_validator("max_concurrent_fetches")
    @classmethod
    def single_fetch_in_flight(cls, v: int) -> int:
        """The market rate limit is per client; parallel requests multiply it."""
        if v != 1:
            raise ValueError("max_concurrent_fetches must be 1 (upstream rate limit)")
        return v


class SweepConfig(BaseModel):
    """Fetch cycle pacing and cooldown configuration."""

    model_config = ConfigDict(frozen=True)

    catalog_path: str = "./cases.json"
    pacing_seconds: float = 1.5
    pacing_jitter_seconds: float = 1.5
    batch_size: int = 20
    batch_cooldown_seconds: float = 30.0
    max_requests_per_cooldown: int = 100
    long_cooldown_seconds: float = 300.0
    sweep_interval_seconds: float = 0.0
    run_in_api: bool = False

    @field_validator(
        "pacing_seconds",
        "pacing_jitter_seconds",
        "batch_cooldown_seconds",
        "long_cooldown_seconds",
        "sweep_interval_seconds",
    )
    @classmethod
    def delay_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("delays must be >= 0")
        return v

    @field_validator("batch_size", "max_requests_per_cooldown")
    @classmethod
    def count_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("batch_size and max_requests_per_cooldown must be >= 1")
        return v


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    model_config = ConfigDict(frozen=True)

    sqlite_path: str = "./data/case_tracker.db"


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 3000
    live_queue_size: int = 256

    @field_validator("live_queue_size")
    @classmethod
    def queue_size_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("live_queue_size must be >= 1")
        return v


class TrackerConfig(BaseModel):
    """Root configuration for the entire case-tracker system."""

    model_config = ConfigDict(frozen=True)

    market: MarketConfig = MarketConfig()
    sweep: SweepConfig = SweepConfig()
    storage: StorageConfig = StorageConfig()
    api: APIConfig = APIConfig()

    @model_validator(mode="after")
    def long_cooldown_not_shorter_than_batch(self) -> TrackerConfig:
        if self.sweep.long_cooldown_seconds < self.sweep.batch_cooldown_seconds:
            raise ValueError(
                "sweep.long_cooldown_seconds must be >= sweep.batch_cooldown_seconds"
            )
        return self


CONFIG_ENV_VAR = "CASE_TRACKER_CONFIG"
DEFAULT_CONFIG_FILE = "case-tracker.yml"


def load_config(
    config_path: str | None = None,
    env_prefix: str = "CASE_TRACKER_",
) -> TrackerConfig:
    """Build the tracker configuration.

    Values are layered, later layers winning:

    1. built-in defaults
    2. the YAML file (``config_path``, else ``$CASE_TRACKER_CONFIG``, else
       ``./case-tracker.yml`` when present)
    3. ``CASE_TRACKER_<SECTION>__<KEY>`` environment variables, e.g.
       ``CASE_TRACKER_SWEEP__BATCH_SIZE=10`` sets ``sweep.batch_size``

    Raises:
        ConfigError: For a missing or unparseable file, or invalid values.
    """
    try:
        path = _find_config_file(config_path)
        raw = _read_yaml(path) if path is not None else {}
        return TrackerConfig.model_validate(_apply_env_overrides(raw, env_prefix))
    except ConfigError:
        raise
    except Exception as e:
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _find_config_file(explicit: str | None) -> Path | None:
    if explicit is not None:
        candidate, origin = explicit, "config_path"
    elif os.environ.get(CONFIG_ENV_VAR):
        candidate, origin = os.environ[CONFIG_ENV_VAR], CONFIG_ENV_VAR
    else:
        default = Path(DEFAULT_CONFIG_FILE)
        return default if default.exists() else None

    path = Path(candidate)
    if not path.exists():
        raise ConfigError(
            f"Config file not found ({origin}): {candidate}",
            context={"field": origin, "value": candidate},
        )
    return path


def _read_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config {path}: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"YAML config {path} must be a mapping, not {type(data).__name__}",
            context={"field": "config_file", "value": str(path)},
        )
    return data


def _apply_env_overrides(base: dict, prefix: str) -> dict:
    """Return a copy of ``base`` with matching environment variables laid over it."""
    result = dict(base)
    for name, raw_value in os.environ.items():
        if not name.startswith(prefix):
            continue
        path = name[len(prefix) :].lower().split("__")
        if path == ["config"]:
            continue
        _set_nested(result, path, _auto_cast(raw_value))
    return result


def _set_nested(tree: dict, path: list[str], value: object) -> None:
    node = tree
    for key in path[:-1]:
        child = node.get(key)
        # Copy so YAML-loaded sections are never mutated in place
        node[key] = dict(child) if isinstance(child, dict) else {}
        node = node[key]
    node[path[-1]] = value


def _auto_cast(value: str) -> str | int | float | bool:
    """Interpret an environment string as bool, int or float where it looks like one."""
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value
