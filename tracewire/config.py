"""Configuration models and loading.

Sources, lowest to highest priority:

1. TOML file (``tracewire.toml`` in the working directory, then
   ``~/.tracewire.toml``) with ``[tracing]``, ``[sampler]`` and
   ``[reporter]`` tables
2. ``TRACEWIRE_*`` environment variables
3. Explicit overrides passed in code
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Callable, Dict, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tracewire.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "tracewire.toml"
ENV_PREFIX = "TRACEWIRE_"


class SamplerConfig(BaseModel):
    """Head sampling policy applied to new traces."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["const", "probabilistic"] = "const"
    param: float = Field(default=1.0, ge=0.0, le=1.0)


class ReporterConfig(BaseModel):
    """Where finished spans go and how they are buffered."""

    model_config = ConfigDict(extra="forbid")

    log_spans: bool = True
    enable_console: bool = False
    otlp_endpoint: Optional[str] = None
    otlp_headers: Dict[str, str] = Field(default_factory=dict)
    max_queue_size: int = Field(default=5000, gt=0)
    max_export_batch_size: int = Field(default=512, gt=0)
    schedule_delay_millis: int = Field(default=5000, gt=0)
    flush_timeout_seconds: float = Field(default=5.0, gt=0)
    drop_policy: Literal["oldest", "newest"] = "oldest"


class TracingConfig(BaseModel):
    """Complete tracer configuration."""

    model_config = ConfigDict(extra="forbid")

    service_name: str = "tracewire"
    sampler: SamplerConfig = Field(default_factory=SamplerConfig)
    reporter: ReporterConfig = Field(default_factory=ReporterConfig)
    max_tag_value_length: int = Field(default=65535, gt=0)
    capture_request_body: bool = False
    max_body_tag_length: int = Field(default=4096, gt=0)
    reinit_policy: Literal["reject", "reuse"] = "reject"

    @field_validator("service_name")
    @classmethod
    def _service_name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("service_name must not be blank")
        return value.strip()


def _to_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _to_headers(value: str) -> Dict[str, str]:
    headers = {}
    for item in value.split(","):
        if "=" not in item:
            continue
        key, val = item.split("=", 1)
        if key.strip():
            headers[key.strip()] = val.strip()
    return headers


# flat key -> (section, field, env caster); section None means top level
_FIELDS: Dict[str, Tuple[Optional[str], str, Callable[[str], Any]]] = {
    "service_name": (None, "service_name", str),
    "max_tag_value_length": (None, "max_tag_value_length", int),
    "capture_request_body": (None, "capture_request_body", _to_bool),
    "max_body_tag_length": (None, "max_body_tag_length", int),
    "reinit_policy": (None, "reinit_policy", str),
    "sampler_type": ("sampler", "type", str),
    "sampler_param": ("sampler", "param", float),
    "log_spans": ("reporter", "log_spans", _to_bool),
    "enable_console": ("reporter", "enable_console", _to_bool),
    "otlp_endpoint": ("reporter", "otlp_endpoint", str),
    "otlp_headers": ("reporter", "otlp_headers", _to_headers),
    "max_queue_size": ("reporter", "max_queue_size", int),
    "max_export_batch_size": ("reporter", "max_export_batch_size", int),
    "schedule_delay_millis": ("reporter", "schedule_delay_millis", int),
    "flush_timeout_seconds": ("reporter", "flush_timeout_seconds", float),
    "drop_policy": ("reporter", "drop_policy", str),
}


def flatten_config(nested: Mapping[str, Any]) -> Dict[str, Any]:
    """Turn ``{"tracing": {...}, "sampler": {...}, "reporter": {...}}`` into flat keys."""
    flat: Dict[str, Any] = {}
    for flat_key, (section, field, _) in _FIELDS.items():
        table = nested.get("tracing" if section is None else section, {})
        if isinstance(table, Mapping) and field in table:
            flat[flat_key] = table[field]
    return flat


def nest_config(flat: Mapping[str, Any]) -> Dict[str, Any]:
    """Inverse of flatten_config, producing TracingConfig keyword data."""
    nested: Dict[str, Any] = {}
    for key, value in flat.items():
        if key not in _FIELDS:
            raise ConfigError("Unknown configuration key", {"key": key})
        section, field, _ = _FIELDS[key]
        if section is None:
            nested[field] = value
        else:
            nested.setdefault(section, {})[field] = value
    return nested


def find_config_file() -> Optional[str]:
    """Return the first existing config file path, or None."""
    candidates = [Path.cwd() / CONFIG_FILE_NAME, Path.home() / f".{CONFIG_FILE_NAME}"]
    for candidate in candidates:
        if candidate.is_file():
            return str(candidate)
    return None


def load_toml_config(path: str) -> Dict[str, Any]:
    """
    Load a TOML config file as a nested dict.

    A missing file yields ``{}``; unparsable TOML raises ConfigError.
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        return {}
    except tomllib.TOMLDecodeError as e:
        raise ConfigError("Invalid TOML config file", {"path": path, "error": e}) from e


def load_config_from_env(flat: bool = False) -> Dict[str, Any]:
    """
    Read ``TRACEWIRE_*`` variables, converted to their field types.

    Returns flat keys when ``flat`` is set, otherwise the nested file layout.
    """
    values: Dict[str, Any] = {}
    for flat_key, (_, _, caster) in _FIELDS.items():
        raw = os.getenv(ENV_PREFIX + flat_key.upper())
        if raw is None or raw == "":
            continue
        try:
            values[flat_key] = caster(raw)
        except ValueError as e:
            raise ConfigError(
                "Invalid environment value",
                {"variable": ENV_PREFIX + flat_key.upper(), "value": raw},
            ) from e

    if flat:
        return values

    nested: Dict[str, Any] = {}
    for key, value in values.items():
        section, field, _ = _FIELDS[key]
        nested.setdefault(section or "tracing", {})[field] = value
    return nested


def load_config_with_priority(
    config_file: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Merge file, environment and explicit overrides into flat keys.

    ``None`` override values are ignored so callers can forward optional
    keyword arguments unchanged.
    """
    path = config_file or find_config_file()
    merged: Dict[str, Any] = {}
    if path:
        logger.debug("Loading tracing config from %s", path)
        merged.update(flatten_config(load_toml_config(path)))
    merged.update(load_config_from_env(flat=True))
    if overrides:
        merged.update({k: v for k, v in overrides.items() if v is not None})
    return merged


def validate_config(data: Mapping[str, Any]) -> TracingConfig:
    """
    Build a TracingConfig from flat keys.

    Raises:
        ConfigError: on unknown keys or invalid values
    """
    try:
        return TracingConfig(**nest_config(data))
    except ValidationError as e:
        raise ConfigError("Invalid tracing configuration", {"errors": e.error_count()}) from e


def load_config(config_file: Optional[str] = None, **overrides: Any) -> TracingConfig:
    """Load, merge and validate configuration from every source."""
    return validate_config(load_config_with_priority(config_file=config_file, overrides=overrides))
