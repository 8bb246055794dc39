"""Environment-driven configuration for the upload client."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from .models import (
    DEFAULT_GATEWAY_URL,
    DEFAULT_MAX_BATCH_SIZE,
    DEFAULT_MAX_FILE_SIZE,
    SUPPORTED_TYPES,
    BatchPolicy,
    UploadConfig,
)

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


class ConfigError(ValueError):
    """Raised when an environment value cannot be parsed."""


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def load_env_file(path: Path, override: bool = False) -> None:
    """Load KEY=VALUE lines from a .env file into os.environ."""
    if not path.exists():
        raise ConfigError(f"env file not found: {path}")
    if not path.is_file():
        raise ConfigError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc


def _get_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc


def _get_bool(env: Mapping[str, str], key: str, default: bool = False) -> bool:
    raw = env.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def load_config(env: Optional[Mapping[str, str]] = None, **overrides) -> UploadConfig:
    """
    Build an UploadConfig from IMGOPT_* variables.

    Args:
        env: Mapping to read (default: os.environ)
        **overrides: Fields that win over the environment (None values are ignored)

    Raises:
        ConfigError: a variable could not be parsed or the result is out of range
    """
    env = os.environ if env is None else env

    policy_raw = env.get("IMGOPT_BATCH_POLICY", BatchPolicy.REJECT.value).strip().lower()
    try:
        batch_policy = BatchPolicy(policy_raw)
    except ValueError as exc:
        raise ConfigError(f"IMGOPT_BATCH_POLICY must be 'reject' or 'truncate', got {policy_raw!r}") from exc

    types_raw = env.get("IMGOPT_ACCEPTED_TYPES")
    accepted_types = SUPPORTED_TYPES
    if types_raw:
        accepted_types = tuple(t.strip() for t in types_raw.split(",") if t.strip())

    values = {
        "gateway_url": env.get("IMGOPT_GATEWAY_URL", DEFAULT_GATEWAY_URL),
        "max_batch_size": _get_int(env, "IMGOPT_MAX_BATCH_SIZE", DEFAULT_MAX_BATCH_SIZE),
        "max_file_size": _get_int(env, "IMGOPT_MAX_FILE_SIZE", DEFAULT_MAX_FILE_SIZE),
        "relaxed": _get_bool(env, "IMGOPT_RELAXED_LIMITS"),
        "accepted_types": accepted_types,
        "concurrency": _get_int(env, "IMGOPT_CONCURRENCY", 1),
        "timeout": _get_float(env, "IMGOPT_TIMEOUT", 60.0),
        "retries": _get_int(env, "IMGOPT_RETRIES", 0),
        "batch_policy": batch_policy,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        config = UploadConfig(**values)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    logger.debug(
        "Config loaded: gateway=%s max_batch=%d max_file=%d relaxed=%s concurrency=%d",
        config.gateway_url, config.max_batch_size, config.file_size_limit,
        config.relaxed, config.concurrency,
    )
    return config
