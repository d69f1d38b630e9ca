"""config/loader.py

Config loader for the miner.

Sources, later ones win:
1. YAML file (flat keys or the nested sections below)
2. EIDOS_MINER_* environment variables
3. Explicit overrides (CLI flags); None values are ignored

Nested YAML layout:

    account: myaccount1234
    endpoints: [https://eos.example]
    batch:
      size: 0            # 0 = automatic
      n_min: 2
      n_max: 256
      cpu_rate_expectation: 0.95
      cpu_rate_red: 0.99
    schedule:
      dispatch_period_sec: 1
      adjust_period_sec: 30
      donation_period_sec: 30
      workers: 1
    donation:
      enabled: true
      ratio: 0.05
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from config.runtime_schema import MinerConfig, config_fields

logger = logging.getLogger(__name__)


ENV_PREFIX = "EIDOS_MINER_"

# section -> {yaml key -> MinerConfig field}
SECTION_KEYS: Dict[str, Dict[str, str]] = {
    "batch": {
        "size": "batch_size",
        "n_min": "n_min",
        "n_max": "n_max",
        "cpu_rate_expectation": "cpu_rate_expectation",
        "cpu_rate_red": "cpu_rate_red",
    },
    "schedule": {
        "dispatch_period_sec": "dispatch_period_sec",
        "adjust_period_sec": "adjust_period_sec",
        "donation_period_sec": "donation_period_sec",
        "workers": "workers",
    },
    "donation": {
        "enabled": "donation_enabled",
        "ratio": "donation_ratio",
        "min_donation": "min_donation",
        "deposit_threshold": "deposit_threshold",
    },
    "startup": {
        "min_primary_balance": "min_primary_balance",
        "cooldown_sec": "insufficient_funds_cooldown_sec",
    },
    "ops": {
        "stop_flag_path": "stop_flag_path",
        "metrics_path": "metrics_path",
    },
}

TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off")


class ConfigError(RuntimeError):
    pass


def _flatten(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Map the (optionally nested) YAML layout onto MinerConfig field names."""
    known = set(config_fields())
    flat: Dict[str, Any] = {}

    for key, value in raw.items():
        if key in SECTION_KEYS:
            if not isinstance(value, dict):
                raise ConfigError(f"{key} must be a mapping")
            for sub_key, sub_value in value.items():
                target = SECTION_KEYS[key].get(sub_key)
                if target is None:
                    raise ConfigError(f"Unknown key: {key}.{sub_key}")
                flat[target] = sub_value
        elif key in known:
            flat[key] = value
        else:
            raise ConfigError(f"Unknown key: {key}")

    return flat


def _coerce(name: str, value: str) -> Any:
    """Convert an environment string to the type of the field's default."""
    default = MinerConfig.__dataclass_fields__[name].default
    if isinstance(default, bool):
        lowered = value.strip().lower()
        if lowered in TRUE_VALUES:
            return True
        if lowered in FALSE_VALUES:
            return False
        raise ConfigError(f"{ENV_PREFIX}{name.upper()} must be a boolean, got: {value}")
    if isinstance(default, tuple):
        return tuple(v.strip() for v in value.split(",") if v.strip())
    try:
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
    except ValueError as e:
        raise ConfigError(f"{ENV_PREFIX}{name.upper()}: {e}") from e
    return value


def _from_env(environ: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for name in config_fields():
        env_key = f"{ENV_PREFIX}{name.upper()}"
        if env_key in environ:
            values[name] = _coerce(name, environ[env_key])
    return values


def read_yaml(path: str) -> Dict[str, Any]:
    """Read a YAML config file into flat MinerConfig keys."""
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config not found: {p}")

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {p}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{p} must be a YAML mapping (dict at top-level)")
    return _flatten(raw)


def load_config(
    path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> MinerConfig:
    """Load and validate the miner configuration.

    Raises:
        ConfigError: On missing file, unknown keys or invalid values.
    """
    values: Dict[str, Any] = {}
    if path:
        values.update(read_yaml(path))
        logger.info(f"[config] Loaded configuration from {path}")

    values.update(_from_env(os.environ if environ is None else environ))

    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key not in MinerConfig.__dataclass_fields__:
            raise ConfigError(f"Unknown key: {key}")
        values[key] = value

    try:
        return MinerConfig(**values)
    except (TypeError, ValueError) as e:
        raise ConfigError(str(e)) from e


def describe(config: MinerConfig) -> Dict[str, Any]:
    """Config as a dict with the credential masked (for logging)."""
    data = dataclasses.asdict(config)
    if data.get("private_key"):
        data["private_key"] = "***"
    return data
