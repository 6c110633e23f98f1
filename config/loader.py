"""config/loader.py

Loads ProxyConfig from an optional YAML file plus environment overrides.

Precedence: defaults < YAML file < environment.

Supported env vars:
- QUICKNODE_RPC_URL / SOLANA_RPC_URL (RPC endpoint, required from somewhere)
- HOST, PORT
- ENABLE_POLLER ("true" / "1"), POLL_INTERVAL_MS
- COORDINATOR_PROGRAM_ID
- MAX_BATCH_SIZE, EXECUTOR_WORKERS
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from config.proxy_config import ProxyConfig

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    pass


_ENV_INT_FIELDS = {
    "PORT": "port",
    "POLL_INTERVAL_MS": "poll_interval_ms",
    "MAX_BATCH_SIZE": "max_batch_size",
    "EXECUTOR_WORKERS": "executor_workers",
}


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1")


def read_yaml(path: str | Path) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config not found: {p}")

    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{p.name} must be a YAML mapping (dict at top-level)")
    return raw


def env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}

    rpc_url = env.get("QUICKNODE_RPC_URL") or env.get("SOLANA_RPC_URL")
    if rpc_url:
        out["rpc_url"] = rpc_url
    if env.get("HOST"):
        out["host"] = env["HOST"]
    if env.get("COORDINATOR_PROGRAM_ID"):
        out["program_id"] = env["COORDINATOR_PROGRAM_ID"]
    if env.get("ENABLE_POLLER") is not None:
        out["enable_poller"] = _parse_bool(env["ENABLE_POLLER"])

    for var, field_name in _ENV_INT_FIELDS.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        try:
            out[field_name] = int(raw)
        except ValueError:
            raise ConfigError(f"{var} must be a valid number, got: {raw}")
    return out


def load_config(
    path: Optional[str | Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ProxyConfig:
    """
    Build and validate the proxy configuration.

    Raises:
        ConfigError: Missing file, unknown keys, invalid values or no RPC URL
    """
    values: Dict[str, Any] = {}
    if path is not None:
        values.update(read_yaml(path))

    values.update(env_overrides(os.environ if env is None else env))

    known = {f.name for f in dataclasses.fields(ProxyConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    if not values.get("rpc_url"):
        raise ConfigError("QUICKNODE_RPC_URL environment variable must be set")

    try:
        config = ProxyConfig(**values)
    except (TypeError, ValueError) as e:
        raise ConfigError(str(e)) from e

    logger.debug(f"[config] Loaded config (poller={config.enable_poller}, max_batch={config.max_batch_size})")
    return config
