"""config/proxy_config.py

Defines the proxy configuration schema.
Implements manual validation to avoid Pydantic dependency.
"""

from dataclasses import dataclass, replace
from typing import Any, Optional

from coordinator.reader import COORDINATOR_PROGRAM_ID
from executor.errors import MAX_BATCH_SIZE

DEFAULT_PORT = 3000
DEFAULT_HOST = "0.0.0.0"
DEFAULT_K_ANONYMITY = 10
DEFAULT_POLL_INTERVAL_MS = 5000


@dataclass(frozen=True)
class ProxyConfig:
    """
    Static configuration of the proxy server. Loaded once at startup.
    """
    rpc_url: str = ""
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    # Batching
    k_anonymity: int = DEFAULT_K_ANONYMITY  # informational; enforced on-chain
    max_batch_size: int = MAX_BATCH_SIZE    # local admission ceiling
    executor_workers: int = 16
    rpc_timeout_sec: float = 30.0

    # On-chain coordinator
    enable_poller: bool = False
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    program_id: str = COORDINATOR_PROGRAM_ID
    verify_query_hashes: bool = False

    def __post_init__(self):
        """Validate constraints manually since we don't have Pydantic."""
        self._validate_range("port", self.port, 1, 65535)
        self._validate_range("k_anonymity", self.k_anonymity, 1, 255)
        self._validate_range("max_batch_size", self.max_batch_size, 1, 1000)
        self._validate_range("executor_workers", self.executor_workers, 1, 256)
        self._validate_range("rpc_timeout_sec", self.rpc_timeout_sec, 0.1, 600)
        self._validate_range("poll_interval_ms", self.poll_interval_ms, 100, None)

    def _validate_range(self, name: str, value: Any, min_val: float, max_val: Optional[float] = None) -> None:
        if isinstance(value, bool):
            raise ValueError(f"{name} must be numeric, got {value}")
        try:
            val = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{name} must be numeric, got {value}")

        if val < min_val:
            raise ValueError(f"{name} {val} is below minimum {min_val}")
        if max_val is not None and val > max_val:
            raise ValueError(f"{name} {val} is above maximum {max_val}")

    def with_poller(self, interval_ms: int) -> "ProxyConfig":
        return replace(self, enable_poller=True, poll_interval_ms=interval_ms)
