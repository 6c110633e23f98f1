"""
server/health.py

Health check payload.
"""
from dataclasses import dataclass
from typing import Any, Dict

VERSION = "0.1.0"

STATUS_HEALTHY = "healthy"
STATUS_DEGRADED = "degraded"


@dataclass(frozen=True)
class HealthResponse:
    status: str
    version: str
    rpc_healthy: bool

    @classmethod
    def from_probe(cls, rpc_healthy: bool) -> "HealthResponse":
        """Degraded exactly when the backing RPC health probe fails."""
        return cls(
            status=STATUS_HEALTHY if rpc_healthy else STATUS_DEGRADED,
            version=VERSION,
            rpc_healthy=rpc_healthy,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "version": self.version,
            "rpcHealthy": self.rpc_healthy,
        }
