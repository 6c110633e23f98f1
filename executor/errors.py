"""
executor/errors.py

Proxy error taxonomy.

Every rejection carries a stable reason string (for aggregation and for
clients to branch on) and the HTTP status it maps to.
"""
from typing import Any, Dict

# Reasons
SOLANA_RPC_ERROR = "solana_rpc_error"
INVALID_QUERY = "invalid_query"
INVALID_PUBKEY = "invalid_pubkey"
BATCH_TOO_LARGE = "batch_too_large"
EMPTY_BATCH = "empty_batch"
BATCH_NOT_FOUND = "batch_not_found"
BATCH_NOT_FINALIZED = "batch_not_finalized"
INTERNAL_ERROR = "internal_error"
TIMEOUT = "timeout"

# Default executor ceiling, independent of the ledger's max_batch_size.
MAX_BATCH_SIZE = 100


class ProxyError(Exception):
    """Base class for errors surfaced to the client."""
    reason = INTERNAL_ERROR
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "reason": self.reason,
        }


class SolanaRpcError(ProxyError):
    reason = SOLANA_RPC_ERROR
    http_status = 502

    def __init__(self, detail: str):
        super().__init__(f"Solana RPC error: {detail}")


class InvalidQueryError(ProxyError):
    reason = INVALID_QUERY
    http_status = 400

    def __init__(self, detail: str):
        super().__init__(f"Invalid query: {detail}")


class InvalidPubkeyError(ProxyError):
    reason = INVALID_PUBKEY
    http_status = 400

    def __init__(self, detail: str):
        super().__init__(f"Invalid pubkey: {detail}")


class BatchTooLargeError(ProxyError):
    reason = BATCH_TOO_LARGE
    http_status = 400

    def __init__(self, actual: int, max: int = MAX_BATCH_SIZE):
        super().__init__(f"Batch size {actual} exceeds maximum of {max}")
        self.actual = actual
        self.max = max


class EmptyBatchError(ProxyError):
    reason = EMPTY_BATCH
    http_status = 400

    def __init__(self):
        super().__init__("Batch cannot be empty")


class BatchNotFoundError(InvalidQueryError):
    reason = BATCH_NOT_FOUND

    def __init__(self, batch_id: int):
        super().__init__(f"Batch {batch_id} not found on-chain")
        self.batch_id = batch_id


class BatchNotFinalizedError(InvalidQueryError):
    reason = BATCH_NOT_FINALIZED

    def __init__(self, batch_id: int, status: Any):
        super().__init__(f"Batch {batch_id} is not finalized (status: {status})")
        self.batch_id = batch_id
        self.status = status


class InternalError(ProxyError):
    reason = INTERNAL_ERROR
    http_status = 500

    def __init__(self, detail: str):
        super().__init__(f"Internal error: {detail}")


class QueryTimeoutError(ProxyError):
    """Reserved for method executors that enforce their own deadline."""
    reason = TIMEOUT
    http_status = 504

    def __init__(self, timeout_ms: int):
        super().__init__(f"Query execution timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms
