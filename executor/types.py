"""
executor/types.py

Wire types for batch execution: queries in, results out.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import InvalidQueryError
from .hashing import compute_results_hash


class RpcMethod(str, Enum):
    """Supported RPC methods for privacy batching."""
    GET_BALANCE = "getBalance"
    GET_ACCOUNT_INFO = "getAccountInfo"
    GET_TRANSACTION = "getTransaction"
    GET_TOKEN_ACCOUNT_BALANCE = "getTokenAccountBalance"
    GET_BLOCK_HEIGHT = "getBlockHeight"
    GET_MULTIPLE_ACCOUNTS = "getMultipleAccounts"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> Optional["RpcMethod"]:
        try:
            return cls(value)
        except ValueError:
            return None


class CommitmentLevel(str, Enum):
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["CommitmentLevel"]:
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


DEFAULT_COMMITMENT = CommitmentLevel.CONFIRMED


@dataclass
class Query:
    """A single query in a batch request."""
    id: str
    method: RpcMethod
    pubkey: Optional[str] = None
    params: Optional[Union[str, List[str]]] = None
    commitment: Optional[str] = None

    def primary_param(self) -> Optional[str]:
        """pubkey if set, else params as a string, else the first params element."""
        if self.pubkey is not None:
            return self.pubkey
        if isinstance(self.params, str):
            return self.params
        if isinstance(self.params, list) and self.params:
            first = self.params[0]
            return first if isinstance(first, str) else None
        return None

    def effective_commitment(self) -> CommitmentLevel:
        return CommitmentLevel.parse(self.commitment) or DEFAULT_COMMITMENT

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Query":
        if not isinstance(raw, dict):
            raise InvalidQueryError("query must be an object")
        if "id" not in raw:
            raise InvalidQueryError("missing field `id`")
        if "method" not in raw:
            raise InvalidQueryError("missing field `method`")
        method = RpcMethod.parse(raw["method"]) if isinstance(raw["method"], str) else None
        if method is None:
            raise InvalidQueryError(f"unknown method `{raw['method']}`")
        params = raw.get("params")
        if params is not None and not isinstance(params, (str, list)):
            raise InvalidQueryError("params must be a string or an array of strings")
        for key in ("pubkey", "commitment"):
            if raw.get(key) is not None and not isinstance(raw[key], str):
                raise InvalidQueryError(f"{key} must be a string")
        return cls(
            id=str(raw["id"]),
            method=method,
            pubkey=raw.get("pubkey"),
            params=params,
            commitment=raw.get("commitment"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "method": self.method.value}
        if self.pubkey is not None:
            out["pubkey"] = self.pubkey
        if self.params is not None:
            out["params"] = self.params
        if self.commitment is not None:
            out["commitment"] = self.commitment
        return out


class QueryResult:
    """
    Result of a single query: exactly one of Success(data) or Failure(error).

    Build through QueryResult.ok / QueryResult.fail. data may be None on
    success (e.g. getAccountInfo for a missing account).
    """
    __slots__ = ("id", "success", "data", "error")

    def __init__(self, id: str, success: bool, data: Any = None, error: Optional[str] = None):
        if success and error is not None:
            raise ValueError("Successful result cannot carry an error")
        if not success and error is None:
            raise ValueError("Failed result must carry an error message")
        if not success and data is not None:
            raise ValueError("Failed result cannot carry data")
        self.id = id
        self.success = success
        self.data = data
        self.error = error

    @classmethod
    def ok(cls, id: str, data: Any) -> "QueryResult":
        return cls(id, True, data=data)

    @classmethod
    def fail(cls, id: str, error: str) -> "QueryResult":
        return cls(id, False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "success": self.success}
        if self.success:
            out["data"] = self.data
        else:
            out["error"] = self.error
        return out

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, QueryResult):
            return NotImplemented
        return (self.id, self.success, self.data, self.error) == (other.id, other.success, other.data, other.error)

    def __repr__(self) -> str:
        if self.success:
            return f"QueryResult.ok({self.id!r}, {self.data!r})"
        return f"QueryResult.fail({self.id!r}, {self.error!r})"


@dataclass
class BatchRequest:
    """Request to execute a batch of queries."""
    queries: List[Query] = field(default_factory=list)
    batch_hash: Optional[str] = None  # advisory only
    batch_id: Optional[str] = None    # on-chain batch id, as sent on the wire

    def __len__(self) -> int:
        return len(self.queries)

    def is_empty(self) -> bool:
        return not self.queries

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "BatchRequest":
        if not isinstance(raw, dict):
            raise InvalidQueryError("request body must be an object")
        queries = raw.get("queries")
        if not isinstance(queries, list):
            raise InvalidQueryError("missing field `queries`")
        batch_id = raw.get("batchId")
        batch_hash = raw.get("batchHash")
        if batch_hash is not None and not isinstance(batch_hash, str):
            raise InvalidQueryError("batchHash must be a string")
        return cls(
            queries=[Query.from_dict(q) for q in queries],
            batch_hash=batch_hash,
            batch_id=str(batch_id) if batch_id is not None else None,
        )


@dataclass(frozen=True)
class BatchResponse:
    """
    Outcome of a batch execution. Every field is derived from the results
    and the measured elapsed time: build it with from_results.
    """
    success: bool
    results: List[QueryResult]
    execution_time_ms: int
    succeeded_count: int
    failed_count: int
    batch_hash: str

    @classmethod
    def from_results(cls, results: List[QueryResult], execution_time_ms: int) -> "BatchResponse":
        succeeded = sum(1 for r in results if r.success)
        failed = len(results) - succeeded
        return cls(
            success=failed == 0,
            results=list(results),
            execution_time_ms=execution_time_ms,
            succeeded_count=succeeded,
            failed_count=failed,
            batch_hash=compute_results_hash(results),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
            "executionTimeMs": self.execution_time_ms,
            "succeededCount": self.succeeded_count,
            "failedCount": self.failed_count,
            "batchHash": self.batch_hash,
        }
