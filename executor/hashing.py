"""
executor/hashing.py

Deterministic hashes over queries and results (sha256, hex).

- compute_results_hash: server-side batchHash of an executed batch
- hash_query / hash_batch: the client SDK's query commitments, as stored
  in the on-chain Batch.query_hashes
"""
import hashlib
import json
from typing import Any, Iterable, List


def canonical_json(value: Any) -> str:
    """Compact JSON with sorted keys."""
    return json.dumps(value, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def compute_results_hash(results: Iterable[Any]) -> str:
    """
    Hash the ordered (id, success flag, data) sequence.

    Order is hashed material: permuting results changes the hash.
    Failed results contribute only id and flag.
    """
    hasher = hashlib.sha256()
    for result in results:
        hasher.update(result.id.encode("utf-8"))
        hasher.update(b"1" if result.success else b"0")
        if result.success:
            hasher.update(canonical_json(result.data).encode("utf-8"))
    return hasher.hexdigest()


def query_commitment(query: Any) -> str:
    """
    JSON the client SDK hashes per query: {"method","pubkey","commitment"}
    in that key order, absent keys omitted.
    """
    payload = {"method": str(query.method)}
    if query.pubkey is not None:
        payload["pubkey"] = query.pubkey
    if query.commitment is not None:
        payload["commitment"] = query.commitment
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def hash_query_bytes(query: Any) -> bytes:
    return hashlib.sha256(query_commitment(query).encode("utf-8")).digest()


def hash_query(query: Any) -> str:
    return hash_query_bytes(query).hex()


def hash_batch(queries: Iterable[Any]) -> str:
    """Order-independent batch hash: sorted query hashes joined by "|"."""
    hashes: List[str] = sorted(hash_query(q) for q in queries)
    return hashlib.sha256("|".join(hashes).encode("utf-8")).hexdigest()
