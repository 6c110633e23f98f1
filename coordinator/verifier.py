"""
coordinator/verifier.py

CoordinatorVerifier: cross-checks a client's batch against the ledger
before any query is dispatched.
"""
import logging
from typing import Optional, Sequence

from executor.errors import (
    BatchNotFinalizedError,
    BatchNotFoundError,
    InvalidQueryError,
)
from executor.hashing import hash_batch, hash_query_bytes
from executor.types import Query
from .layouts import BatchStatus, OnChainBatch
from .reader import CoordinatorReader

logger = logging.getLogger(__name__)

U64_MAX = 2 ** 64 - 1


def parse_batch_id(raw: str) -> int:
    """Parse a wire batch id as an unsigned 64-bit integer."""
    text = str(raw).strip()
    if not (text.isascii() and text.isdigit()) or int(text) > U64_MAX:
        raise InvalidQueryError(f"Invalid batch_id: {raw}")
    return int(text)


class CoordinatorVerifier:
    """
    Verifies that a ledger-linked batch may be executed.

    Checks, in order: the id parses, the batch exists, it is Finalized,
    its record is self-consistent, and (optionally) every submitted query
    was committed on-chain.
    """

    def __init__(self, reader: CoordinatorReader, verify_query_hashes: bool = False):
        self.reader = reader
        self.verify_query_hashes = verify_query_hashes

    def verify_finalized(
        self,
        batch_id: str,
        queries: Optional[Sequence[Query]] = None,
        batch_hash: Optional[str] = None,
    ) -> OnChainBatch:
        """
        Returns:
            The verified on-chain batch

        Raises:
            InvalidQueryError: Unparseable id, inconsistent record or uncommitted query
            BatchNotFoundError: No readable batch account for this id
            BatchNotFinalizedError: Batch is Pending or already Executed
        """
        parsed_id = parse_batch_id(batch_id)

        batch = self.reader.get_batch(parsed_id)
        if batch is None:
            raise BatchNotFoundError(parsed_id)

        if batch.status != BatchStatus.FINALIZED:
            raise BatchNotFinalizedError(parsed_id, batch.status)

        problems = batch.invariant_violations()
        if problems:
            logger.warning(f"[verifier] Batch {parsed_id} record inconsistent: {problems}")
            raise InvalidQueryError(f"Batch {parsed_id} record is inconsistent: {problems[0]}")

        if queries is not None:
            if self.verify_query_hashes:
                self._check_commitments(batch, queries)
            if isinstance(batch_hash, str) and batch_hash:
                self._check_advisory_hash(parsed_id, queries, batch_hash)

        logger.info(f"[verifier] On-chain batch {parsed_id} verified as finalized")
        return batch

    def _check_commitments(self, batch: OnChainBatch, queries: Sequence[Query]) -> None:
        committed = set(batch.query_hashes)
        for query in queries:
            if hash_query_bytes(query) not in committed:
                raise InvalidQueryError(f"Query {query.id} was not committed to batch {batch.id}")

    def _check_advisory_hash(self, batch_id: int, queries: Sequence[Query], batch_hash: str) -> None:
        expected = hash_batch(queries)
        if expected != batch_hash.lower():
            # Advisory only: the server-computed hash is authoritative.
            logger.warning(
                f"[verifier] Client batchHash mismatch for batch {batch_id}: "
                f"got {batch_hash[:16]}..., computed {expected[:16]}..."
            )
