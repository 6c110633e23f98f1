"""
executor/batch_executor.py

BatchExecutor: admission control, parallel fan-out, ordered fan-in.
"""
import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional

from .errors import MAX_BATCH_SIZE, BatchTooLargeError, EmptyBatchError
from .types import BatchRequest, BatchResponse, Query, QueryResult

logger = logging.getLogger(__name__)


UNKNOWN_QUERY_ID = "unknown"
DEFAULT_WORKERS = 16


class BatchExecutor:
    """
    Executes a batch of queries concurrently against a MethodExecutor.

    - Admission: rejects empty batches and batches above max_batch_size
      before anything is dispatched
    - Ledger cross-check: when the request names an on-chain batch and a
      verifier is configured, the batch must be Finalized
    - Fan-out: one work unit per query on a bounded thread pool
      (the RPC client is blocking)
    - Fan-in: results in request order; a crashed work unit becomes a
      failed result, never a batch-level error
    """

    def __init__(
        self,
        method_executor: Any,
        verifier: Optional[Any] = None,
        max_batch_size: int = MAX_BATCH_SIZE,
        max_workers: int = DEFAULT_WORKERS,
    ):
        """
        Args:
            method_executor: Object with execute(Query) -> QueryResult
            verifier: Optional CoordinatorVerifier for batch_id cross-checks
            max_batch_size: Local admission ceiling
            max_workers: Worker threads for blocking RPC calls
        """
        self._method_executor = method_executor
        self._verifier = verifier
        self.max_batch_size = max_batch_size
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="query")

        # Metrics
        self._batches_executed = 0
        self._queries_executed = 0

    def check_admission(self, request: BatchRequest) -> None:
        """
        Raises:
            EmptyBatchError: No queries
            BatchTooLargeError: More than max_batch_size queries
        """
        if request.is_empty():
            raise EmptyBatchError()
        if len(request) > self.max_batch_size:
            raise BatchTooLargeError(len(request), self.max_batch_size)

    async def execute_batch(self, request: BatchRequest) -> BatchResponse:
        """
        Admit, verify, execute and aggregate one batch.

        Raises:
            ProxyError: Admission or ledger cross-check failure (nothing dispatched)
        """
        self.check_admission(request)

        loop = asyncio.get_running_loop()

        if request.batch_id is not None and self._verifier is not None:
            await loop.run_in_executor(
                self._pool,
                self._verifier.verify_finalized,
                request.batch_id,
                request.queries,
                request.batch_hash,
            )

        label = request.batch_id or request.batch_hash or UNKNOWN_QUERY_ID
        logger.info(f"[executor] Executing batch {label} with {len(request)} queries")

        start = time.monotonic()

        futures = [
            loop.run_in_executor(self._pool, self._method_executor.execute, query)
            for query in request.queries
        ]
        # Every work unit is awaited; none is abandoned or cancelled.
        outcomes = await asyncio.gather(*futures, return_exceptions=True)

        results = [
            self._to_result(query, outcome)
            for query, outcome in zip(request.queries, outcomes)
        ]

        execution_time_ms = int((time.monotonic() - start) * 1000)
        response = BatchResponse.from_results(results, execution_time_ms)

        self._batches_executed += 1
        self._queries_executed += len(results)

        logger.info(
            f"[executor] Batch {label} complete in {execution_time_ms}ms "
            f"(succeeded={response.succeeded_count}, failed={response.failed_count})"
        )
        return response

    @staticmethod
    def _to_result(query: Query, outcome: Any) -> QueryResult:
        if isinstance(outcome, QueryResult):
            return outcome

        query_id = getattr(query, "id", None)
        if not isinstance(query_id, str):
            query_id = UNKNOWN_QUERY_ID

        if isinstance(outcome, BaseException):
            logger.warning(f"[executor] Query task {query_id} failed: {outcome!r}")
            return QueryResult.fail(query_id, f"Task execution failed: {outcome}")

        logger.warning(f"[executor] Query task {query_id} returned {type(outcome).__name__}")
        return QueryResult.fail(query_id, f"Task execution failed: unexpected result {type(outcome).__name__}")

    async def check_health(self) -> bool:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._pool, self._method_executor.check_health)
        except Exception as e:
            logger.warning(f"[executor] Health probe failed: {e}")
            return False

    def get_metrics(self) -> dict:
        return {
            "batches_executed": self._batches_executed,
            "queries_executed": self._queries_executed,
        }

    def shutdown(self) -> None:
        self._pool.shutdown(wait=True)
