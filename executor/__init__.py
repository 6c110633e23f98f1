"""
executor package

Batch admission, parallel query execution and result aggregation.
"""
from .types import BatchRequest, BatchResponse, CommitmentLevel, Query, QueryResult, RpcMethod
from .batch_executor import BatchExecutor
from .methods import MethodExecutor

__all__ = [
    'BatchRequest',
    'BatchResponse',
    'CommitmentLevel',
    'Query',
    'QueryResult',
    'RpcMethod',
    'BatchExecutor',
    'MethodExecutor',
]
