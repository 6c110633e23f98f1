"""
coordinator package

Read-only client of the on-chain coordinator program: account layouts,
typed reads, finalized-batch polling and pre-dispatch verification.
"""
from .errors import DecodeError, LedgerUnavailable
from .layouts import (
    BatchStatus,
    CoordinatorConfig,
    OnChainBatch,
    decode_batch,
    decode_coordinator_config,
    encode_batch,
    encode_coordinator_config,
)
from .reader import CoordinatorReader
from .poller import BatchPoller, PollerState, ProcessedSet
from .verifier import CoordinatorVerifier

__all__ = [
    'DecodeError',
    'LedgerUnavailable',
    'BatchStatus',
    'CoordinatorConfig',
    'OnChainBatch',
    'decode_batch',
    'decode_coordinator_config',
    'encode_batch',
    'encode_coordinator_config',
    'CoordinatorReader',
    'BatchPoller',
    'PollerState',
    'ProcessedSet',
    'CoordinatorVerifier',
]
