"""
coordinator/reader.py

CoordinatorReader: typed, read-only view of the coordinator program accounts.
"""
import logging
from typing import Callable, Dict, List, Optional

from solders.pubkey import Pubkey

from ingestion.rpc.client import RpcError
from .errors import LedgerUnavailable
from .layouts import (
    BatchStatus,
    CoordinatorConfig,
    OnChainBatch,
    decode_batch,
    decode_coordinator_config,
)

logger = logging.getLogger(__name__)


COORDINATOR_PROGRAM_ID = "3LsgXZDcRaC3vGq3392WGuEa4AST76m8NPNQCaqDd3n6"
COORDINATOR_SEED = b"coordinator"
BATCH_SEED = b"batch"

# Ledger read primitive: address -> account bytes, None if the account does not exist.
AccountFetcher = Callable[[str], Optional[bytes]]


def batch_seed(batch_id: int) -> List[bytes]:
    """PDA seeds for a batch account: b"batch" + little-endian u64 id."""
    return [BATCH_SEED, batch_id.to_bytes(8, "little")]


class CoordinatorReader:
    """
    Reads CoordinatorState and Batch accounts of the coordinator program.

    Only reads: it never derives state transitions, and a failed or
    malformed read is reported as "not observed" (None), never raised.
    """

    def __init__(
        self,
        fetch_account: AccountFetcher,
        program_id: str = COORDINATOR_PROGRAM_ID,
    ):
        """
        Args:
            fetch_account: Ledger read primitive (e.g. SolanaRpcClient.get_account_bytes)
            program_id: Coordinator program id (base58)
        """
        self._fetch_account = fetch_account
        self.program_id = Pubkey.from_string(program_id)
        self._coordinator_pda: Optional[Pubkey] = None
        self._batch_pdas: Dict[int, Pubkey] = {}

    @classmethod
    def from_rpc_client(cls, rpc_client, program_id: str = COORDINATOR_PROGRAM_ID) -> "CoordinatorReader":
        return cls(rpc_client.get_account_bytes, program_id=program_id)

    def coordinator_address(self) -> Pubkey:
        if self._coordinator_pda is None:
            self._coordinator_pda, _ = Pubkey.find_program_address([COORDINATOR_SEED], self.program_id)
        return self._coordinator_pda

    def batch_address(self, batch_id: int) -> Pubkey:
        pda = self._batch_pdas.get(batch_id)
        if pda is None:
            pda, _ = Pubkey.find_program_address(batch_seed(batch_id), self.program_id)
            self._batch_pdas[batch_id] = pda
        return pda

    def _read_account(self, address: Pubkey) -> Optional[bytes]:
        """
        Fetch account bytes.

        Raises:
            LedgerUnavailable: On network / RPC failure
        """
        try:
            return self._fetch_account(str(address))
        except (RpcError, OSError) as e:
            raise LedgerUnavailable(f"Failed to read {address}: {e}") from e

    def get_config(self) -> Optional[CoordinatorConfig]:
        """Read the CoordinatorState singleton, None if unavailable or malformed."""
        address = self.coordinator_address()
        try:
            data = self._read_account(address)
        except LedgerUnavailable as e:
            logger.warning(f"[reader] {e}")
            return None

        config = decode_coordinator_config(data)
        if config is None and data is not None:
            logger.warning(f"[reader] Malformed coordinator account {address} ({len(data)} bytes)")
        return config

    def get_batch_counter(self) -> Optional[int]:
        config = self.get_config()
        return config.batch_counter if config is not None else None

    def get_batch(self, batch_id: int) -> Optional[OnChainBatch]:
        """Read one batch account, None if unavailable or malformed."""
        address = self.batch_address(batch_id)
        try:
            data = self._read_account(address)
        except LedgerUnavailable as e:
            logger.warning(f"[reader] Batch {batch_id}: {e}")
            return None

        if data is None:
            logger.debug(f"[reader] Batch {batch_id} account not found")
            return None

        logger.debug(f"[reader] Reading batch {batch_id} ({len(data)} bytes)")
        batch = decode_batch(data)
        if batch is None:
            logger.warning(f"[reader] Malformed batch account {batch_id} at {address}")
        return batch

    def find_finalized_batches(self) -> List[OnChainBatch]:
        """
        Snapshot of all Finalized batches.

        Reads batch_counter then probes ids [0, counter) in order.
        """
        counter = self.get_batch_counter()
        if counter is None:
            logger.warning("[reader] Could not read batch counter")
            return []

        finalized = []
        for batch_id in range(counter):
            batch = self.get_batch(batch_id)
            if batch is not None and batch.status == BatchStatus.FINALIZED:
                finalized.append(batch)

        logger.debug(f"[reader] Found {len(finalized)} finalized batches out of {counter}")
        return finalized
