from __future__ import annotations

import hashlib
from typing import Dict, List, Optional

import pytest
from solders.pubkey import Pubkey

from coordinator.layouts import (
    BatchStatus,
    CoordinatorConfig,
    OnChainBatch,
    encode_batch,
    encode_coordinator_config,
)
from coordinator.reader import CoordinatorReader
from executor.types import Query, QueryResult, RpcMethod


def make_hash(seed: str) -> bytes:
    return hashlib.sha256(seed.encode()).digest()


def new_pubkey() -> str:
    return str(Pubkey.new_unique())


def make_batch(
    batch_id: int,
    status: BatchStatus = BatchStatus.FINALIZED,
    count: int = 2,
    created_at: int = 1000,
) -> OnChainBatch:
    finalized_at = created_at + 50 if status >= BatchStatus.FINALIZED else None
    results_hash = make_hash(f"results-{batch_id}") if status == BatchStatus.EXECUTED else None
    return OnChainBatch(
        id=batch_id,
        status=status,
        query_count=count,
        query_hashes=[make_hash(f"{batch_id}-{i}") for i in range(count)],
        submitters=[new_pubkey() for _ in range(count)],
        created_at=created_at,
        finalized_at=finalized_at,
        results_hash=results_hash,
        bump=254,
    )


class FakeLedger:
    """In-memory ledger: address -> account bytes. Records every read."""

    def __init__(self):
        self.accounts: Dict[str, bytes] = {}
        self.reads: List[str] = []
        self.failing: set = set()

    def fetch(self, address: str) -> Optional[bytes]:
        self.reads.append(address)
        if address in self.failing:
            from ingestion.rpc.client import RpcError
            raise RpcError("connection reset")
        return self.accounts.get(address)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def reader(ledger: FakeLedger) -> CoordinatorReader:
    return CoordinatorReader(ledger.fetch)


def install_config(ledger: FakeLedger, reader: CoordinatorReader, batch_counter: int,
                   min_batch_size: int = 5, max_batch_size: int = 20) -> CoordinatorConfig:
    config = CoordinatorConfig(
        authority=new_pubkey(),
        min_batch_size=min_batch_size,
        max_batch_size=max_batch_size,
        batch_counter=batch_counter,
        bump=255,
    )
    ledger.accounts[str(reader.coordinator_address())] = encode_coordinator_config(config)
    return config


def install_batch(ledger: FakeLedger, reader: CoordinatorReader, batch: OnChainBatch) -> None:
    ledger.accounts[str(reader.batch_address(batch.id))] = encode_batch(batch)


class FakeMethodExecutor:
    """Succeeds with {"echo": id} unless the query's pubkey is "bad"."""

    def __init__(self):
        self.calls: List[str] = []

    def execute(self, query: Query) -> QueryResult:
        self.calls.append(query.id)
        if query.pubkey == "bad":
            return QueryResult.fail(query.id, f"Invalid pubkey '{query.pubkey}': malformed")
        return QueryResult.ok(query.id, {"echo": query.id})

    def check_health(self) -> bool:
        return True


@pytest.fixture
def method_executor() -> FakeMethodExecutor:
    return FakeMethodExecutor()


def balance_query(query_id: str, pubkey: Optional[str] = None) -> Query:
    return Query(id=query_id, method=RpcMethod.GET_BALANCE, pubkey=pubkey or new_pubkey())
