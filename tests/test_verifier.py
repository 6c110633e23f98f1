from __future__ import annotations

import logging

import pytest

from coordinator.layouts import BatchStatus
from coordinator.verifier import CoordinatorVerifier, parse_batch_id
from executor.errors import (
    BATCH_NOT_FINALIZED,
    BATCH_NOT_FOUND,
    BatchNotFinalizedError,
    BatchNotFoundError,
    InvalidQueryError,
)
from executor.hashing import hash_query_bytes
from executor.types import Query, RpcMethod

from conftest import install_batch, make_batch, new_pubkey


def test_parse_batch_id():
    assert parse_batch_id("0") == 0
    assert parse_batch_id(" 42 ") == 42
    assert parse_batch_id(str(2 ** 64 - 1)) == 2 ** 64 - 1


@pytest.mark.parametrize("raw", ["", "-1", "abc", "1.5", "²", "١٢", str(2 ** 64)])
def test_parse_batch_id_rejects(raw):
    with pytest.raises(InvalidQueryError) as exc:
        parse_batch_id(raw)
    assert "Invalid batch_id" in str(exc.value)


def test_missing_batch(reader):
    with pytest.raises(BatchNotFoundError) as exc:
        CoordinatorVerifier(reader).verify_finalized("3")

    assert exc.value.reason == BATCH_NOT_FOUND
    assert exc.value.http_status == 400


@pytest.mark.parametrize("status", [BatchStatus.PENDING, BatchStatus.EXECUTED])
def test_non_finalized_batch(ledger, reader, status):
    install_batch(ledger, reader, make_batch(3, status))

    with pytest.raises(BatchNotFinalizedError) as exc:
        CoordinatorVerifier(reader).verify_finalized("3")

    assert exc.value.reason == BATCH_NOT_FINALIZED
    assert str(status) in str(exc.value)


def test_finalized_batch_returned(ledger, reader):
    batch = make_batch(3)
    install_batch(ledger, reader, batch)

    assert CoordinatorVerifier(reader).verify_finalized("3") == batch


def test_inconsistent_record_rejected(ledger, reader):
    batch = make_batch(3, count=2)
    batch.query_count = 5
    install_batch(ledger, reader, batch)

    with pytest.raises(InvalidQueryError) as exc:
        CoordinatorVerifier(reader).verify_finalized("3")
    assert "inconsistent" in str(exc.value)


def _committed_batch(queries):
    batch = make_batch(8, count=len(queries))
    batch.query_hashes = [hash_query_bytes(q) for q in queries]
    return batch


def test_commitment_check_accepts_committed_queries(ledger, reader):
    queries = [Query(id=str(i), method=RpcMethod.GET_BALANCE, pubkey=new_pubkey()) for i in range(2)]
    install_batch(ledger, reader, _committed_batch(queries))

    verifier = CoordinatorVerifier(reader, verify_query_hashes=True)

    assert verifier.verify_finalized("8", queries).id == 8


def test_commitment_check_rejects_uncommitted_query(ledger, reader):
    queries = [Query(id=str(i), method=RpcMethod.GET_BALANCE, pubkey=new_pubkey()) for i in range(2)]
    install_batch(ledger, reader, _committed_batch(queries))
    smuggled = queries[:1] + [Query(id="x", method=RpcMethod.GET_BALANCE, pubkey=new_pubkey())]

    verifier = CoordinatorVerifier(reader, verify_query_hashes=True)

    with pytest.raises(InvalidQueryError) as exc:
        verifier.verify_finalized("8", smuggled)
    assert "not committed" in str(exc.value)


def test_commitment_check_off_by_default(ledger, reader):
    install_batch(ledger, reader, make_batch(8))
    queries = [Query(id="x", method=RpcMethod.GET_BALANCE, pubkey=new_pubkey())]

    assert CoordinatorVerifier(reader).verify_finalized("8", queries).id == 8


def test_batch_hash_mismatch_only_warns(ledger, reader, caplog):
    install_batch(ledger, reader, make_batch(8))
    queries = [Query(id="x", method=RpcMethod.GET_BALANCE, pubkey=new_pubkey())]

    with caplog.at_level(logging.WARNING, logger="coordinator.verifier"):
        batch = CoordinatorVerifier(reader).verify_finalized("8", queries, batch_hash="ab" * 32)

    assert batch.id == 8
    assert "batchHash mismatch" in caplog.text


def test_non_string_batch_hash_is_ignored(ledger, reader):
    install_batch(ledger, reader, make_batch(8))
    queries = [Query(id="x", method=RpcMethod.GET_BALANCE, pubkey=new_pubkey())]

    assert CoordinatorVerifier(reader).verify_finalized("8", queries, batch_hash=123).id == 8
